"""
Backing store: a flat file of PAGE_SIZE-byte pages read on page faults.
"""

import io
import logging

from virtualsim import PAGE_SIZE, IOFailure

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "BACKING_STORE.bin"


class BackingStore:
    """Read-only, page-aligned view of a backing store file"""

    def __init__(self, source=DEFAULT_FILENAME, page_size: int = PAGE_SIZE):
        """source is a path, or a binary file object that is already open"""
        self.page_size = page_size
        if hasattr(source, "read"):
            self.file = source
            self.filename = getattr(source, "name", "<memory>")
            return
        self.filename = source
        try:
            self.file = open(source, "rb")
        except OSError as e:
            raise IOFailure(f"cannot open backing store {source}: {e}") from e
        logger.info("opened backing store %s", source)

    @classmethod
    def from_bytes(cls, data: bytes, page_size: int = PAGE_SIZE) -> "BackingStore":
        """Build a backing store over an in-memory buffer"""
        return cls(io.BytesIO(bytes(data)), page_size=page_size)

    def read_page(self, page_number: int) -> bytes:
        """Read one page; anything short of a full page is an error"""
        if self.file is None or self.file.closed:
            raise IOFailure(f"backing store {self.filename} is closed")
        try:
            self.file.seek(page_number * self.page_size)
            page = self.file.read(self.page_size)
        except (OSError, ValueError) as e:
            raise IOFailure(
                f"cannot read page {page_number} from {self.filename}: {e}") from e
        if len(page) != self.page_size:
            raise IOFailure(
                f"short read for page {page_number} from {self.filename}: "
                f"got {len(page)} of {self.page_size} bytes")
        return page

    def close(self):
        if self.file is not None:
            self.file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
