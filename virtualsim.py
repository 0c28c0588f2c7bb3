#!/usr/bin/env python3
"""
Virtual Memory Simulator
Implements address translation through a TLB and a page table, with demand
paging from a backing store into a fixed pool of physical frames.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# Configuration
PAGE_SIZE = 256
PAGE_TABLE_ENTRIES = 256
NUMBER_OF_FRAMES = 256
TLB_SIZE = 16
ADDRESS_MASK = 0xFFFF


class TranslationError(Exception):
    """Base class for errors raised while translating an address"""


class FrameExhausted(TranslationError):
    """Every physical frame has already been handed out"""


class IOFailure(TranslationError):
    """The backing store could not supply a page"""


class InvalidAccess(TranslationError):
    """A component was used outside its contract"""


class UndefinedStatistics(TranslationError):
    """Rates were requested before any address was translated"""


def page_number(virtual_addr: int) -> int:
    return (virtual_addr >> 8) & 0xFF


def offset(virtual_addr: int) -> int:
    return virtual_addr & 0xFF


def split_address(virtual_addr: int) -> Tuple[int, int]:
    """Split a virtual address into (page number, offset)"""
    return page_number(virtual_addr), offset(virtual_addr)


class TLBEntry:
    """Translation Lookaside Buffer entry"""

    def __init__(self):
        self.page_number = -1
        self.frame_number = -1
        self.occupied = False

    def set_mapping(self, page_num: int, frame_num: int):
        self.page_number = page_num
        self.frame_number = frame_num
        self.occupied = True

    def __repr__(self):
        if not self.occupied:
            return "TLB(empty)"
        return f"TLB({self.page_number}->{self.frame_number})"


class TLB:
    """Translation Lookaside Buffer implementation

    Slots are overwritten in FIFO order by a circular cursor. The same page
    may sit in several slots at once; lookups take the lowest slot.
    """

    def __init__(self, size: int = TLB_SIZE):
        if size < 1:
            raise ValueError("TLB size must be positive")
        self.size = size
        self.slots = [TLBEntry() for _ in range(size)]
        self.next_slot = 0
        self.hits = 0

    def lookup(self, page_num: int) -> Optional[int]:
        """Look up page number in TLB, return frame number if hit"""
        for entry in self.slots:
            if entry.occupied and entry.page_number == page_num:
                self.hits += 1
                return entry.frame_number
        return None

    def insert(self, page_num: int, frame_num: int):
        """Write a mapping into the slot under the cursor and advance it"""
        self.slots[self.next_slot].set_mapping(page_num, frame_num)
        self.next_slot = (self.next_slot + 1) % self.size

    def entries(self) -> List[Tuple[int, int, int]]:
        """Return (slot, page, frame) for every occupied slot"""
        return [(i, entry.page_number, entry.frame_number)
                for i, entry in enumerate(self.slots) if entry.occupied]

    def __len__(self) -> int:
        return sum(1 for entry in self.slots if entry.occupied)

    def __str__(self) -> str:
        return f"TLB Contents: {self.slots}"


class PageTableEntry:
    """A page table entry; frame_number only means something when valid"""

    def __init__(self):
        self.valid = False
        self.frame_number: Optional[int] = None

    def set_mapping(self, frame_num: int):
        self.frame_number = frame_num
        self.valid = True

    def __repr__(self):
        return f"PageTableEntry(valid={self.valid}, frame={self.frame_number})"


class PageTable:
    """Page Table implementation"""

    def __init__(self, num_entries: int = PAGE_TABLE_ENTRIES):
        self.num_entries = num_entries
        self.table = [PageTableEntry() for _ in range(num_entries)]

    def _entry(self, page_num: int) -> PageTableEntry:
        if not 0 <= page_num < self.num_entries:
            raise InvalidAccess(f"page {page_num} outside page table")
        return self.table[page_num]

    def is_resident(self, page_num: int) -> bool:
        return self._entry(page_num).valid

    def frame_of(self, page_num: int) -> int:
        """Get frame number for a resident page"""
        entry = self._entry(page_num)
        if not entry.valid:
            raise InvalidAccess(f"page {page_num} is not resident")
        return entry.frame_number

    def map(self, page_num: int, frame_num: int):
        """Set page to frame mapping"""
        self._entry(page_num).set_mapping(frame_num)

    def resident_pages(self) -> Dict[int, int]:
        return {page_num: entry.frame_number
                for page_num, entry in enumerate(self.table) if entry.valid}


class FrameStore:
    """Physical memory organised as frames of signed bytes

    Frames are handed out in order and never reclaimed.
    """

    def __init__(self, num_frames: int = NUMBER_OF_FRAMES,
                 frame_size: int = PAGE_SIZE):
        self.num_frames = num_frames
        self.frame_size = frame_size
        self.memory = np.zeros((num_frames, frame_size), dtype=np.int8)
        self.next_frame = 0

    @property
    def allocated(self) -> int:
        return self.next_frame

    def allocate_next(self) -> int:
        if self.next_frame >= self.num_frames:
            raise FrameExhausted(
                f"all {self.num_frames} frames are already allocated")
        frame_num = self.next_frame
        self.next_frame += 1
        return frame_num

    def _check_frame(self, frame_num: int):
        if not 0 <= frame_num < self.next_frame:
            raise InvalidAccess(f"frame {frame_num} has not been allocated")

    def write(self, frame_num: int, payload):
        """Replace the whole contents of a frame"""
        self._check_frame(frame_num)
        if isinstance(payload, np.ndarray):
            data = payload.astype(np.int8, copy=False).ravel()
        else:
            data = np.frombuffer(bytes(payload), dtype=np.int8)
        if data.size != self.frame_size:
            raise InvalidAccess(
                f"frame payload must be {self.frame_size} bytes, got {data.size}")
        self.memory[frame_num, :] = data

    def read_byte(self, frame_num: int, byte_offset: int) -> int:
        """Return the signed byte stored at offset within a frame"""
        self._check_frame(frame_num)
        if not 0 <= byte_offset < self.frame_size:
            raise InvalidAccess(f"offset {byte_offset} outside frame")
        return int(self.memory[frame_num, byte_offset])

    def frame(self, frame_num: int) -> bytes:
        self._check_frame(frame_num)
        return self.memory[frame_num].tobytes()


class Statistics:
    """Counters kept by a Translator"""

    def __init__(self):
        self.addresses_translated = 0
        self.page_faults = 0
        self.tlb_hits = 0

    @property
    def tlb_misses(self) -> int:
        return self.addresses_translated - self.tlb_hits

    def _rate(self, count: int) -> float:
        if self.addresses_translated == 0:
            raise UndefinedStatistics("no addresses have been translated")
        return count / self.addresses_translated

    @property
    def page_fault_rate(self) -> float:
        return self._rate(self.page_faults)

    @property
    def tlb_hit_rate(self) -> float:
        return self._rate(self.tlb_hits)

    def __repr__(self):
        return (f"Statistics(addresses={self.addresses_translated}, "
                f"faults={self.page_faults}, tlb_hits={self.tlb_hits})")


class Translator:
    """Main virtual memory translator

    The backing store only needs a read_page(page_num) method returning
    PAGE_SIZE bytes.
    """

    def __init__(self, backing_store, tlb_size: int = TLB_SIZE,
                 num_frames: int = NUMBER_OF_FRAMES, strict: bool = False):
        self.backing_store = backing_store
        self.tlb = TLB(tlb_size)
        self.page_table = PageTable()
        self.frames = FrameStore(num_frames)
        self.strict = strict
        self.stats = Statistics()

        # 1/0 per translated address
        self.page_fault_history: List[int] = []
        self.tlb_hit_history: List[int] = []

    def _handle_page_fault(self, page_num: int) -> int:
        """Load a page from the backing store and return its frame number"""
        frame_num = self.frames.allocate_next()
        page = self.backing_store.read_page(page_num)
        self.frames.write(frame_num, page)
        self.page_table.map(page_num, frame_num)
        self.stats.page_faults += 1
        logger.debug("page fault: page %d loaded into frame %d",
                     page_num, frame_num)
        return frame_num

    def translate(self, virtual_addr: int) -> Tuple[int, int]:
        """
        Translate a virtual address
        Returns: (physical_address, signed byte value)
        """
        if virtual_addr & ~ADDRESS_MASK:
            if self.strict:
                raise InvalidAccess(
                    f"virtual address {virtual_addr} is wider than 16 bits")
            logger.debug("masking virtual address %d to 16 bits", virtual_addr)

        page_num, page_offset = split_address(virtual_addr)

        page_fault = False
        frame_num = self.tlb.lookup(page_num)
        tlb_hit = frame_num is not None
        if tlb_hit:
            logger.debug("TLB hit: page %d -> frame %d", page_num, frame_num)
        else:
            if self.page_table.is_resident(page_num):
                frame_num = self.page_table.frame_of(page_num)
                logger.debug("page table hit: page %d -> frame %d",
                             page_num, frame_num)
            else:
                frame_num = self._handle_page_fault(page_num)
                page_fault = True
            self.tlb.insert(page_num, frame_num)

        physical_addr = (frame_num << 8) | page_offset
        value = self.frames.read_byte(frame_num, page_offset)

        self.stats.addresses_translated += 1
        if tlb_hit:
            self.stats.tlb_hits += 1
        self.tlb_hit_history.append(1 if tlb_hit else 0)
        self.page_fault_history.append(1 if page_fault else 0)
        return physical_addr, value

    def translate_all(self, addresses: Iterable[int]) -> List[Tuple[int, int, int]]:
        """Translate a complete address sequence in order"""
        results = []
        for vaddr in addresses:
            paddr, value = self.translate(vaddr)
            results.append((vaddr, paddr, value))
        return results

    def generate_statistics(self) -> Dict:
        """Get translation statistics"""
        return {
            'addresses_translated': self.stats.addresses_translated,
            'page_faults': self.stats.page_faults,
            'page_fault_rate': self.stats.page_fault_rate,
            'tlb_hits': self.stats.tlb_hits,
            'tlb_misses': self.stats.tlb_misses,
            'tlb_hit_rate': self.stats.tlb_hit_rate,
        }

    def memory_state(self) -> Dict:
        """Snapshot of the TLB, page table and frame usage"""
        return {
            'tlb': self.tlb.entries(),
            'page_table': self.page_table.resident_pages(),
            'frames_allocated': self.frames.allocated,
        }
