#!/usr/bin/env python3
"""
Command line front end for the virtual memory translator.

Usage:
    memsim.py <address-file> [--backing-store FILE] [--plot out.png]
"""

import argparse
import logging
import sys
from typing import Dict, Iterator, List, Optional, TextIO

import numpy as np

from backing_store import DEFAULT_FILENAME, BackingStore
from virtualsim import (NUMBER_OF_FRAMES, TLB_SIZE, TranslationError,
                        Translator, UndefinedStatistics)

logger = logging.getLogger(__name__)


def read_addresses(stream: TextIO) -> Iterator[int]:
    """Yield one decimal address per non-blank line"""
    for line_no, line in enumerate(stream, 1):
        text = line.strip()
        if not text:
            continue
        try:
            yield int(text)
        except ValueError:
            raise ValueError(f"line {line_no}: not an address: {text!r}") from None


def format_result(vaddr: int, paddr: int, value: int) -> str:
    return f"Virtual address: {vaddr} Physical address: {paddr} Value: {value}"


def format_statistics(translator: Translator) -> List[str]:
    """Summary lines; rates read 'undefined' when nothing was translated"""
    stats = translator.stats
    try:
        fault_rate = f"{stats.page_fault_rate:.3f}"
        hit_rate = f"{stats.tlb_hit_rate:.3f}"
    except UndefinedStatistics:
        fault_rate = hit_rate = "undefined"
    return [
        f"Number of Translated Addresses = {stats.addresses_translated}",
        f"Page Faults = {stats.page_faults}",
        f"Page Fault Rate = {fault_rate}",
        f"TLB Hits = {stats.tlb_hits}",
        f"TLB Hit Rate = {hit_rate}",
    ]


def cumulative_rates(translator: Translator) -> Dict[str, np.ndarray]:
    """Running page-fault and TLB-hit rates after each access"""
    faults = np.asarray(translator.page_fault_history, dtype=float)
    hits = np.asarray(translator.tlb_hit_history, dtype=float)
    accesses = np.arange(1, len(faults) + 1)
    return {
        'accesses': accesses,
        'page_fault_rate': np.cumsum(faults) / accesses,
        'tlb_hit_rate': np.cumsum(hits) / accesses,
    }


def plot_history(translator: Translator, path: str):
    """Save a chart of the running fault and TLB-hit rates"""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    rates = cumulative_rates(translator)
    fig, ax = plt.subplots(figsize=(8, 4))
    ax.plot(rates['accesses'], rates['page_fault_rate'], label="Page fault rate")
    ax.plot(rates['accesses'], rates['tlb_hit_rate'], label="TLB hit rate")
    ax.set_xlabel("Addresses translated")
    ax.set_ylabel("Rate")
    ax.set_ylim(0, 1)
    ax.set_title("Virtual memory translation")
    ax.legend()
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    logger.info("saved history chart to %s", path)


def run_translation(addresses: TextIO, translator: Translator,
                    out: Optional[TextIO] = None):
    if out is None:
        out = sys.stdout
    for vaddr in read_addresses(addresses):
        paddr, value = translator.translate(vaddr)
        print(format_result(vaddr, paddr, value), file=out)
    for line in format_statistics(translator):
        print(line, file=out)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Translate virtual addresses using a TLB, a page table "
                    "and demand paging from a backing store")
    parser.add_argument("addresses", help="file of decimal virtual addresses, one per line")
    parser.add_argument("--backing-store", default=DEFAULT_FILENAME,
                        help="backing store file; named BACKING_STORE.bin rather than "
                             "the bare BACKING_STORE (default: %(default)s)")
    parser.add_argument("--frames", type=int, default=NUMBER_OF_FRAMES,
                        help="number of physical frames, 1-256 (default: %(default)s)")
    parser.add_argument("--tlb-size", type=int, default=TLB_SIZE,
                        help="number of TLB entries (default: %(default)s)")
    parser.add_argument("--strict", action="store_true",
                        help="reject addresses wider than 16 bits instead of masking them")
    parser.add_argument("--plot", metavar="PNG",
                        help="save a chart of the running fault and TLB-hit rates")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="log every translation step")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    if not 1 <= args.frames <= NUMBER_OF_FRAMES:
        parser.error(f"--frames must be between 1 and {NUMBER_OF_FRAMES}")
    if args.tlb_size < 1:
        parser.error("--tlb-size must be positive")

    try:
        with BackingStore(args.backing_store) as store, \
                open(args.addresses) as addresses:
            translator = Translator(store, tlb_size=args.tlb_size,
                                    num_frames=args.frames, strict=args.strict)
            run_translation(addresses, translator)
    except (TranslationError, OSError, ValueError) as e:
        logger.debug("translation aborted", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger.info("translated %d addresses", translator.stats.addresses_translated)
    if args.plot:
        plot_history(translator, args.plot)
    return 0


if __name__ == "__main__":
    sys.exit(main())
