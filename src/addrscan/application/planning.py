from __future__ import annotations
from typing import Iterator
from ..domain.models import WINDOW_SIZE, BlockRange, ScanWindow
from ..ports.rpc import LedgerClient

async def resolve_block_range(rpc: LedgerClient, from_raw: int, to_raw: int) -> BlockRange:
    """
    Negative values mean "unspecified": from -> genesis (0), to -> current head.
    The head query is made only when needed and its failure propagates.
    """
    start = from_raw if from_raw >= 0 else 0
    end = to_raw if to_raw >= 0 else await rpc.latest_block()
    if start > end:
        raise ValueError(f"from_block ({start}) must be <= to_block ({end})")
    return BlockRange(start, end)

def iter_windows(bounds: BlockRange, size: int = WINDOW_SIZE) -> Iterator[tuple[int, int]]:
    if size <= 0:
        raise ValueError("window size must be positive")
    w = ScanWindow.first(bounds, size)
    while True:
        yield w.from_block, w.to_block
        if not w.advance():
            break

def count_windows(bounds: BlockRange, size: int = WINDOW_SIZE) -> int:
    return (bounds.span() + size - 1) // size
