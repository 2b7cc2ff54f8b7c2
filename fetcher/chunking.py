"""
fetcher/chunking.py - Block range partitioning and result merging.

CONTRACTS:
- split_range(): consecutive, non-overlapping, each <= max_chunk_size,
  union == [from_block, to_block]
- merge_*(): first-seen wins, so feeding the same item twice (overlapping
  boundaries, provider retries) yields one entry
"""

from typing import Callable, Hashable, Iterable, List, TypeVar

from core.exceptions import ValidationError
from core.models import BlockRange, LogEntry, TransactionRecord

T = TypeVar("T")


def split_range(from_block: int, to_block: int, max_chunk_size: int) -> List[BlockRange]:
    """
    Partition an inclusive block range into bounded sub-ranges.

    Args:
        from_block: First block (inclusive)
        to_block: Last block (inclusive)
        max_chunk_size: Maximum blocks per sub-range

    Returns:
        ceil((to_block - from_block + 1) / max_chunk_size) ranges in block order
    """
    if max_chunk_size < 1:
        raise ValidationError(
            f"max_chunk_size must be positive, got {max_chunk_size}",
            details={"max_chunk_size": max_chunk_size},
        )
    whole = BlockRange(from_block, to_block)

    ranges = []
    start = whole.from_block
    while start <= whole.to_block:
        end = min(start + max_chunk_size - 1, whole.to_block)
        ranges.append(BlockRange(start, end))
        start = end + 1
    return ranges


def dedupe(items: Iterable[T], key: Callable[[T], Hashable]) -> List[T]:
    """Drop repeats by key, keeping the first occurrence and input order."""
    seen = set()
    out = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        out.append(item)
    return out


def merge_events(batches: Iterable[Iterable[LogEntry]]) -> List[LogEntry]:
    """Flatten event batches, unique by (transaction_hash, log_index)."""
    return dedupe((e for batch in batches for e in batch), key=lambda e: e.key)


def merge_transactions(batches: Iterable[Iterable[TransactionRecord]]) -> List[TransactionRecord]:
    """Flatten transaction batches, unique by transaction_hash."""
    return dedupe((tx for batch in batches for tx in batch), key=lambda tx: tx.key)
