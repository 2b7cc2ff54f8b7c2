"""
fetcher/ - Contract interaction retrieval.

Modules:
- chunking: block range partitioning and dedup merging
- range_fetcher: chunked, failover-backed fetch over wide block ranges
- listener: polling-based live event delivery
"""

from fetcher.chunking import (
    dedupe,
    merge_events,
    merge_transactions,
    split_range,
)
from fetcher.listener import PollingEventListener, create_listener
from fetcher.range_fetcher import ChunkedRangeFetcher

__all__ = [
    "ChunkedRangeFetcher",
    "PollingEventListener",
    "create_listener",
    "dedupe",
    "merge_events",
    "merge_transactions",
    "split_range",
]
