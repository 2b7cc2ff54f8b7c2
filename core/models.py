# PATH: core/models.py
"""
Core data models for the contract interaction fetcher.

DEDUP KEY CONTRACT
==================
  LogEntry:          (transaction_hash, log_index)
  TransactionRecord: transaction_hash

One transaction can emit several logs, so logs need the log index.
Hashes are compared lowercased; "0xABC" and "0xabc" are the same key.
==================

WIRE SHAPE
==========
FetchResult.to_dict() produces the camelCase shape consumed by the
analytics/report layer:
  {"transactions": [...], "events": [...], "summary": {...}}
==========
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar, Union

from core.constants import TransactionSource
from core.exceptions import PartialRangeFailureError, ValidationError

T = TypeVar("T")


# ============================================================================
# BLOCK RANGES
# ============================================================================

@dataclass(frozen=True)
class BlockRange:
    """Inclusive [from_block, to_block] pair."""

    from_block: int
    to_block: int

    def __post_init__(self):
        if self.from_block < 0 or self.to_block < 0:
            raise ValidationError(
                f"Block numbers must be non-negative: {self.from_block}-{self.to_block}",
                details={"from_block": self.from_block, "to_block": self.to_block},
            )
        if self.from_block > self.to_block:
            raise ValidationError(
                f"from_block {self.from_block} is after to_block {self.to_block}",
                details={"from_block": self.from_block, "to_block": self.to_block},
            )

    @property
    def size(self) -> int:
        return self.to_block - self.from_block + 1

    def contains(self, block_number: int) -> bool:
        return self.from_block <= block_number <= self.to_block

    def as_tuple(self) -> Tuple[int, int]:
        return (self.from_block, self.to_block)

    def __str__(self) -> str:
        return f"{self.from_block}-{self.to_block}"


# ============================================================================
# NORMALIZED RECORDS
# ============================================================================

@dataclass
class LogEntry:
    """A contract event, normalized across chains."""

    transaction_hash: str
    block_number: int
    log_index: int
    address: str
    topics: List[str] = field(default_factory=list)
    data: Any = None
    block_hash: Optional[str] = None
    transaction_index: Optional[int] = None
    removed: bool = False
    timestamp: Optional[int] = None
    chain: Optional[str] = None

    @property
    def key(self) -> Tuple[str, int]:
        return (self.transaction_hash.lower(), self.log_index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactionHash": self.transaction_hash,
            "blockNumber": self.block_number,
            "logIndex": self.log_index,
            "address": self.address,
            "topics": list(self.topics),
            "data": self.data,
            "blockHash": self.block_hash,
            "transactionIndex": self.transaction_index,
            "removed": self.removed,
            "timestamp": self.timestamp,
            "chain": self.chain,
        }


@dataclass
class TransactionRecord:
    """A transaction that touched the contract, normalized across chains."""

    transaction_hash: str
    block_number: int
    from_address: Optional[str]
    to_address: Optional[str]
    value: str = "0"
    gas_used: str = "0"
    gas_price: str = "0"
    gas_limit: str = "0"
    input: str = "0x"
    nonce: Optional[int] = None
    status: Optional[bool] = None
    timestamp: Optional[int] = None
    chain: Optional[str] = None
    source: TransactionSource = TransactionSource.EVENT

    @property
    def key(self) -> str:
        return self.transaction_hash.lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactionHash": self.transaction_hash,
            "blockNumber": self.block_number,
            "from": self.from_address,
            "to": self.to_address,
            "value": self.value,
            "gasUsed": self.gas_used,
            "gasPrice": self.gas_price,
            "gasLimit": self.gas_limit,
            "input": self.input,
            "nonce": self.nonce,
            "status": self.status,
            "timestamp": self.timestamp,
            "chain": self.chain,
            "source": self.source.value,
        }


@dataclass
class RangeResult:
    """What one sub-range call returns."""

    events: List[LogEntry] = field(default_factory=list)
    transactions: List[TransactionRecord] = field(default_factory=list)
    direct_transactions: int = 0


# ============================================================================
# FETCH OUTPUT
# ============================================================================

@dataclass
class FetchSummary:
    """Aggregate over a completed chunked fetch."""

    total_transactions: int = 0
    total_events: int = 0
    blocks_scanned: int = 0
    total_ranges: int = 0
    skipped_ranges: int = 0
    event_transactions: int = 0
    direct_transactions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalTransactions": self.total_transactions,
            "totalEvents": self.total_events,
            "blocksScanned": self.blocks_scanned,
            "totalRanges": self.total_ranges,
            "skippedRanges": self.skipped_ranges,
            "eventTransactions": self.event_transactions,
            "directTransactions": self.direct_transactions,
        }


@dataclass
class FetchResult:
    """Merged, deduplicated output of fetch_interactions."""

    transactions: List[TransactionRecord]
    events: List[LogEntry]
    summary: FetchSummary
    partial_failure: Optional[PartialRangeFailureError] = None

    @property
    def is_partial(self) -> bool:
        return self.partial_failure is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactions": [tx.to_dict() for tx in self.transactions],
            "events": [ev.to_dict() for ev in self.events],
            "summary": self.summary.to_dict(),
        }


# ============================================================================
# ATTEMPT RESULTS
# ============================================================================

@dataclass(frozen=True)
class Success(Generic[T]):
    """A provider attempt that produced a value."""

    value: T
    provider: str
    duration_ms: int = 0

    ok = True


@dataclass(frozen=True)
class Failure:
    """A provider attempt that failed with an expected provider error."""

    error: Exception
    provider: str
    duration_ms: int = 0

    ok = False

    @property
    def message(self) -> str:
        if hasattr(self.error, "message"):
            return self.error.message
        return str(self.error) or type(self.error).__name__


AttemptResult = Union[Success[Any], Failure]
