"""
core - Core utilities and models for the contract interaction fetcher.

This package contains:
- constants.py: Enums, defaults and chain signatures
- exceptions.py: Typed exceptions with error codes
- models.py: Data models (BlockRange, LogEntry, TransactionRecord, FetchResult)
- time.py: Clock helpers
- logging.py: Structured JSON logging
"""

from core.constants import (
    ChainType,
    ErrorCode,
    TransactionSource,
)
from core.exceptions import (
    AllProvidersFailedError,
    ChainMismatchError,
    ConfigurationError,
    FetchCancelledError,
    FetcherError,
    PartialRangeFailureError,
    ProviderCallError,
    ProviderTimeoutError,
    RateLimitError,
    TotalRangeFailureError,
    ValidationError,
)
from core.logging import get_logger, setup_logging
from core.models import (
    BlockRange,
    Failure,
    FetchResult,
    FetchSummary,
    LogEntry,
    RangeResult,
    Success,
    TransactionRecord,
)

__all__ = [
    # Constants
    "ChainType",
    "ErrorCode",
    "TransactionSource",
    # Exceptions
    "AllProvidersFailedError",
    "ChainMismatchError",
    "ConfigurationError",
    "FetchCancelledError",
    "FetcherError",
    "PartialRangeFailureError",
    "ProviderCallError",
    "ProviderTimeoutError",
    "RateLimitError",
    "TotalRangeFailureError",
    "ValidationError",
    # Models
    "BlockRange",
    "Failure",
    "FetchResult",
    "FetchSummary",
    "LogEntry",
    "RangeResult",
    "Success",
    "TransactionRecord",
    # Logging
    "get_logger",
    "setup_logging",
]
