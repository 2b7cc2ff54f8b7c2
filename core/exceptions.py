# PATH: core/exceptions.py
"""
Typed exceptions for the contract interaction fetcher.

Per-provider failures (ChainMismatchError, ProviderCallError,
ProviderTimeoutError) are absorbed by the executor. Scope exhaustion
(AllProvidersFailedError, TotalRangeFailureError) propagates to callers.
"""

from typing import Optional

from core.constants import ErrorCode


class FetcherError(Exception):
    """Base exception for the fetcher."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self):
        return f"[{self.code.value}] {self.message}"


class ConfigurationError(FetcherError):
    """No providers configured for a chain, or invalid configuration."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        code: ErrorCode = ErrorCode.CONFIG_NO_PROVIDERS,
    ):
        super().__init__(message, code, details)


class ValidationError(FetcherError):
    """Caller supplied invalid arguments."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.VALIDATION_FAILED, details)


class ChainMismatchError(FetcherError):
    """Provider URL does not belong to the requested chain."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.CHAIN_MISMATCH, details)


class ProviderCallError(FetcherError):
    """Underlying RPC call failed (node error, malformed response, HTTP error)."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        code: ErrorCode = ErrorCode.PROVIDER_RPC_ERROR,
    ):
        super().__init__(message, code, details)


class RateLimitError(ProviderCallError):
    """Provider answered HTTP 429."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, details, ErrorCode.PROVIDER_RATE_LIMIT)


class ProviderTimeoutError(FetcherError):
    """A single provider attempt exceeded its timeout."""

    def __init__(self, message: str = "Operation timeout", details: Optional[dict] = None):
        super().__init__(message, ErrorCode.PROVIDER_TIMEOUT, details)


class AllProvidersFailedError(FetcherError):
    """Every provider for a chain was tried and failed."""

    def __init__(
        self,
        chain: str,
        operation_name: str,
        last_error: Optional[str],
        details: Optional[dict] = None,
    ):
        self.chain = chain
        self.operation_name = operation_name
        self.last_error = last_error
        super().__init__(
            f"All {chain} providers failed for {operation_name}: {last_error}",
            ErrorCode.ALL_PROVIDERS_FAILED,
            {
                "chain": chain,
                "operation": operation_name,
                "last_error": last_error,
                **(details or {}),
            },
        )


class PartialRangeFailureError(FetcherError):
    """
    Some (not all) sub-ranges failed after exhausting providers.

    Never raised by the fetcher: attached to the degraded FetchResult.
    """

    def __init__(
        self,
        failed_ranges: list[tuple[int, int]],
        total_ranges: int,
        details: Optional[dict] = None,
    ):
        self.failed_ranges = list(failed_ranges)
        self.total_ranges = total_ranges
        super().__init__(
            f"{len(self.failed_ranges)} of {total_ranges} sub-ranges failed",
            ErrorCode.PARTIAL_RANGE_FAILURE,
            {
                "failed_ranges": self.failed_ranges,
                "total_ranges": total_ranges,
                **(details or {}),
            },
        )


class TotalRangeFailureError(FetcherError):
    """Every sub-range failed."""

    def __init__(
        self,
        failed_count: int,
        total_ranges: int,
        details: Optional[dict] = None,
    ):
        self.failed_count = failed_count
        self.total_ranges = total_ranges
        super().__init__(
            f"{failed_count} of {total_ranges} sub-ranges failed",
            ErrorCode.TOTAL_RANGE_FAILURE,
            {
                "failed_ranges": failed_count,
                "total_ranges": total_ranges,
                **(details or {}),
            },
        )


class FetchCancelledError(FetcherError):
    """The caller's cancellation signal was set."""

    def __init__(self, message: str = "Fetch cancelled", details: Optional[dict] = None):
        super().__init__(message, ErrorCode.CANCELLED, details)
