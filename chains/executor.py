"""
chains/executor.py - Chain-isolated execution with provider failover.

Guarantees:
- Providers for a chain are tried strictly in registry order
- One attempt per provider, each bounded by a timeout
- A provider whose URL does not belong to the requested chain is never used
- Counters are updated for every attempt (never for skipped providers)
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional

import httpx

from chains.rate_limit import RateLimiter
from chains.registry import ChainProviderRegistry, ProviderDescriptor
from core.constants import DEFAULT_FAILOVER_TIMEOUT_MS
from core.exceptions import (
    AllProvidersFailedError,
    ChainMismatchError,
    ConfigurationError,
    FetchCancelledError,
    ProviderCallError,
    ProviderTimeoutError,
    ValidationError,
)
from core.logging import get_logger, log_attempt
from core.models import AttemptResult, Failure, Success
from core.time import elapsed_ms, ms_to_seconds

logger = get_logger(__name__)

Operation = Callable[[Any], Awaitable[Any]]

# Errors that mean "this provider could not serve the call". Anything else
# is a bug in the operation and propagates unchanged.
PROVIDER_FAILURES: tuple[type[BaseException], ...] = (
    ProviderCallError,
    ProviderTimeoutError,
    httpx.HTTPError,
    ValueError,
    KeyError,
)


class ChainIsolatedExecutor:
    """
    Runs chain-scoped operations against the first provider that succeeds.
    """

    def __init__(
        self,
        registry: ChainProviderRegistry,
        timeout_ms: int = DEFAULT_FAILOVER_TIMEOUT_MS,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.registry = registry
        self.timeout_ms = timeout_ms
        self.rate_limiter = rate_limiter

    def _check_chain(self, provider: ProviderDescriptor, chain: str) -> Optional[ChainMismatchError]:
        if self.registry.signatures.matches(provider.url, chain):
            return None
        detected = self.registry.signatures.detect(provider.url)
        return ChainMismatchError(
            f"Provider {provider.name} does not serve {chain} (url looks like {detected or 'unknown'})",
            details={"provider": provider.name, "chain": chain, "detected_chain": detected},
        )

    async def _attempt(
        self,
        provider: ProviderDescriptor,
        operation: Operation,
        timeout_seconds: Optional[float],
    ) -> AttemptResult:
        """One attempt against one provider, folded into Success/Failure."""
        start = time.monotonic()
        try:
            value = await asyncio.wait_for(operation(provider.client), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            return Failure(
                ProviderTimeoutError(
                    "Operation timeout",
                    details={"provider": provider.name, "timeout_s": timeout_seconds},
                ),
                provider.name,
                elapsed_ms(start),
            )
        except PROVIDER_FAILURES as e:
            return Failure(e, provider.name, elapsed_ms(start))
        return Success(value, provider.name, elapsed_ms(start))

    async def execute_with_failover(
        self,
        chain: str,
        operation: Operation,
        operation_name: str,
        per_call_timeout_ms: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Any:
        """
        Execute an operation with provider failover within one chain.

        Args:
            chain: Chain name; only its providers are considered
            operation: async callable taking a client; must be safe to retry
            operation_name: Used in logs and errors only
            per_call_timeout_ms: Timeout per provider attempt (default: executor's)
            cancel_event: Optional external cancellation signal

        Returns:
            The first successful operation result

        Raises:
            ConfigurationError: No providers for the chain
            FetchCancelledError: cancel_event was set before an attempt
            AllProvidersFailedError: Every provider failed or was skipped
        """
        if not chain:
            raise ConfigurationError("Chain is required")
        chain = chain.lower()
        providers = self.registry.providers_for(chain)

        timeout_ms = per_call_timeout_ms if per_call_timeout_ms is not None else self.timeout_ms
        timeout_seconds = ms_to_seconds(timeout_ms)

        last_error: Optional[str] = None
        attempted = 0
        skipped = 0

        for provider in providers:
            mismatch = self._check_chain(provider, chain)
            if mismatch is not None:
                skipped += 1
                logger.warning(
                    f"Skipping {provider.name} - not for {chain} chain",
                    extra={"context": {**mismatch.details, "operation": operation_name}},
                )
                continue

            if cancel_event is not None and cancel_event.is_set():
                raise FetchCancelledError(
                    f"{operation_name} cancelled on {chain}",
                    details={"chain": chain, "operation": operation_name},
                )

            if self.rate_limiter is not None:
                await self.rate_limiter.acquire()

            attempted += 1
            result = await self._attempt(provider, operation, timeout_seconds)

            if isinstance(result, Success):
                self.registry.record_outcome(provider, True)
                log_attempt(logger, chain, provider.name, operation_name, True, result.duration_ms)
                return result.value

            last_error = result.message
            self.registry.record_outcome(provider, False, last_error)
            log_attempt(
                logger, chain, provider.name, operation_name, False, result.duration_ms,
                error=last_error,
            )

        if attempted == 0:
            last_error = f"no {chain} provider passed chain validation"

        raise AllProvidersFailedError(
            chain,
            operation_name,
            last_error,
            details={"providers_attempted": attempted, "providers_skipped": skipped},
        )

    async def get_current_block_number(
        self,
        chain: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> int:
        """Current head block for a chain."""
        if not chain:
            raise ValidationError("Chain is required")
        return await self.execute_with_failover(
            chain,
            lambda client: client.get_block_number(),
            "getCurrentBlockNumber",
            cancel_event=cancel_event,
        )

    async def fetch_transaction_receipt(self, tx_hash: str, chain: str) -> Any:
        """Raw transaction receipt, as the chain's RPC returns it."""
        if not tx_hash or not chain:
            raise ValidationError("Transaction hash and chain are required")
        return await self.execute_with_failover(
            chain,
            lambda client: client.get_transaction_receipt(tx_hash),
            "fetchTransactionReceipt",
        )
