# PATH: fetcher/range_fetcher.py
"""
Chunked range fetcher.

Pulls every event/transaction for a contract over a wide block range by
splitting it into sub-ranges small enough for public RPC endpoints, then
running each through the chain-isolated executor with bounded concurrency.

FAILURE CONTRACT:
- A sub-range whose providers are all exhausted is skipped and counted
- Some skipped  -> FetchResult.partial_failure + summary.skipped_ranges
- All skipped   -> TotalRangeFailureError (never an empty "success")
- Configuration errors and cancellation are never absorbed
"""

import asyncio
from typing import Any, Dict, List, Optional

from chains.executor import ChainIsolatedExecutor
from chains.rate_limit import RateLimiter
from chains.registry import ChainProviderRegistry
from config import FetcherSettings, load_rpc_config
from core.constants import DEFAULT_MAX_CHUNK_SIZE, DEFAULT_MAX_CONCURRENCY
from core.exceptions import (
    AllProvidersFailedError,
    FetchCancelledError,
    PartialRangeFailureError,
    TotalRangeFailureError,
    ValidationError,
)
from core.logging import get_logger, log_range_failure
from core.models import BlockRange, FetchResult, FetchSummary, RangeResult
from fetcher.chunking import merge_events, merge_transactions, split_range

logger = get_logger(__name__)


class ChunkedRangeFetcher:
    """
    Fetches contract interactions across chains in bounded sub-ranges.
    """

    def __init__(
        self,
        executor: ChainIsolatedExecutor,
        max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        per_call_timeout_ms: Optional[int] = None,
    ):
        if max_concurrency < 1:
            raise ValidationError(
                f"max_concurrency must be positive, got {max_concurrency}",
                details={"max_concurrency": max_concurrency},
            )
        self.executor = executor
        self.max_chunk_size = max_chunk_size
        self.max_concurrency = max_concurrency
        self.per_call_timeout_ms = per_call_timeout_ms

    @classmethod
    def from_settings(
        cls,
        settings: FetcherSettings,
        chain_configs: Optional[Dict[str, Any]] = None,
        **client_kwargs: Any,
    ) -> "ChunkedRangeFetcher":
        """
        Wire registry, rate limiter and executor from configuration.

        Args:
            settings: Tunables from config.load_settings()
            chain_configs: config.load_rpc_config() output (loaded when None)
            **client_kwargs: Passed to every RPC client
        """
        if chain_configs is None:
            chain_configs = load_rpc_config()

        registry = ChainProviderRegistry.from_config(
            chain_configs,
            only_chain=settings.only_chain,
            **client_kwargs,
        )
        executor = ChainIsolatedExecutor(
            registry,
            timeout_ms=settings.failover_timeout_ms,
            rate_limiter=RateLimiter(settings.max_requests_per_second),
        )
        return cls(
            executor,
            max_chunk_size=settings.max_chunk_size,
            max_concurrency=settings.max_concurrency,
        )

    @property
    def registry(self) -> ChainProviderRegistry:
        return self.executor.registry

    @property
    def supported_chains(self) -> List[str]:
        return self.registry.supported_chains

    async def _fetch_sub_range(
        self,
        semaphore: asyncio.Semaphore,
        address: str,
        chain: str,
        block_range: BlockRange,
        topics: Optional[list],
        cancel_event: Optional[asyncio.Event],
    ) -> RangeResult | AllProvidersFailedError:
        async with semaphore:
            if cancel_event is not None and cancel_event.is_set():
                raise FetchCancelledError(
                    f"Fetch cancelled before blocks {block_range}",
                    details={"chain": chain, "address": address, "range": str(block_range)},
                )
            try:
                return await self.executor.execute_with_failover(
                    chain,
                    lambda client: client.fetch_range(address, block_range, topics),
                    f"fetchRange[{block_range}]",
                    per_call_timeout_ms=self.per_call_timeout_ms,
                    cancel_event=cancel_event,
                )
            except AllProvidersFailedError as e:
                log_range_failure(
                    logger, chain, address,
                    block_range.from_block, block_range.to_block,
                    e.last_error or e.message,
                )
                return e

    async def fetch_interactions(
        self,
        address: str,
        chain: str,
        from_block: int,
        to_block: int,
        max_chunk_size: Optional[int] = None,
        topics: Optional[list] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> FetchResult:
        """
        Retrieve every event/transaction for a contract over a block range.

        Args:
            address: Contract address (chain-appropriate format)
            chain: Chain name
            from_block: First block (inclusive)
            to_block: Last block (inclusive)
            max_chunk_size: Blocks per sub-range (default: fetcher's)
            topics: Optional log topic filter
            cancel_event: Optional external cancellation signal

        Returns:
            FetchResult with deduplicated transactions/events and a summary

        Raises:
            ValidationError: Bad arguments
            ConfigurationError: No providers for the chain
            TotalRangeFailureError: Every sub-range failed
            FetchCancelledError: cancel_event was set
        """
        if not address or not chain:
            raise ValidationError("Contract address and chain are required")
        chain = chain.lower()
        chunk_size = max_chunk_size if max_chunk_size is not None else self.max_chunk_size

        ranges = split_range(from_block, to_block, chunk_size)

        # Fail fast on configuration before fanning out.
        self.registry.providers_for(chain)

        logger.info(
            f"Fetching {address} on {chain}: blocks {from_block}-{to_block} in {len(ranges)} sub-range(s)",
            extra={"context": {
                "chain": chain,
                "address": address,
                "from_block": from_block,
                "to_block": to_block,
                "sub_ranges": len(ranges),
                "max_chunk_size": chunk_size,
            }},
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = [
            asyncio.create_task(
                self._fetch_sub_range(semaphore, address, chain, br, topics, cancel_event)
            )
            for br in ranges
        ]
        try:
            outcomes = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        successes: List[RangeResult] = []
        scanned = 0
        failed: List[tuple[BlockRange, AllProvidersFailedError]] = []
        for block_range, outcome in zip(ranges, outcomes):
            if isinstance(outcome, AllProvidersFailedError):
                failed.append((block_range, outcome))
            else:
                successes.append(outcome)
                scanned += block_range.size

        context = {
            "chain": chain,
            "address": address,
            "from_block": from_block,
            "to_block": to_block,
        }

        if failed and len(failed) == len(ranges):
            raise TotalRangeFailureError(
                len(failed),
                len(ranges),
                details={**context, "last_error": failed[-1][1].last_error},
            )

        events = merge_events(r.events for r in successes)
        transactions = merge_transactions(r.transactions for r in successes)

        partial = None
        if failed:
            partial = PartialRangeFailureError(
                [br.as_tuple() for br, _ in failed],
                len(ranges),
                details=context,
            )
            logger.warning(
                f"Partial fetch for {address} on {chain}: {partial.message}",
                extra={"context": {**context, "failed_ranges": partial.failed_ranges}},
            )

        summary = FetchSummary(
            total_transactions=len(transactions),
            total_events=len(events),
            blocks_scanned=scanned,
            total_ranges=len(ranges),
            skipped_ranges=len(failed),
            event_transactions=len({e.transaction_hash.lower() for e in events}),
            direct_transactions=sum(r.direct_transactions for r in successes),
        )

        logger.info(
            f"Fetch complete for {address} on {chain}",
            extra={"context": {**context, **summary.to_dict()}},
        )

        return FetchResult(
            transactions=transactions,
            events=events,
            summary=summary,
            partial_failure=partial,
        )

    async def fetch_transactions(
        self,
        contract_address: str,
        from_block: int,
        to_block: int,
        chain: str,
    ) -> FetchResult:
        """Positional-order alias of fetch_interactions for older callers."""
        return await self.fetch_interactions(contract_address, chain, from_block, to_block)

    async def get_current_block_number(
        self,
        chain: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> int:
        return await self.executor.get_current_block_number(chain, cancel_event=cancel_event)

    async def fetch_transaction_receipt(self, tx_hash: str, chain: str) -> Any:
        return await self.executor.fetch_transaction_receipt(tx_hash, chain)

    def get_provider_stats(self) -> Dict[str, Any]:
        return self.registry.get_stats()

    async def test_providers(self, chain: str) -> Dict[str, Any]:
        return await self.registry.test_providers(chain)

    async def close(self) -> None:
        await self.registry.close_all()
        logger.info("Fetcher closed")
