"""
fetcher/listener.py - Live updates by polling, not subscriptions.

Public RPC endpoints drop server-side filters (eth_newFilter state expires,
eth_getFilterChanges answers "filter not found"), so "subscribe" is
implemented as a loop over the chunked range fetcher:

    every poll_interval_ms:
        head = current block
        fetch [last_seen_block + 1, head]
        callback(event) for each event not delivered before
        advance last_seen_block only when the whole window was fetched

A failed or partial poll keeps last_seen_block, so the window is retried;
events already delivered from it are suppressed by their dedup key.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Union

from core.constants import DEFAULT_POLL_INTERVAL_MS
from core.exceptions import ConfigurationError, FetcherError
from core.logging import get_logger
from core.models import LogEntry
from core.time import ms_to_seconds
from fetcher.range_fetcher import ChunkedRangeFetcher

logger = get_logger(__name__)

EventCallback = Callable[[LogEntry], Union[None, Awaitable[None]]]


class PollingEventListener:
    """Cooperative polling loop that delivers each new event once."""

    def __init__(
        self,
        fetcher: ChunkedRangeFetcher,
        address: str,
        chain: str,
        callback: EventCallback,
        topics: Optional[list] = None,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        from_block: Optional[int] = None,
        max_chunk_size: Optional[int] = None,
    ):
        self.fetcher = fetcher
        self.address = address
        self.chain = chain.lower()
        self.callback = callback
        self.topics = topics
        self.poll_interval_ms = poll_interval_ms
        self.max_chunk_size = max_chunk_size
        self.last_seen_block: Optional[int] = None if from_block is None else from_block - 1
        self.polls = 0
        self.delivered = 0

        self._seen: Dict[Hashable, int] = {}
        self._cancelled = False
        self._wakeup = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> Callable[[], None]:
        """Schedule the loop on the running event loop; returns cancel()."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self.cancel

    def cancel(self) -> None:
        """Stop scheduling polls. An in-flight poll finishes but is discarded."""
        if not self._cancelled:
            self._cancelled = True
            self._wakeup.set()
            logger.info(
                f"Listener for {self.address} on {self.chain} cancelled",
                extra={"context": {"chain": self.chain, "address": self.address}},
            )

    async def wait(self) -> None:
        """Wait for the loop to exit after cancel()."""
        if self._task is not None:
            await self._task

    async def _dispatch(self, event: LogEntry) -> None:
        try:
            result = self.callback(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.error(
                f"Listener callback failed for {event.transaction_hash}",
                extra={"context": {
                    "chain": self.chain,
                    "tx_hash": event.transaction_hash,
                    "log_index": event.log_index,
                }},
                exc_info=True,
            )

    async def poll_once(self) -> int:
        """
        Run one poll.

        Returns:
            Number of events delivered to the callback
        """
        self.polls += 1
        try:
            head = await self.fetcher.get_current_block_number(self.chain)

            if self.last_seen_block is None:
                self.last_seen_block = head
                logger.info(
                    f"Listener for {self.address} on {self.chain} starting after block {head}",
                    extra={"context": {"chain": self.chain, "address": self.address, "block": head}},
                )
                return 0

            if head <= self.last_seen_block:
                return 0

            result = await self.fetcher.fetch_interactions(
                self.address,
                self.chain,
                self.last_seen_block + 1,
                head,
                max_chunk_size=self.max_chunk_size,
                topics=self.topics,
            )
        except ConfigurationError:
            self.cancel()
            raise
        except FetcherError as e:
            logger.warning(
                f"Poll failed for {self.address} on {self.chain}, retrying window next tick: {e.message}",
                extra={"context": {
                    "chain": self.chain,
                    "address": self.address,
                    "last_seen_block": self.last_seen_block,
                    "error_code": e.code.value,
                }},
            )
            return 0

        if self._cancelled:
            return 0

        delivered = 0
        for event in result.events:
            if self._cancelled:
                # Window stays open; nothing after the cancel is delivered.
                self.delivered += delivered
                return delivered
            if event.key in self._seen:
                continue
            self._seen[event.key] = event.block_number
            await self._dispatch(event)
            delivered += 1
        self.delivered += delivered

        if result.is_partial:
            logger.warning(
                f"Partial poll for {self.address} on {self.chain}; window kept for retry",
                extra={"context": {
                    "chain": self.chain,
                    "last_seen_block": self.last_seen_block,
                    "head": head,
                    "skipped_ranges": result.summary.skipped_ranges,
                }},
            )
        else:
            self.last_seen_block = head
            # Windows never revisit blocks at or below the new mark.
            self._seen = {k: b for k, b in self._seen.items() if b > head}

        return delivered

    async def _run(self) -> None:
        interval = ms_to_seconds(self.poll_interval_ms)
        while not self._cancelled:
            try:
                await self.poll_once()
            except ConfigurationError as e:
                logger.error(
                    f"Listener stopped: {e.message}",
                    extra={"context": {"chain": self.chain, "address": self.address}},
                )
                break

            if self._cancelled:
                break
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass


def create_listener(
    fetcher: ChunkedRangeFetcher,
    address: str,
    chain: str,
    topics: Optional[list],
    callback: EventCallback,
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    from_block: Optional[int] = None,
    **kwargs: Any,
) -> Callable[[], None]:
    """
    Start a polling listener and return its cancel function.

    Must be called from inside a running event loop.
    """
    listener = PollingEventListener(
        fetcher,
        address,
        chain,
        callback,
        topics=topics,
        poll_interval_ms=poll_interval_ms,
        from_block=from_block,
        **kwargs,
    )
    return listener.start()
