"""
chains/clients.py - Per-endpoint JSON-RPC clients.

One client is bound to one endpoint URL. Failover across endpoints is the
executor's job, not the client's; every failure here surfaces as a typed
ProviderCallError / ProviderTimeoutError so the executor can move on.

Log retrieval always uses explicit block ranges (eth_getLogs,
starknet_getEvents). Server-side filters (eth_newFilter +
eth_getFilterChanges) are not used: public endpoints drop them after a
timeout or node restart and answer "filter not found".
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from core.constants import (
    DEFAULT_DIRECT_SCAN_MAX_BLOCKS,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_STARKNET_EVENTS_PAGE_SIZE,
    DEFAULT_TX_BATCH_SIZE,
    CONNECTION_TEST_TIMEOUT_SECONDS,
    FILTER_NOT_FOUND_MARKERS,
    ChainType,
    ErrorCode,
    TransactionSource,
)
from core.exceptions import (
    ConfigurationError,
    ProviderCallError,
    ProviderTimeoutError,
    RateLimitError,
)
from core.logging import get_logger
from core.models import BlockRange, LogEntry, RangeResult, TransactionRecord

logger = get_logger(__name__)


def hex_to_int(value: Any) -> Optional[int]:
    """Parse a 0x-quantity (or plain int) into int."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith(("0x", "0X")) else int(value)
    raise ValueError(f"Cannot parse quantity: {value!r}")


def to_hex(value: int) -> str:
    return hex(value)


class JsonRpcClient(ABC):
    """
    JSON-RPC 2.0 client for a single endpoint.

    The httpx.AsyncClient is created lazily and reused for the lifetime
    of the client.
    """

    chain_type: ChainType = ChainType.EVM
    block_number_method = "eth_blockNumber"

    def __init__(
        self,
        url: str,
        chain: str,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.chain = chain
        self.timeout_seconds = timeout_seconds
        self._client = http_client
        self._owns_client = http_client is None
        self._request_id = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_connections=10),
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def call(
        self,
        method: str,
        params: list | dict | None = None,
        timeout_seconds: float | None = None,
    ) -> Any:
        """
        Make one JSON-RPC call.

        Args:
            method: RPC method name
            params: Method parameters
            timeout_seconds: Override for the HTTP timeout

        Returns:
            The "result" member of the response

        Raises:
            RateLimitError: HTTP 429
            ProviderTimeoutError: HTTP-level timeout
            ProviderCallError: transport error, non-2xx, RPC error or malformed body
        """
        client = await self._get_client()
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params if params is not None else [],
            "id": self._next_request_id(),
        }
        details = {"url": self.url, "method": method, "chain": self.chain}
        timeout = timeout_seconds if timeout_seconds is not None else self.timeout_seconds

        try:
            resp = await client.post(self.url, json=payload, timeout=timeout)
        except httpx.TimeoutException:
            raise ProviderTimeoutError(f"Request timeout after {timeout}s", details=details)
        except httpx.HTTPError as e:
            raise ProviderCallError(f"HTTP transport error: {e}", details=details)

        if resp.status_code == 429:
            raise RateLimitError(f"Rate limited by {self.url}", details=details)
        if resp.status_code >= 400:
            raise ProviderCallError(
                f"HTTP {resp.status_code}: {resp.reason_phrase}",
                details={**details, "status_code": resp.status_code},
            )

        try:
            body = resp.json()
        except ValueError:
            raise ProviderCallError("Malformed JSON response", details=details)

        if not isinstance(body, dict):
            raise ProviderCallError("Unexpected JSON-RPC response shape", details=details)

        error = body.get("error")
        if error:
            if isinstance(error, dict):
                message = error.get("message", str(error))
                code = error.get("code")
            else:
                message, code = str(error), None
            raise ProviderCallError(
                f"RPC error: {message}",
                details={
                    **details,
                    "rpc_code": code,
                    "filter_not_found": any(m in message.lower() for m in FILTER_NOT_FOUND_MARKERS),
                },
            )

        if "result" not in body:
            raise ProviderCallError("JSON-RPC response has no result", details=details)

        return body["result"]

    async def call_object(self, method: str, params: list | dict | None = None) -> dict | None:
        """call() for methods answering with an object or null."""
        result = await self.call(method, params)
        if result is not None and not isinstance(result, dict):
            raise ProviderCallError(
                f"{method} returned {type(result).__name__}, expected an object",
                details={"url": self.url, "method": method, "chain": self.chain},
            )
        return result

    async def get_block_number(self) -> int:
        result = await self.call(self.block_number_method)
        return hex_to_int(result)

    @abstractmethod
    async def fetch_range(
        self,
        address: str,
        block_range: BlockRange,
        topics: list | None = None,
    ) -> RangeResult:
        """Events and transactions for one bounded block range."""

    async def test_connection(self) -> bool:
        """Cheap liveness check."""
        try:
            await self.call(self.block_number_method, timeout_seconds=CONNECTION_TEST_TIMEOUT_SECONDS)
            return True
        except (ProviderCallError, ProviderTimeoutError) as e:
            logger.debug(
                f"Connection test failed for {self.url}: {e.message}",
                extra={"context": {"url": self.url, "chain": self.chain}},
            )
            return False


class EvmRpcClient(JsonRpcClient):
    """
    Client for Ethereum-compatible chains.

    fetch_range: logs first, then the transactions behind them. Direct
    block scanning only kicks in for small ranges with no logs.
    """

    chain_type = ChainType.EVM

    def __init__(
        self,
        url: str,
        chain: str = "ethereum",
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
        tx_batch_size: int = DEFAULT_TX_BATCH_SIZE,
        direct_scan_max_blocks: int = DEFAULT_DIRECT_SCAN_MAX_BLOCKS,
        include_timestamps: bool = True,
    ):
        super().__init__(url, chain, timeout_seconds, http_client)
        self.tx_batch_size = tx_batch_size
        self.direct_scan_max_blocks = direct_scan_max_blocks
        self.include_timestamps = include_timestamps

    async def get_chain_id(self) -> int:
        result = await self.call("eth_chainId", timeout_seconds=CONNECTION_TEST_TIMEOUT_SECONDS)
        return hex_to_int(result)

    async def get_block(self, block_number: int, full_transactions: bool = False) -> dict | None:
        return await self.call_object("eth_getBlockByNumber", [to_hex(block_number), full_transactions])

    async def get_transaction(self, tx_hash: str) -> dict | None:
        return await self.call_object("eth_getTransactionByHash", [tx_hash])

    async def get_transaction_receipt(self, tx_hash: str) -> dict | None:
        return await self.call_object("eth_getTransactionReceipt", [tx_hash])

    async def get_logs(
        self,
        address: str,
        block_range: BlockRange,
        topics: list | None = None,
    ) -> list[LogEntry]:
        """eth_getLogs over an explicit block range."""
        log_filter: dict[str, Any] = {
            "address": address,
            "fromBlock": to_hex(block_range.from_block),
            "toBlock": to_hex(block_range.to_block),
        }
        if topics:
            log_filter["topics"] = topics

        raw_logs = await self.call("eth_getLogs", [log_filter])
        if not isinstance(raw_logs, list):
            raise ProviderCallError(
                "eth_getLogs returned a non-list result",
                details={"url": self.url, "range": str(block_range)},
            )
        return [self._parse_log(raw) for raw in raw_logs]

    def _parse_log(self, raw: dict) -> LogEntry:
        try:
            return LogEntry(
                transaction_hash=raw["transactionHash"],
                block_number=hex_to_int(raw["blockNumber"]),
                log_index=hex_to_int(raw["logIndex"]),
                address=raw.get("address"),
                topics=list(raw.get("topics") or []),
                data=raw.get("data"),
                block_hash=raw.get("blockHash"),
                transaction_index=hex_to_int(raw.get("transactionIndex")),
                removed=bool(raw.get("removed", False)),
                chain=self.chain,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ProviderCallError(
                f"Malformed log entry: {e}",
                details={"url": self.url},
            )

    def _parse_transaction(
        self,
        tx: dict,
        receipt: dict | None,
        source: TransactionSource,
        timestamp: int | None = None,
    ) -> TransactionRecord:
        try:
            status = None
            if receipt is not None and receipt.get("status") is not None:
                status = hex_to_int(receipt["status"]) == 1
            return TransactionRecord(
                transaction_hash=tx["hash"],
                block_number=hex_to_int(tx["blockNumber"]),
                from_address=tx.get("from"),
                to_address=tx.get("to"),
                value=tx.get("value") or "0",
                gas_used=(receipt or {}).get("gasUsed") or "0",
                gas_price=tx.get("gasPrice") or "0",
                gas_limit=tx.get("gas") or "0",
                input=tx.get("input") or "0x",
                nonce=hex_to_int(tx.get("nonce")),
                status=status,
                timestamp=timestamp,
                chain=self.chain,
                source=source,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ProviderCallError(
                f"Malformed transaction: {e}",
                details={"url": self.url},
            )

    async def _fetch_transaction(self, tx_hash: str) -> TransactionRecord | None:
        tx, receipt = await asyncio.gather(
            self.get_transaction(tx_hash),
            self.get_transaction_receipt(tx_hash),
        )
        if not tx:
            logger.debug(
                f"Transaction {tx_hash} not found on {self.url}",
                extra={"context": {"tx_hash": tx_hash, "chain": self.chain}},
            )
            return None
        return self._parse_transaction(tx, receipt, TransactionSource.EVENT)

    async def _block_timestamps(self, block_numbers: list[int]) -> dict[int, int]:
        timestamps: dict[int, int] = {}
        for i in range(0, len(block_numbers), self.tx_batch_size):
            batch = block_numbers[i:i + self.tx_batch_size]
            blocks = await asyncio.gather(*(self.get_block(n) for n in batch))
            for number, block in zip(batch, blocks):
                if block and block.get("timestamp") is not None:
                    timestamps[number] = hex_to_int(block["timestamp"])
        return timestamps

    async def _scan_blocks(self, address: str, block_range: BlockRange) -> list[TransactionRecord]:
        """Walk every block looking for transactions to/from the contract."""
        target = address.lower()
        found: list[TransactionRecord] = []

        for number in range(block_range.from_block, block_range.to_block + 1):
            block = await self.get_block(number, full_transactions=True)
            if not block:
                continue
            block_ts = hex_to_int(block.get("timestamp"))
            block_txs = block.get("transactions") or []
            if not isinstance(block_txs, list):
                raise ProviderCallError(
                    f"Block {number} has a malformed transaction list",
                    details={"url": self.url, "block": number},
                )
            for tx in block_txs:
                if not isinstance(tx, dict):
                    continue
                to_match = (tx.get("to") or "").lower() == target
                from_match = (tx.get("from") or "").lower() == target
                if not (to_match or from_match):
                    continue
                receipt = await self.get_transaction_receipt(tx["hash"])
                source = TransactionSource.TO_CONTRACT if to_match else TransactionSource.FROM_CONTRACT
                found.append(self._parse_transaction(tx, receipt, source, block_ts))

        return found

    async def fetch_range(
        self,
        address: str,
        block_range: BlockRange,
        topics: list | None = None,
    ) -> RangeResult:
        """
        Retrieve events and transactions for one bounded block range.

        Args:
            address: Contract address
            block_range: Inclusive range, already sized by the caller
            topics: Optional eth_getLogs topic filter

        Returns:
            RangeResult with events and transactions
        """
        events = await self.get_logs(address, block_range, topics)

        tx_hashes: list[str] = []
        seen: set[str] = set()
        for event in events:
            key = event.transaction_hash.lower()
            if key not in seen:
                seen.add(key)
                tx_hashes.append(event.transaction_hash)

        transactions: list[TransactionRecord] = []
        for i in range(0, len(tx_hashes), self.tx_batch_size):
            batch = tx_hashes[i:i + self.tx_batch_size]
            results = await asyncio.gather(*(self._fetch_transaction(h) for h in batch))
            transactions.extend(tx for tx in results if tx is not None)

        direct_count = 0
        if not events and not topics and block_range.size <= self.direct_scan_max_blocks:
            direct = await self._scan_blocks(address, block_range)
            direct_count = len(direct)
            transactions.extend(direct)

        if self.include_timestamps:
            pending = sorted({
                item.block_number
                for item in [*events, *transactions]
                if item.timestamp is None
            })
            if pending:
                timestamps = await self._block_timestamps(pending)
                for item in [*events, *transactions]:
                    if item.timestamp is None:
                        item.timestamp = timestamps.get(item.block_number)

        return RangeResult(
            events=events,
            transactions=transactions,
            direct_transactions=direct_count,
        )


class LiskRpcClient(EvmRpcClient):
    """Lisk L2 is EVM-compatible; only the chain tag differs."""

    chain_type = ChainType.LISK

    def __init__(self, url: str, chain: str = "lisk", **kwargs: Any):
        super().__init__(url, chain, **kwargs)


class StarknetRpcClient(JsonRpcClient):
    """
    Client for Starknet's JSON-RPC API.

    Events come from starknet_getEvents, paged with continuation_token.
    Starknet events carry no log index, so the position of an event among
    its transaction's events (in response order) stands in for it.
    """

    chain_type = ChainType.STARKNET
    block_number_method = "starknet_blockNumber"

    def __init__(
        self,
        url: str,
        chain: str = "starknet",
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
        page_size: int = DEFAULT_STARKNET_EVENTS_PAGE_SIZE,
        tx_batch_size: int = 5,
        include_timestamps: bool = True,
    ):
        super().__init__(url, chain, timeout_seconds, http_client)
        self.page_size = page_size
        self.tx_batch_size = tx_batch_size
        self.include_timestamps = include_timestamps

    async def get_block(self, block_number: int) -> dict | None:
        return await self.call_object("starknet_getBlockWithTxHashes", [{"block_number": block_number}])

    async def get_transaction(self, tx_hash: str) -> dict | None:
        return await self.call_object("starknet_getTransactionByHash", [tx_hash])

    async def get_transaction_receipt(self, tx_hash: str) -> dict | None:
        return await self.call_object("starknet_getTransactionReceipt", [tx_hash])

    @staticmethod
    def _topics_to_keys(topics: list | None) -> list[list[str]] | None:
        if not topics:
            return None
        keys = []
        for topic in topics:
            if topic is None:
                keys.append([])
            elif isinstance(topic, (list, tuple)):
                keys.append(list(topic))
            else:
                keys.append([topic])
        return keys

    async def get_events(
        self,
        address: str,
        block_range: BlockRange,
        topics: list | None = None,
    ) -> list[LogEntry]:
        """All events for the range, following continuation tokens."""
        event_filter: dict[str, Any] = {
            "from_block": {"block_number": block_range.from_block},
            "to_block": {"block_number": block_range.to_block},
            "address": address,
            "chunk_size": self.page_size,
        }
        keys = self._topics_to_keys(topics)
        if keys:
            event_filter["keys"] = keys

        entries: list[LogEntry] = []
        per_tx_index: dict[str, int] = {}
        token: str | None = None

        while True:
            if token:
                event_filter["continuation_token"] = token
            page = await self.call("starknet_getEvents", [event_filter])
            if not isinstance(page, dict) or not isinstance(page.get("events") or [], list):
                raise ProviderCallError(
                    "starknet_getEvents returned an unexpected shape",
                    details={"url": self.url, "range": str(block_range)},
                )

            for raw in page.get("events") or []:
                try:
                    tx_hash = raw["transaction_hash"]
                    index = per_tx_index.get(tx_hash.lower(), 0)
                    per_tx_index[tx_hash.lower()] = index + 1
                    entries.append(LogEntry(
                        transaction_hash=tx_hash,
                        block_number=hex_to_int(raw["block_number"]),
                        log_index=index,
                        address=raw.get("from_address", address),
                        topics=list(raw.get("keys") or []),
                        data=list(raw.get("data") or []),
                        block_hash=raw.get("block_hash"),
                        chain=self.chain,
                    ))
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    raise ProviderCallError(
                        f"Malformed Starknet event: {e}",
                        details={"url": self.url},
                    )

            token = page.get("continuation_token")
            if not token:
                break

        return entries

    def _parse_transaction(self, tx: dict, receipt: dict | None, block_number: int) -> TransactionRecord:
        receipt = receipt or {}
        fee = receipt.get("actual_fee")
        if isinstance(fee, dict):
            fee = fee.get("amount")
        status = receipt.get("execution_status")
        if status is None and receipt.get("status") is not None:
            status = receipt["status"]
        return TransactionRecord(
            transaction_hash=tx.get("transaction_hash"),
            block_number=hex_to_int(receipt.get("block_number")) if receipt.get("block_number") is not None else block_number,
            from_address=tx.get("sender_address"),
            to_address=tx.get("contract_address"),
            value="0",
            gas_used=str(fee) if fee is not None else "0",
            gas_price="0",
            gas_limit=str(tx.get("max_fee") or "0"),
            input=",".join(str(c) for c in tx.get("calldata") or []),
            nonce=hex_to_int(tx.get("nonce")),
            status=None if status is None else status in ("SUCCEEDED", "ACCEPTED_ON_L2", "ACCEPTED_ON_L1"),
            chain=self.chain,
            source=TransactionSource.EVENT,
        )

    async def _fetch_transaction(self, tx_hash: str, block_number: int) -> TransactionRecord | None:
        tx, receipt = await asyncio.gather(
            self.get_transaction(tx_hash),
            self.get_transaction_receipt(tx_hash),
        )
        if not tx:
            return None
        tx.setdefault("transaction_hash", tx_hash)
        try:
            return self._parse_transaction(tx, receipt, block_number)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ProviderCallError(
                f"Malformed Starknet transaction: {e}",
                details={"url": self.url, "tx_hash": tx_hash},
            )

    async def fetch_range(
        self,
        address: str,
        block_range: BlockRange,
        topics: list | None = None,
    ) -> RangeResult:
        events = await self.get_events(address, block_range, topics)

        first_block: dict[str, int] = {}
        for event in events:
            first_block.setdefault(event.transaction_hash, event.block_number)
        tx_hashes = list(first_block)

        transactions: list[TransactionRecord] = []
        for i in range(0, len(tx_hashes), self.tx_batch_size):
            batch = tx_hashes[i:i + self.tx_batch_size]
            results = await asyncio.gather(
                *(self._fetch_transaction(h, first_block[h]) for h in batch)
            )
            transactions.extend(tx for tx in results if tx is not None)

        if self.include_timestamps:
            numbers = sorted({item.block_number for item in [*events, *transactions]})
            timestamps: dict[int, int] = {}
            for i in range(0, len(numbers), self.tx_batch_size):
                batch = numbers[i:i + self.tx_batch_size]
                blocks = await asyncio.gather(*(self.get_block(n) for n in batch))
                for number, block in zip(batch, blocks):
                    if block and block.get("timestamp") is not None:
                        timestamps[number] = hex_to_int(block["timestamp"])
            for item in [*events, *transactions]:
                if item.timestamp is None:
                    item.timestamp = timestamps.get(item.block_number)

        return RangeResult(events=events, transactions=transactions)


CLIENT_TYPES: dict[ChainType, type[JsonRpcClient]] = {
    ChainType.EVM: EvmRpcClient,
    ChainType.LISK: LiskRpcClient,
    ChainType.STARKNET: StarknetRpcClient,
}


def create_client(
    chain_type: ChainType,
    url: str,
    chain: str,
    **kwargs: Any,
) -> JsonRpcClient:
    """Instantiate the client class for a chain type."""
    try:
        client_cls = CLIENT_TYPES[chain_type]
    except KeyError:
        raise ConfigurationError(
            f"No client for chain type {chain_type}",
            details={"chain": chain, "type": str(chain_type)},
            code=ErrorCode.CONFIG_INVALID,
        )
    return client_cls(url, chain=chain, **kwargs)
