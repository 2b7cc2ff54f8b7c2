# PATH: tests/integration/test_end_to_end.py
"""
Integration tests: registry -> executor -> chunked fetcher -> listener.

Deterministic, no network: scripted clients and httpx.MockTransport only.
"""

import asyncio
import json

import httpx
import pytest

from chains.clients import EvmRpcClient
from chains.executor import ChainIsolatedExecutor
from chains.rate_limit import RateLimiter
from chains.registry import ChainProviderRegistry
from conftest import HANG, FakeClient
from core.models import RangeResult
from fetcher.listener import PollingEventListener
from fetcher.range_fetcher import ChunkedRangeFetcher

pytestmark = pytest.mark.integration

CONTRACT = "0x1111111111111111111111111111111111111111"


class MockNode:
    """In-memory EVM node speaking JSON-RPC over httpx.MockTransport."""

    def __init__(self, head, logs, receipt=None):
        self.head = head
        self.logs = logs
        self.receipt = receipt if receipt is not None else {"status": "0x1", "gasUsed": "0x5208"}
        self.methods = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method, params = body["method"], body["params"]
        self.methods.append(method)

        if method == "eth_blockNumber":
            result = hex(self.head)
        elif method == "eth_getLogs":
            lo = int(params[0]["fromBlock"], 16)
            hi = int(params[0]["toBlock"], 16)
            result = [log for log in self.logs if lo <= int(log["blockNumber"], 16) <= hi]
        elif method == "eth_getTransactionByHash":
            log = next(l for l in self.logs if l["transactionHash"] == params[0])
            result = {
                "hash": params[0],
                "blockNumber": log["blockNumber"],
                "from": "0xsender",
                "to": CONTRACT,
                "value": "0x0",
                "gasPrice": "0x1",
                "gas": "0x5208",
                "input": "0x",
                "nonce": "0x0",
            }
        elif method == "eth_getTransactionReceipt":
            result = self.receipt
        elif method == "eth_getBlockByNumber":
            result = {"number": params[0], "timestamp": hex(1_700_000_000 + int(params[0], 16)), "transactions": []}
        else:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32601, "message": "method not found"}})

        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    def client(self, url, chain):
        http = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return EvmRpcClient(url, chain=chain, http_client=http)


def node_log(tx_hash, block, index=0):
    return {
        "transactionHash": tx_hash,
        "blockNumber": hex(block),
        "logIndex": hex(index),
        "address": CONTRACT,
        "topics": ["0xddf252ad"],
        "data": "0x",
        "blockHash": "0xb",
        "transactionIndex": "0x0",
    }


class TestFailoverScenario:
    """Two providers, one times out on the second sub-range."""

    @pytest.mark.asyncio
    async def test_second_range_recovered_from_backup(self, make_registry, make_log):
        log_x = make_log("0xabc", 0, block_number=1500, address=CONTRACT)
        provider_a = FakeClient(ranges={
            (0, 999): RangeResult(),
            (1000, 1999): HANG,
        })
        provider_b = FakeClient(ranges={
            (1000, 1999): RangeResult(events=[log_x]),
        })
        registry = make_registry(
            "testchain",
            ("A", "https://a.testchain.local", provider_a),
            ("B", "https://b.testchain.local", provider_b),
        )
        fetcher = ChunkedRangeFetcher(ChainIsolatedExecutor(registry, timeout_ms=100))

        result = await asyncio.wait_for(
            fetcher.fetch_interactions(CONTRACT, "testchain", 0, 1999, max_chunk_size=1000),
            timeout=5,
        )

        assert result.events == [log_x]
        summary = result.summary.to_dict()
        assert summary["blocksScanned"] == 2000
        assert summary["skippedRanges"] == 0
        assert not result.is_partial

        stats = fetcher.get_provider_stats()["testchain"]
        assert stats["A"]["request_count"] == 2
        assert stats["A"]["success_count"] == 1
        assert stats["A"]["failure_count"] == 1
        assert stats["A"]["last_error"] == "Operation timeout"
        assert stats["B"]["request_count"] == 1
        assert stats["B"]["success_count"] == 1


class TestHttpPipeline:
    """Real clients over mock transports, with isolation in the path."""

    @pytest.mark.asyncio
    async def test_fetch_over_http_skips_mislabeled_endpoint(self):
        foreign = MockNode(head=5000, logs=[node_log("0xdead", 10)])
        lisk = MockNode(head=5000, logs=[
            node_log("0x01", 10, 0),
            node_log("0x01", 10, 1),
            node_log("0x02", 2500),
        ])

        registry = ChainProviderRegistry()
        registry.register("lisk", "mislabeled", "https://ethereum-rpc.publicnode.com",
                          foreign.client("https://ethereum-rpc.publicnode.com", "lisk"))
        registry.register("lisk", "lisk-api", "https://rpc.api.lisk.com",
                          lisk.client("https://rpc.api.lisk.com", "lisk"))
        executor = ChainIsolatedExecutor(registry, timeout_ms=2000, rate_limiter=RateLimiter(1000))
        fetcher = ChunkedRangeFetcher(executor, max_chunk_size=1000)

        try:
            result = await fetcher.fetch_interactions(CONTRACT, "lisk", 0, 2999)
        finally:
            await fetcher.close()

        assert foreign.methods == []
        assert [(e.transaction_hash, e.log_index) for e in result.events] == [
            ("0x01", 0), ("0x01", 1), ("0x02", 0),
        ]
        assert [tx.transaction_hash for tx in result.transactions] == ["0x01", "0x02"]
        assert all(e.chain == "lisk" for e in result.events)
        assert result.events[0].timestamp == 1_700_000_010
        assert result.summary.blocks_scanned == 3000
        assert result.summary.event_transactions == 2
        assert "eth_newFilter" not in lisk.methods
        assert "eth_getFilterChanges" not in lisk.methods

    @pytest.mark.asyncio
    async def test_malformed_receipt_fails_over_to_next_provider(self):
        logs = [node_log("0x01", 10)]
        bad = MockNode(head=100, logs=logs, receipt="0x1")
        good = MockNode(head=100, logs=logs)

        registry = ChainProviderRegistry()
        registry.register("ethereum", "bad", "https://eth-bad.example.com",
                          bad.client("https://eth-bad.example.com", "ethereum"))
        registry.register("ethereum", "good", "https://eth-good.example.com",
                          good.client("https://eth-good.example.com", "ethereum"))
        fetcher = ChunkedRangeFetcher(ChainIsolatedExecutor(registry, timeout_ms=2000))

        try:
            result = await fetcher.fetch_interactions(CONTRACT, "ethereum", 0, 99, max_chunk_size=100)
        finally:
            await fetcher.close()

        assert [e.transaction_hash for e in result.events] == ["0x01"]
        assert [tx.status for tx in result.transactions] == [True]
        assert not result.is_partial
        stats = fetcher.get_provider_stats()["ethereum"]
        assert stats["bad"]["failure_count"] == 1
        assert "expected an object" in stats["bad"]["last_error"]
        assert stats["good"]["success_count"] == 1

    @pytest.mark.asyncio
    async def test_listener_over_http(self):
        node = MockNode(head=100, logs=[])
        registry = ChainProviderRegistry()
        registry.register("ethereum", "publicnode", "https://ethereum-rpc.publicnode.com",
                          node.client("https://ethereum-rpc.publicnode.com", "ethereum"))
        fetcher = ChunkedRangeFetcher(ChainIsolatedExecutor(registry, timeout_ms=2000))
        received = []
        listener = PollingEventListener(fetcher, CONTRACT, "ethereum", received.append)

        try:
            assert await listener.poll_once() == 0
            node.logs.append(node_log("0x77", 105))
            node.head = 110
            assert await listener.poll_once() == 1
            assert await listener.poll_once() == 0
        finally:
            await fetcher.close()

        assert [e.transaction_hash for e in received] == ["0x77"]
        assert listener.last_seen_block == 110
