# PATH: tests/conftest.py
"""
Pytest configuration and fixtures for fetcher tests.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from chains.registry import ChainProviderRegistry
from core.models import LogEntry, RangeResult, TransactionRecord

# Outcome that never completes; pair with a short per-call timeout.
HANG = "hang"


def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


class FakeClient:
    """
    Scripted stand-in for a JSON-RPC client.

    ranges maps (from_block, to_block) to a RangeResult, an exception to
    raise, or HANG. Unlisted ranges return `default`.
    """

    def __init__(
        self,
        ranges=None,
        default=None,
        heads=(100,),
        error=None,
        healthy=True,
    ):
        self.ranges = dict(ranges or {})
        self.default = default if default is not None else RangeResult()
        self.heads = list(heads)
        self.error = error
        self.healthy = healthy
        self.calls = []

    async def _resolve(self, outcome):
        if self.error is not None:
            raise self.error
        if outcome == HANG:
            await asyncio.sleep(3600)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def fetch_range(self, address, block_range, topics=None):
        self.calls.append(("fetch_range", block_range.as_tuple()))
        return await self._resolve(self.ranges.get(block_range.as_tuple(), self.default))

    async def get_block_number(self):
        self.calls.append(("get_block_number",))
        head = self.heads.pop(0) if len(self.heads) > 1 else self.heads[0]
        return await self._resolve(head)

    async def get_transaction_receipt(self, tx_hash):
        self.calls.append(("get_transaction_receipt", tx_hash))
        return await self._resolve({"transactionHash": tx_hash, "status": "0x1"})

    async def test_connection(self):
        return self.healthy


def build_log(tx_hash="0xaa", log_index=0, block_number=1, address="0xc0ffee"):
    return LogEntry(
        transaction_hash=tx_hash,
        block_number=block_number,
        log_index=log_index,
        address=address,
        topics=["0xddf252ad"],
        data="0x",
    )


def build_tx(tx_hash="0xaa", block_number=1):
    return TransactionRecord(
        transaction_hash=tx_hash,
        block_number=block_number,
        from_address="0xsender",
        to_address="0xc0ffee",
    )


@pytest.fixture
def make_client():
    return FakeClient


@pytest.fixture
def make_log():
    return build_log


@pytest.fixture
def make_tx():
    return build_tx


@pytest.fixture
def make_registry():
    """
    Build a registry for one chain from (name, url, client) triples.

    Example:
        registry = make_registry("testchain", ("a", "https://a.testchain.local", client_a))
    """
    def _make(chain, *providers, signatures=None):
        registry = ChainProviderRegistry(signatures=signatures)
        for name, url, client in providers:
            registry.register(chain, name, url, client)
        return registry

    return _make
