"""
tests/unit/test_registry.py - Chain provider registry tests.
"""

import threading

import pytest

from chains.clients import EvmRpcClient, LiskRpcClient, StarknetRpcClient
from chains.registry import ChainProviderRegistry
from config import ChainConfig, ProviderConfig
from core.constants import ChainType, ErrorCode
from core.exceptions import ConfigurationError


@pytest.fixture
def chain_configs():
    return {
        "ethereum": ChainConfig(
            name="ethereum",
            type=ChainType.EVM,
            providers=[
                ProviderConfig("publicnode", "https://ethereum-rpc.publicnode.com"),
                ProviderConfig("alchemy", "https://eth-mainnet.g.alchemy.com/v2/k"),
            ],
        ),
        "lisk": ChainConfig(
            name="lisk",
            type=ChainType.LISK,
            providers=[ProviderConfig("lisk-api", "https://rpc.api.lisk.com")],
        ),
        "starknet": ChainConfig(
            name="starknet",
            type=ChainType.STARKNET,
            providers=[ProviderConfig("lava", "https://rpc.starknet.lava.build")],
        ),
        "base": ChainConfig(
            name="base",
            type=ChainType.EVM,
            providers=[ProviderConfig("base-public", "https://mainnet.base.org")],
            url_keywords=("base",),
        ),
    }


class TestFromConfig:
    """Registry construction from config."""

    def test_declaration_order_preserved(self, chain_configs):
        registry = ChainProviderRegistry.from_config(chain_configs)
        names = [p.name for p in registry.providers_for("ethereum")]
        assert names == ["publicnode", "alchemy"]

    def test_client_type_per_chain(self, chain_configs):
        registry = ChainProviderRegistry.from_config(chain_configs)
        assert isinstance(registry.providers_for("ethereum")[0].client, EvmRpcClient)
        assert isinstance(registry.providers_for("lisk")[0].client, LiskRpcClient)
        assert isinstance(registry.providers_for("starknet")[0].client, StarknetRpcClient)

    def test_url_keywords_become_signatures(self, chain_configs):
        registry = ChainProviderRegistry.from_config(chain_configs)
        assert "base" in registry.signatures
        assert registry.signatures.detect("https://mainnet.base.org") == "base"

    def test_only_chain_restricts_initialization(self, chain_configs):
        registry = ChainProviderRegistry.from_config(chain_configs, only_chain="LISK")
        assert registry.supported_chains == ["lisk"]
        with pytest.raises(ConfigurationError):
            registry.providers_for("ethereum")

    def test_only_chain_unknown_raises(self, chain_configs):
        with pytest.raises(ConfigurationError) as exc_info:
            ChainProviderRegistry.from_config(chain_configs, only_chain="solana")
        assert exc_info.value.details["chain"] == "solana"


class TestProvidersFor:
    """Lookup semantics."""

    def test_unknown_chain_raises(self):
        registry = ChainProviderRegistry()
        with pytest.raises(ConfigurationError) as exc_info:
            registry.providers_for("testchain")
        assert exc_info.value.code == ErrorCode.CONFIG_NO_PROVIDERS

    def test_empty_chain_raises(self):
        with pytest.raises(ConfigurationError):
            ChainProviderRegistry().providers_for("")

    def test_lookup_is_case_insensitive(self, make_registry, make_client):
        registry = make_registry("testchain", ("a", "https://a.testchain.local", make_client()))
        assert registry.providers_for("TestChain")[0].name == "a"

    def test_returns_copy(self, make_registry, make_client):
        registry = make_registry("testchain", ("a", "https://a.testchain.local", make_client()))
        registry.providers_for("testchain").clear()
        assert len(registry.providers_for("testchain")) == 1

    def test_register_without_client_builds_one(self):
        registry = ChainProviderRegistry()
        provider = registry.register("starknet", "lava", "https://rpc.starknet.lava.build")
        assert isinstance(provider.client, StarknetRpcClient)


class TestCounters:
    """record_outcome bookkeeping."""

    def test_success_and_failure(self, make_registry, make_client):
        registry = make_registry("testchain", ("a", "https://a.testchain.local", make_client()))
        provider = registry.providers_for("testchain")[0]

        registry.record_outcome(provider, False, "boom")
        assert provider.request_count == 1
        assert provider.failure_count == 1
        assert not provider.is_healthy
        assert provider.last_error == "boom"

        registry.record_outcome(provider, True)
        assert provider.request_count == 2
        assert provider.success_count == 1
        assert provider.is_healthy
        assert provider.last_error is None
        assert provider.success_rate == 0.5

    def test_counters_consistent_under_threads(self, make_registry, make_client):
        registry = make_registry("testchain", ("a", "https://a.testchain.local", make_client()))
        provider = registry.providers_for("testchain")[0]

        def hammer():
            for i in range(500):
                registry.record_outcome(provider, i % 2 == 0, "err")

        threads = [threading.Thread(target=hammer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert provider.request_count == 4000
        assert provider.success_count + provider.failure_count == provider.request_count

    def test_get_stats_shape(self, make_registry, make_client):
        registry = make_registry("testchain", ("a", "https://a.testchain.local", make_client()))
        stats = registry.get_stats()
        assert stats["testchain"]["a"]["request_count"] == 0
        assert stats["testchain"]["a"]["url"] == "https://a.testchain.local"
        assert stats["testchain"]["a"]["success_rate"] == 0.0


class TestProviderHealthCheck:
    """test_providers diagnostics."""

    @pytest.mark.asyncio
    async def test_health_check_does_not_touch_counters(self, make_registry, make_client):
        registry = make_registry(
            "testchain",
            ("a", "https://a.testchain.local", make_client(healthy=True)),
            ("b", "https://b.testchain.local", make_client(healthy=False)),
        )
        results = await registry.test_providers("testchain")

        assert results["a"]["is_healthy"] is True
        assert results["b"]["is_healthy"] is False
        assert all(p.request_count == 0 for p in registry.providers_for("testchain"))


class TestCloseAll:

    @pytest.mark.asyncio
    async def test_closes_owned_clients(self):
        registry = ChainProviderRegistry()
        provider = registry.register("ethereum", "publicnode", "https://ethereum-rpc.publicnode.com")
        http = await provider.client._get_client()

        await registry.close_all()

        assert http.is_closed
        assert provider.client._client is None
