"""
chains/registry.py - Chain provider registry.

Holds, per chain name, the ordered list of configured RPC endpoints and
their per-endpoint counters. Order is declaration order from config;
nothing here reorders, evicts or scores providers.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from chains.clients import JsonRpcClient, create_client
from chains.detection import ChainSignatures
from core.constants import DEFAULT_CHAIN_TYPES, ChainType
from core.exceptions import ConfigurationError
from core.logging import get_logger
from core.time import elapsed_ms

logger = get_logger(__name__)


@dataclass
class ProviderDescriptor:
    """One configured RPC endpoint plus its counters."""
    name: str
    chain: str
    url: str
    client: Any
    request_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    is_healthy: bool = True
    last_error: Optional[str] = None

    @property
    def success_rate(self) -> float:
        if self.request_count == 0:
            return 0.0
        return self.success_count / self.request_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "is_healthy": self.is_healthy,
            "request_count": self.request_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "success_rate": round(self.success_rate, 3),
            "last_error": self.last_error,
        }


class ChainProviderRegistry:
    """
    Registry of RPC providers by chain.

    Each instance owns its providers and counters; tests build one per case.
    """

    def __init__(self, signatures: Optional[ChainSignatures] = None):
        self._providers: Dict[str, List[ProviderDescriptor]] = {}
        self._lock = threading.Lock()
        self.signatures = signatures or ChainSignatures()

    @classmethod
    def from_config(
        cls,
        chain_configs: Mapping[str, Any],
        only_chain: Optional[str] = None,
        **client_kwargs: Any,
    ) -> "ChainProviderRegistry":
        """
        Build a registry from config.load_rpc_config() output.

        Args:
            chain_configs: {chain: ChainConfig}
            only_chain: Restrict initialization to one chain (isolation mode)
            **client_kwargs: Passed to every client constructor

        Raises:
            ConfigurationError: only_chain has no configuration
        """
        extra = {
            name: cfg.url_keywords
            for name, cfg in chain_configs.items()
            if cfg.url_keywords
        }
        registry = cls(signatures=ChainSignatures(extra))

        if only_chain is not None:
            only_chain = only_chain.lower()
            if only_chain not in chain_configs:
                raise ConfigurationError(
                    f"No provider configuration found for target chain: {only_chain}",
                    details={"chain": only_chain},
                )
            selected = {only_chain: chain_configs[only_chain]}
            logger.info(
                f"Chain isolation enabled - only initializing {only_chain} providers",
                extra={"context": {"chain": only_chain}},
            )
        else:
            selected = dict(chain_configs)

        for chain, cfg in selected.items():
            for provider_cfg in cfg.providers:
                client = create_client(cfg.type, provider_cfg.url, chain, **client_kwargs)
                registry.register(chain, provider_cfg.name, provider_cfg.url, client)
            logger.info(
                f"Initialized {len(cfg.providers)} provider(s) for {chain}",
                extra={"context": {"chain": chain, "providers": [p.name for p in cfg.providers]}},
            )

        return registry

    def register(
        self,
        chain: str,
        name: str,
        url: str,
        client: Any = None,
        chain_type: Optional[ChainType] = None,
    ) -> ProviderDescriptor:
        """
        Append a provider to a chain's list.

        A client is created from the chain type when none is given.
        """
        chain = chain.lower()
        if client is None:
            chain_type = chain_type or DEFAULT_CHAIN_TYPES.get(chain, ChainType.EVM)
            client = create_client(chain_type, url, chain)

        provider = ProviderDescriptor(name=name, chain=chain, url=url, client=client)
        self._providers.setdefault(chain, []).append(provider)
        return provider

    def providers_for(self, chain: str) -> List[ProviderDescriptor]:
        """
        Ordered providers for a chain.

        Raises:
            ConfigurationError: chain is empty or has no providers
        """
        if not chain:
            raise ConfigurationError("Chain is required")
        providers = self._providers.get(chain.lower())
        if not providers:
            raise ConfigurationError(
                f"No providers configured for chain: {chain}",
                details={"chain": chain},
            )
        return list(providers)

    def record_outcome(
        self,
        provider: ProviderDescriptor,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        """Update counters and last-attempt health for one attempt."""
        with self._lock:
            provider.request_count += 1
            if success:
                provider.success_count += 1
                provider.is_healthy = True
                provider.last_error = None
            else:
                provider.failure_count += 1
                provider.is_healthy = False
                provider.last_error = error

    @property
    def supported_chains(self) -> List[str]:
        return list(self._providers.keys())

    def get_stats(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Per-chain, per-provider counters."""
        with self._lock:
            return {
                chain: {p.name: p.to_dict() for p in providers}
                for chain, providers in self._providers.items()
            }

    async def test_providers(self, chain: str) -> Dict[str, Dict[str, Any]]:
        """
        Check connectivity of every provider of a chain.

        Counters are left alone; this is a diagnostic, not an attempt.
        """
        results: Dict[str, Dict[str, Any]] = {}
        for provider in self.providers_for(chain):
            start = time.monotonic()
            healthy = await provider.client.test_connection()
            results[provider.name] = {
                "is_healthy": healthy,
                "response_time_ms": elapsed_ms(start),
            }
        return results

    async def close_all(self) -> None:
        """Close every client that owns a connection pool."""
        for providers in self._providers.values():
            for provider in providers:
                if isinstance(provider.client, JsonRpcClient):
                    await provider.client.close()
