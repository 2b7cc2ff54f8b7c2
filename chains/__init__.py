"""
chains/ - Blockchain interaction layer.

Modules:
- clients: per-endpoint JSON-RPC clients (EVM, Lisk, Starknet)
- detection: URL-based chain detection for isolation checks
- registry: ordered providers per chain with counters
- rate_limit: request-rate limiting
- executor: chain-isolated failover execution
"""

from chains.clients import (
    EvmRpcClient,
    JsonRpcClient,
    LiskRpcClient,
    StarknetRpcClient,
    create_client,
)
from chains.detection import (
    ChainSignatures,
    detect_chain,
    provider_matches_chain,
)
from chains.executor import ChainIsolatedExecutor
from chains.rate_limit import RateLimiter
from chains.registry import ChainProviderRegistry, ProviderDescriptor

__all__ = [
    # Clients
    "EvmRpcClient",
    "JsonRpcClient",
    "LiskRpcClient",
    "StarknetRpcClient",
    "create_client",
    # Detection
    "ChainSignatures",
    "detect_chain",
    "provider_matches_chain",
    # Registry / execution
    "ChainIsolatedExecutor",
    "ChainProviderRegistry",
    "ProviderDescriptor",
    "RateLimiter",
]
