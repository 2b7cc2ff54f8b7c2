# PATH: core/constants.py
"""
Constants for the contract interaction fetcher.

Contains enums, defaults, and chain signature tables.
"""

from enum import Enum
from typing import Final

# =============================================================================
# DEFAULTS
# =============================================================================

# Rate limiting
DEFAULT_MAX_REQUESTS_PER_SECOND = 10
DEFAULT_REQUEST_WINDOW_MS = 1000

# Failover
DEFAULT_FAILOVER_TIMEOUT_MS = 30000
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 1000

# Chunking (public endpoints commonly cap eth_getLogs around 1k-5k blocks)
DEFAULT_MAX_CHUNK_SIZE = 2000
DEFAULT_MAX_CONCURRENCY = 3

# Per-range client behaviour
DEFAULT_TX_BATCH_SIZE = 15
DEFAULT_DIRECT_SCAN_MAX_BLOCKS = 50
DEFAULT_STARKNET_EVENTS_PAGE_SIZE = 100

# Polling listener
DEFAULT_POLL_INTERVAL_MS = 4000

# HTTP
DEFAULT_HTTP_TIMEOUT_SECONDS = 30
CONNECTION_TEST_TIMEOUT_SECONDS = 5


class ChainType(str, Enum):
    """Client families a chain can be served by."""
    EVM = "evm"
    LISK = "lisk"
    STARKNET = "starknet"


class TransactionSource(str, Enum):
    """How a transaction was linked to the contract."""
    EVENT = "event"
    TO_CONTRACT = "to_contract"
    FROM_CONTRACT = "from_contract"


class ErrorCode(str, Enum):
    """Error codes carried by every FetcherError."""
    # Configuration
    CONFIG_NO_PROVIDERS = "CONFIG_NO_PROVIDERS"
    CONFIG_INVALID = "CONFIG_INVALID"
    VALIDATION_FAILED = "VALIDATION_FAILED"

    # Per-provider (absorbed by the executor)
    CHAIN_MISMATCH = "CHAIN_MISMATCH"
    PROVIDER_TIMEOUT = "PROVIDER_TIMEOUT"
    PROVIDER_RPC_ERROR = "PROVIDER_RPC_ERROR"
    PROVIDER_RATE_LIMIT = "PROVIDER_RATE_LIMIT"

    # Scope exhaustion
    ALL_PROVIDERS_FAILED = "ALL_PROVIDERS_FAILED"
    PARTIAL_RANGE_FAILURE = "PARTIAL_RANGE_FAILURE"
    TOTAL_RANGE_FAILURE = "TOTAL_RANGE_FAILURE"

    # Caller
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"


# =============================================================================
# CHAIN SIGNATURES
# =============================================================================

# Keywords used to re-derive a provider's chain from its endpoint URL.
# Order matters: the most specific signature is checked first ("eth" is broad).
KNOWN_CHAIN_SIGNATURES: Final[dict[str, tuple[str, ...]]] = {
    "starknet": ("starknet",),
    "lisk": ("lisk",),
    "ethereum": ("eth", "ethereum"),
}

# Chain names that get a dedicated client type when the config is silent.
DEFAULT_CHAIN_TYPES: Final[dict[str, ChainType]] = {
    "starknet": ChainType.STARKNET,
    "lisk": ChainType.LISK,
    "ethereum": ChainType.EVM,
}

# RPC error fragments that mean the node dropped server-side filter state.
FILTER_NOT_FOUND_MARKERS: Final[tuple[str, ...]] = (
    "filter not found",
    "filter does not exist",
)
