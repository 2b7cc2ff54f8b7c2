"""
Configuration loading utilities for the contract interaction fetcher.

Sources, in order of precedence:
- Environment (.env loaded via python-dotenv): <CHAIN>_RPC_URLS and tunables
- config/chains.yaml: ordered provider lists per chain
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv

from core.constants import (
    DEFAULT_CHAIN_TYPES,
    DEFAULT_FAILOVER_TIMEOUT_MS,
    DEFAULT_MAX_CHUNK_SIZE,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_REQUESTS_PER_SECOND,
    DEFAULT_MAX_RETRIES,
    DEFAULT_POLL_INTERVAL_MS,
    ChainType,
    ErrorCode,
)
from core.exceptions import ConfigurationError
from core.logging import get_logger

logger = get_logger(__name__)

# Load environment variables
load_dotenv()

CONFIG_DIR = Path(__file__).parent

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z0-9_]+)\}")


@dataclass
class ProviderConfig:
    """One configured RPC endpoint."""
    name: str
    url: str


@dataclass
class ChainConfig:
    """Ordered providers for one chain."""
    name: str
    type: ChainType
    providers: List[ProviderConfig] = field(default_factory=list)
    url_keywords: tuple[str, ...] = ()

    @property
    def urls(self) -> List[str]:
        return [p.url for p in self.providers]


@dataclass
class FetcherSettings:
    """
    Global tunables.

    max_retries counts caller-level repeats of a fetch in which every
    sub-range failed (jobs.run_fetch). Provider failover itself makes one
    attempt per provider.
    """
    max_requests_per_second: int = DEFAULT_MAX_REQUESTS_PER_SECOND
    failover_timeout_ms: int = DEFAULT_FAILOVER_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    analyze_chain_only: bool = False
    contract_chain: Optional[str] = None

    @property
    def only_chain(self) -> Optional[str]:
        """Chain to restrict provider initialization to, if isolation mode is on."""
        if self.analyze_chain_only and self.contract_chain:
            return self.contract_chain
        return None


def load_yaml(filename: str) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        filename: Name of file in config directory

    Returns:
        Parsed YAML as dict
    """
    filepath = CONFIG_DIR / filename
    if not filepath.exists():
        raise FileNotFoundError(f"Config file not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_chains() -> Dict[str, Any]:
    """Load chains configuration."""
    return load_yaml("chains.yaml")


def resolve_url(url: str, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    Resolve ${VAR} placeholders in a URL.

    Returns None when a placeholder has no value, so keyed endpoints
    without a key are left out instead of failing at call time.
    """
    env = os.environ if env is None else env
    missing = False

    def _sub(match: re.Match) -> str:
        nonlocal missing
        value = env.get(match.group(1), "")
        if not value:
            missing = True
        return value

    resolved = _PLACEHOLDER.sub(_sub, url)
    return None if missing else resolved


def _provider_name_from_url(url: str, index: int) -> str:
    host = urlparse(url).hostname or f"provider-{index + 1}"
    return host


def _env_int(env: Mapping[str, str], key: str, default: int, minimum: int = 1) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(
            f"{key} must be an integer, got {raw!r}",
            details={"key": key, "value": raw},
            code=ErrorCode.CONFIG_INVALID,
        )
    if value < minimum:
        raise ConfigurationError(
            f"{key} must be >= {minimum}, got {value}",
            details={"key": key, "value": value},
            code=ErrorCode.CONFIG_INVALID,
        )
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> FetcherSettings:
    """
    Build FetcherSettings from the environment.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Returns:
        FetcherSettings with defaults for unset keys
    """
    env = os.environ if env is None else env
    contract_chain = env.get("CONTRACT_CHAIN", "").strip().lower() or None

    return FetcherSettings(
        max_requests_per_second=_env_int(
            env, "MAX_REQUESTS_PER_SECOND", DEFAULT_MAX_REQUESTS_PER_SECOND
        ),
        failover_timeout_ms=_env_int(env, "FAILOVER_TIMEOUT_MS", DEFAULT_FAILOVER_TIMEOUT_MS),
        max_retries=_env_int(env, "MAX_RETRIES", DEFAULT_MAX_RETRIES, minimum=0),
        max_chunk_size=_env_int(env, "MAX_CHUNK_SIZE", DEFAULT_MAX_CHUNK_SIZE),
        max_concurrency=_env_int(env, "MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY),
        poll_interval_ms=_env_int(env, "POLL_INTERVAL_MS", DEFAULT_POLL_INTERVAL_MS),
        analyze_chain_only=env.get("ANALYZE_CHAIN_ONLY", "").strip().lower() == "true",
        contract_chain=contract_chain,
    )


def load_rpc_config(
    chains_config: Optional[Dict[str, Any]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Dict[str, ChainConfig]:
    """
    Build per-chain provider lists.

    Args:
        chains_config: Parsed chains.yaml (loaded from disk when None)
        env: Mapping for placeholders and <CHAIN>_RPC_URLS overrides

    Returns:
        {chain_name: ChainConfig} in declaration order
    """
    env = os.environ if env is None else env
    if chains_config is None:
        chains_config = load_chains()

    result: Dict[str, ChainConfig] = {}

    for raw_name, raw_chain in chains_config.items():
        chain = str(raw_name).lower()
        raw_chain = raw_chain or {}

        type_name = raw_chain.get("type")
        if type_name is None:
            chain_type = DEFAULT_CHAIN_TYPES.get(chain, ChainType.EVM)
        else:
            try:
                chain_type = ChainType(str(type_name).lower())
            except ValueError:
                raise ConfigurationError(
                    f"Unknown chain type {type_name!r} for {chain}",
                    details={"chain": chain, "type": type_name},
                    code=ErrorCode.CONFIG_INVALID,
                )

        override = env.get(f"{chain.upper()}_RPC_URLS", "").strip()
        providers: List[ProviderConfig] = []

        if override:
            urls = [u.strip() for u in override.replace(";", ",").split(",") if u.strip()]
            for i, url in enumerate(urls):
                providers.append(ProviderConfig(name=_provider_name_from_url(url, i), url=url))
        else:
            for i, entry in enumerate(raw_chain.get("providers") or []):
                if isinstance(entry, str):
                    entry = {"url": entry}
                url = resolve_url(entry["url"], env)
                name = entry.get("name") or _provider_name_from_url(entry["url"], i)
                if url is None:
                    logger.debug(
                        f"Skipping {name} for {chain}: unresolved placeholder",
                        extra={"context": {"chain": chain, "provider": name}},
                    )
                    continue
                providers.append(ProviderConfig(name=name, url=url))

        keywords = tuple(str(k).lower() for k in raw_chain.get("url_keywords") or ())

        result[chain] = ChainConfig(
            name=chain,
            type=chain_type,
            providers=providers,
            url_keywords=keywords,
        )

    return result
