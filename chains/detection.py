"""
chains/detection.py - Derive a provider's chain from its endpoint URL.

Structural placement (the chain key a provider is registered under) is
the primary source of truth. URL keywords are a second check so that a
misfiled endpoint never serves another chain's data.
"""

from typing import Iterable, Mapping, Optional

from core.constants import KNOWN_CHAIN_SIGNATURES


class ChainSignatures:
    """
    Ordered keyword table: chain name -> URL substrings.

    Built-in signatures that are more specific than "eth" come first,
    configured extras next, ethereum last.
    """

    def __init__(self, extra: Optional[Mapping[str, Iterable[str]]] = None):
        table: dict[str, tuple[str, ...]] = {}
        for chain, keywords in KNOWN_CHAIN_SIGNATURES.items():
            if chain != "ethereum":
                table[chain] = keywords
        for chain, keywords in (extra or {}).items():
            keywords = tuple(k.lower() for k in keywords if k)
            if keywords and chain.lower() not in KNOWN_CHAIN_SIGNATURES:
                table[chain.lower()] = keywords
        table["ethereum"] = KNOWN_CHAIN_SIGNATURES["ethereum"]
        self._table = table

    def __contains__(self, chain: str) -> bool:
        return chain in self._table

    @property
    def chains(self) -> list[str]:
        return list(self._table)

    def detect(self, url: str) -> Optional[str]:
        """First chain whose keywords appear in the URL, or None."""
        lowered = url.lower()
        for chain, keywords in self._table.items():
            if any(k in lowered for k in keywords):
                return chain
        return None

    def matches(self, url: str, chain: str) -> bool:
        """
        Whether an endpoint URL may serve `chain`.

        Chains with a signature need a positive match. Chains without one
        are trusted to their structural placement unless the URL carries
        some other chain's signature.
        """
        chain = chain.lower()
        detected = self.detect(url)
        if chain in self._table:
            return detected == chain
        return detected is None


_default_signatures = ChainSignatures()


def detect_chain(url: str) -> Optional[str]:
    """Derive a chain name from a URL using the built-in signatures."""
    return _default_signatures.detect(url)


def provider_matches_chain(url: str, chain: str) -> bool:
    """Chain-isolation check using the built-in signatures."""
    return _default_signatures.matches(url, chain)
