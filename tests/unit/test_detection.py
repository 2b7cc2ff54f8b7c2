"""
tests/unit/test_detection.py - URL-based chain detection tests.
"""

import pytest

from chains.detection import ChainSignatures, detect_chain, provider_matches_chain


class TestDetectChain:
    """detect_chain() keyword ordering."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://starknet-mainnet.infura.io/v3/key", "starknet"),
            ("https://rpc.starknet.lava.build", "starknet"),
            ("https://rpc.api.lisk.com", "lisk"),
            ("https://lisk.drpc.org", "lisk"),
            ("https://ethereum-rpc.publicnode.com", "ethereum"),
            ("https://eth-mainnet.g.alchemy.com/v2/key", "ethereum"),
            ("https://a.testchain.local", None),
        ],
    )
    def test_known_urls(self, url, expected):
        assert detect_chain(url) == expected

    def test_starknet_beats_eth_substring(self):
        """A Starknet URL that also contains "eth" is still Starknet."""
        assert detect_chain("https://starknet-eth-bridge.example.com") == "starknet"

    def test_case_insensitive(self):
        assert detect_chain("https://RPC.API.LISK.COM") == "lisk"


class TestProviderMatchesChain:
    """Isolation check used by the executor."""

    def test_matching_signature(self):
        assert provider_matches_chain("https://rpc.api.lisk.com", "lisk")

    def test_mislabeled_provider_rejected(self):
        """An Ethereum URL filed under lisk must not serve lisk."""
        assert not provider_matches_chain("https://ethereum-rpc.publicnode.com", "lisk")

    def test_signature_chain_requires_positive_match(self):
        """Chains with a signature reject URLs that carry none."""
        assert not provider_matches_chain("https://rpc.example.com", "ethereum")

    def test_unsigned_chain_trusts_neutral_url(self):
        assert provider_matches_chain("https://a.testchain.local", "testchain")

    def test_unsigned_chain_rejects_foreign_signature(self):
        assert not provider_matches_chain("https://starknet.example.com", "testchain")

    def test_chain_name_case_insensitive(self):
        assert provider_matches_chain("https://rpc.api.lisk.com", "LISK")


class TestChainSignatures:
    """Configured extra signatures."""

    def test_extra_checked_before_ethereum(self):
        signatures = ChainSignatures({"base": ["base"]})
        # "base" is not an eth substring, but ordering still puts ethereum last
        assert signatures.chains[-1] == "ethereum"
        assert signatures.detect("https://mainnet.base.org") == "base"
        assert signatures.matches("https://base-rpc.publicnode.com", "base")

    def test_extra_cannot_override_builtin(self):
        signatures = ChainSignatures({"lisk": ["foo-node"]})
        assert signatures.detect("https://foo-node.io") is None
        assert signatures.detect("https://rpc.api.lisk.com") == "lisk"

    def test_contains(self):
        signatures = ChainSignatures({"polygon": ["polygon"]})
        assert "polygon" in signatures
        assert "testchain" not in signatures

    def test_empty_keywords_ignored(self):
        signatures = ChainSignatures({"weird": ["", None]})
        assert "weird" not in signatures
