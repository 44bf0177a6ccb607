"""
Tests for the chain registry and token table.
"""

import pytest

from coinbine.core.chains import ChainRegistry, build_token_table, validate_tokens
from coinbine.core.errors import ConfigurationError, ErrorCategory
from coinbine.core.models import Chain, TokenDeployment, TokenIdentity


class TestChainRegistry:
    """Lookup and ordering behaviour."""

    def test_resolve_known_chain(self, registry):
        chain = registry.resolve(8453)
        assert chain.name == "Base"
        assert chain.rpc_url == "https://base.test"

    def test_resolve_unknown_chain_is_configuration_error(self, registry):
        with pytest.raises(ConfigurationError) as exc_info:
            registry.resolve(999)
        assert exc_info.value.category == ErrorCategory.CONFIGURATION
        assert exc_info.value.chain_id == 999
        assert exc_info.value.run_fatal is True

    def test_registration_order_is_stable(self, registry):
        assert registry.chain_ids() == (10, 8453, 42161)
        assert [chain.name for chain in registry.all()] == ["OP Mainnet", "Base", "Arbitrum One"]

    def test_duplicate_chain_rejected(self):
        with pytest.raises(ConfigurationError):
            ChainRegistry([
                Chain(chain_id=1, name="One", rpc_url="https://a"),
                Chain(chain_id=1, name="Also one", rpc_url="https://b"),
            ])

    def test_resolve_alias(self, registry):
        assert registry.resolve_alias("arb") == 42161
        assert registry.resolve_alias("Base") == 8453
        assert registry.resolve_alias("10") == 10

    def test_resolve_unknown_alias(self, registry):
        with pytest.raises(ConfigurationError, match="supported"):
            registry.resolve_alias("solana")

    def test_chain_name_falls_back_for_unknown_id(self, registry):
        assert registry.chain_name(5) == "Chain 5"

    def test_contains_and_len(self, registry):
        assert 10 in registry
        assert 1 not in registry
        assert len(registry) == 3

    def test_default_registry_applies_rpc_overrides(self):
        registry = ChainRegistry.default({8453: "https://my-base-node"})
        assert registry.resolve(8453).rpc_url == "https://my-base-node"
        assert registry.resolve(137).native_symbol == "POL"


class TestTokenTable:
    """Token identity construction and validation."""

    def test_build_preserves_symbol_order(self, tokens):
        assert list(tokens) == ["USDC", "DAI"]
        assert tokens["USDC"].chain_ids == (10, 8453, 42161)

    def test_duplicate_deployment_on_one_chain_rejected(self):
        with pytest.raises(ConfigurationError):
            TokenIdentity(
                symbol="USDC",
                deployments=(
                    TokenDeployment(chain_id=10, address="0xa"),
                    TokenDeployment(chain_id=10, address="0xb"),
                ),
            )

    def test_deployment_on_missing_chain(self, tokens):
        assert tokens["USDC"].deployment_on(137) is None

    def test_validate_rejects_unregistered_chain(self, registry):
        tokens = build_token_table({"USDC": {10: "0xa", 137: "0xb"}})
        with pytest.raises(ConfigurationError) as exc_info:
            validate_tokens(registry, tokens)
        assert exc_info.value.chain_id == 137

    def test_validate_rejects_mismatched_key(self, registry):
        tokens = {"USDT": TokenIdentity.from_mapping("USDC", {10: "0xa"})}
        with pytest.raises(ConfigurationError):
            validate_tokens(registry, tokens)

    def test_bundled_table_matches_bundled_registry(self):
        validate_tokens(ChainRegistry.default(), build_token_table())
