"""Static chain registry and token table used by consolidation runs."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..errors import ConfigurationError
from ..models import Chain, TokenIdentity
from .constants import CHAIN_ALIASES, CHAIN_METADATA, TOKEN_DEPLOYMENTS


class ChainRegistry:
    """Immutable chain id -> Chain lookup with stable registration order.

    Usage:
        registry = ChainRegistry.default()
        chain = registry.resolve(8453)          # Chain(name="Base", ...)
        chain_id = registry.resolve_alias("arb")  # 42161
    """

    def __init__(
        self,
        chains: Iterable[Chain],
        *,
        aliases: Optional[Mapping[str, int]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        ordered: Dict[int, Chain] = {}
        for chain in chains:
            if chain.chain_id in ordered:
                raise ConfigurationError(
                    f"Chain {chain.chain_id} registered twice",
                    chain_id=chain.chain_id,
                )
            ordered[chain.chain_id] = chain
        self._chains = ordered

        self._aliases: Dict[str, int] = {}
        for chain in ordered.values():
            self._aliases[chain.name.lower()] = chain.chain_id
            self._aliases[str(chain.chain_id)] = chain.chain_id
        for alias, chain_id in (aliases or {}).items():
            if chain_id in ordered:
                self._aliases.setdefault(alias.lower(), chain_id)

    @classmethod
    def default(cls, rpc_overrides: Optional[Mapping[int, str]] = None) -> "ChainRegistry":
        """Build the registry from the bundled chain table."""

        overrides = rpc_overrides or {}
        chains = [
            Chain(
                chain_id=chain_id,
                name=meta['name'],
                rpc_url=overrides.get(chain_id) or meta['rpc_url'],
                native_symbol=meta.get('native_symbol', 'ETH'),
                native_decimals=int(meta.get('native_decimals', 18)),
            )
            for chain_id, meta in CHAIN_METADATA.items()
        ]
        return cls(chains, aliases=CHAIN_ALIASES)

    # ─────────────────────────────────────────────────────────────────────────
    # Public lookup methods
    # ─────────────────────────────────────────────────────────────────────────

    def resolve(self, chain_id: int) -> Chain:
        """Look up a chain; an unknown id is a configuration error."""
        chain = self._chains.get(chain_id)
        if chain is None:
            raise ConfigurationError(f"Unknown chain id {chain_id}", chain_id=chain_id)
        return chain

    def all(self) -> Tuple[Chain, ...]:
        return tuple(self._chains.values())

    def chain_ids(self) -> Tuple[int, ...]:
        return tuple(self._chains.keys())

    def resolve_alias(self, alias: str) -> int:
        """Resolve a chain name, alias or numeric id string to a chain id."""
        chain_id = self._aliases.get(alias.lower().strip())
        if chain_id is None:
            raise ConfigurationError(
                f"Unknown chain {alias!r}; supported: {', '.join(self.chain_names())}"
            )
        return chain_id

    def chain_name(self, chain_id: int) -> str:
        chain = self._chains.get(chain_id)
        return chain.name if chain else f"Chain {chain_id}"

    def chain_names(self) -> List[str]:
        return [chain.name for chain in self._chains.values()]

    def __contains__(self, chain_id: object) -> bool:
        return chain_id in self._chains

    def __len__(self) -> int:
        return len(self._chains)


def build_token_table(
    deployments: Mapping[str, Mapping[int, str]] = TOKEN_DEPLOYMENTS,
) -> Dict[str, TokenIdentity]:
    """Build symbol -> TokenIdentity preserving the mapping's symbol order."""

    return {
        symbol: TokenIdentity.from_mapping(symbol, dict(addresses))
        for symbol, addresses in deployments.items()
    }


def validate_tokens(registry: ChainRegistry, tokens: Mapping[str, TokenIdentity]) -> None:
    """Every token deployment must reference a registered chain."""

    for symbol, token in tokens.items():
        if symbol != token.symbol:
            raise ConfigurationError(
                f"Token table key {symbol!r} does not match symbol {token.symbol!r}",
                token=symbol,
            )
        for deployment in token.deployments:
            if deployment.chain_id not in registry:
                raise ConfigurationError(
                    f"{symbol} is deployed on unregistered chain {deployment.chain_id}",
                    chain_id=deployment.chain_id,
                    token=symbol,
                )
