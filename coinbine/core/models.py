"""Typed models shared across the consolidation core."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, localcontext
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import ConfigurationError, ErrorCategory


@dataclass(frozen=True)
class Chain:
    """A supported network. Immutable, unique by chain id."""

    chain_id: int
    name: str
    rpc_url: str
    native_symbol: str = "ETH"
    native_decimals: int = 18


@dataclass(frozen=True)
class TokenDeployment:
    """A token's contract on one chain."""

    chain_id: int
    address: str


@dataclass(frozen=True)
class TokenIdentity:
    """A named token and its per-chain deployments (at most one per chain)."""

    symbol: str
    deployments: Tuple[TokenDeployment, ...]

    def __post_init__(self) -> None:
        seen = set()
        for deployment in self.deployments:
            if deployment.chain_id in seen:
                raise ConfigurationError(
                    f"{self.symbol} has more than one deployment on chain {deployment.chain_id}",
                    chain_id=deployment.chain_id,
                    token=self.symbol,
                )
            seen.add(deployment.chain_id)

    @classmethod
    def from_mapping(cls, symbol: str, addresses: Dict[int, str]) -> "TokenIdentity":
        return cls(
            symbol=symbol,
            deployments=tuple(
                TokenDeployment(chain_id=chain_id, address=address)
                for chain_id, address in addresses.items()
            ),
        )

    def deployment_on(self, chain_id: int) -> Optional[TokenDeployment]:
        for deployment in self.deployments:
            if deployment.chain_id == chain_id:
                return deployment
        return None

    @property
    def chain_ids(self) -> Tuple[int, ...]:
        return tuple(d.chain_id for d in self.deployments)


@dataclass(frozen=True)
class Account:
    """Connected wallet account; opaque beyond its address."""

    address: str

    @property
    def key(self) -> str:
        return self.address.lower()


@dataclass(frozen=True)
class TargetSelection:
    """Caller-chosen target token symbol and target chain."""

    token: str
    chain_id: int


@dataclass(frozen=True)
class BalanceEntry:
    """One (chain, token, amount) observation."""

    chain_id: int
    token: str
    raw_amount: int
    decimals: int
    address: Optional[str] = None

    @property
    def normalized(self) -> Decimal:
        return to_units(self.raw_amount, self.decimals)


# chain id -> entries, chains in registry order, tokens in token-mapping order
ChainBalanceGroup = Dict[int, List[BalanceEntry]]


@dataclass
class ChainFailure:
    """An isolated failure confined to one chain (and optionally one token)."""

    chain_id: int
    error: str
    token: Optional[str] = None
    category: ErrorCategory = ErrorCategory.TRANSIENT_CHAIN
    stage: str = "discovery"

    def describe(self, chain_name: Optional[str] = None) -> str:
        where = chain_name or f"chain {self.chain_id}"
        subject = f"{self.token} on {where}" if self.token else where
        return f"{self.stage}: {subject}: {self.error}"


@dataclass
class NativeBalanceResult:
    """Native balance summed over the chains that answered."""

    total: int = 0
    per_chain: Dict[int, int] = field(default_factory=dict)
    failures: List[ChainFailure] = field(default_factory=list)


@dataclass
class TokenBreakdown:
    """Per-chain balances of one token; failed chains are absent from entries."""

    token: str
    entries: Dict[int, BalanceEntry] = field(default_factory=dict)
    failures: List[ChainFailure] = field(default_factory=list)

    @property
    def total_raw(self) -> int:
        return sum(entry.raw_amount for entry in self.entries.values())


@dataclass
class TxResult:
    """Outcome of a transaction handed to an execution collaborator."""

    success: bool
    tx_hash: Optional[str] = None
    amount_out: Optional[int] = None
    error: Optional[str] = None


class RunState(str, Enum):
    """Lifecycle of a consolidation run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    COMPLETED_WITH_PARTIAL_FAILURES = "completed_with_partial_failures"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in {RunState.IDLE, RunState.RUNNING}


def to_units(raw_amount: int, decimals: int) -> Decimal:
    """Exact ``raw_amount / 10**decimals``; shifts the exponent, never rounds."""
    sign, digits, exponent = Decimal(raw_amount).as_tuple()
    return Decimal((sign, digits, exponent - decimals))


def format_units(value: Decimal) -> str:
    """Plain notation without trailing zeros, at full precision."""
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(value.as_tuple().digits))
        return f"{value.normalize():f}"
