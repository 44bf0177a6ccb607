"""
Multichain Balance Reader

Queries native and token balances for one account across registered chains.
Every (chain) or (token, chain) query runs concurrently with its own timeout;
a failing query becomes an isolated ``ChainFailure`` instead of an error,
unless every query of a discovery step fails.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from ..cancellation import gather_or_cancel
from ..errors import (
    AggregationError,
    ConfigurationError,
    TransientChainError,
    classify_error,
    describe_error,
)
from ..models import (
    Account,
    BalanceEntry,
    Chain,
    ChainFailure,
    NativeBalanceResult,
    TokenBreakdown,
    TokenIdentity,
)
from ..progress import emit
from ..chains import ChainRegistry

if TYPE_CHECKING:  # pragma: no cover
    from ...providers.base import ChainClient


@dataclass
class DiscoveryResult:
    """Everything one discovery pass learned about an account."""

    native: NativeBalanceResult
    tokens: Dict[str, TokenBreakdown] = field(default_factory=dict)

    @property
    def failures(self) -> List[ChainFailure]:
        failures = list(self.native.failures)
        for breakdown in self.tokens.values():
            failures.extend(breakdown.failures)
        return failures


class MultichainBalanceReader:
    """Reads balances through one ChainClient per registered chain."""

    def __init__(
        self,
        registry: ChainRegistry,
        clients: Mapping[int, "ChainClient"],
        *,
        timeout_s: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        missing = [chain.chain_id for chain in registry.all() if chain.chain_id not in clients]
        if missing:
            raise ConfigurationError(f"No chain client configured for chains {missing}")
        self._registry = registry
        self._clients = dict(clients)
        self._timeout_s = timeout_s
        self._logger = logger or logging.getLogger(__name__)

    def _semaphore(self) -> asyncio.Semaphore:
        # One in-flight query per registered chain
        return asyncio.Semaphore(max(1, len(self._registry)))

    async def _query(
        self,
        chain_id: int,
        call: Callable[["ChainClient"], Awaitable[Any]],
        semaphore: asyncio.Semaphore,
    ) -> Any:
        client = self._clients.get(chain_id)
        if client is None:
            raise ConfigurationError(f"No chain client configured for chain {chain_id}", chain_id=chain_id)
        async with semaphore:
            try:
                return await asyncio.wait_for(call(client), self._timeout_s)
            except asyncio.TimeoutError as exc:
                raise TransientChainError(
                    f"no response within {self._timeout_s:g}s",
                    chain_id=chain_id,
                ) from exc

    def _failure(self, chain_id: int, error: BaseException, token: Optional[str] = None) -> ChainFailure:
        failure = ChainFailure(
            chain_id=chain_id,
            token=token,
            error=describe_error(error),
            category=classify_error(error),
        )
        name = self._registry.chain_name(chain_id)
        if token:
            emit(f"{token} balance unavailable on {name}: {failure.error}", level=logging.WARNING)
        else:
            emit(f"{name} unreachable: {failure.error}", level=logging.WARNING)
        return failure

    async def get_native_balance(
        self,
        account: Account,
        chains: Optional[Iterable[Chain]] = None,
    ) -> NativeBalanceResult:
        """Sum native balances over the chains that answer.

        Raises AggregationError when every chain fails.
        """
        selected = list(chains) if chains is not None else list(self._registry.all())
        semaphore = self._semaphore()

        outcomes = await asyncio.gather(
            *(
                self._query(chain.chain_id, lambda client: client.get_native_balance(account.address), semaphore)
                for chain in selected
            ),
            return_exceptions=True,
        )

        result = NativeBalanceResult()
        for chain, outcome in zip(selected, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, ConfigurationError):
                    raise outcome
                result.failures.append(self._failure(chain.chain_id, outcome))
                continue
            amount = int(outcome)
            result.per_chain[chain.chain_id] = amount
            result.total += amount

        if selected and not result.per_chain:
            raise AggregationError(
                f"All {len(selected)} chains failed to report native balances",
                details={"failures": [f.describe() for f in result.failures]},
            )
        return result

    async def get_token_balance(
        self,
        account: Account,
        token: TokenIdentity,
        *,
        semaphore: Optional[asyncio.Semaphore] = None,
    ) -> TokenBreakdown:
        """Per-chain balances of one token; zero balances are kept, failures recorded."""
        semaphore = semaphore or self._semaphore()
        deployments = [
            deployment
            for chain_id in self._registry.chain_ids()
            for deployment in [token.deployment_on(chain_id)]
            if deployment is not None
        ]
        unregistered = [d.chain_id for d in token.deployments if d.chain_id not in self._registry]
        if unregistered:
            raise ConfigurationError(
                f"{token.symbol} is deployed on unregistered chains {unregistered}",
                token=token.symbol,
            )

        async def read(client: "ChainClient", contract: str) -> Tuple[int, int]:
            balance = await client.get_token_balance(account.address, contract)
            decimals = await client.decimals_of(contract)
            return int(balance), int(decimals)

        outcomes = await asyncio.gather(
            *(
                self._query(
                    deployment.chain_id,
                    lambda client, contract=deployment.address: read(client, contract),
                    semaphore,
                )
                for deployment in deployments
            ),
            return_exceptions=True,
        )

        breakdown = TokenBreakdown(token=token.symbol)
        for deployment, outcome in zip(deployments, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, ConfigurationError):
                    raise outcome
                breakdown.failures.append(self._failure(deployment.chain_id, outcome, token.symbol))
                continue
            raw_amount, decimals = outcome
            breakdown.entries[deployment.chain_id] = BalanceEntry(
                chain_id=deployment.chain_id,
                token=token.symbol,
                raw_amount=raw_amount,
                decimals=decimals,
                address=deployment.address,
            )

        self._check_decimals(breakdown)
        return breakdown

    def _check_decimals(self, breakdown: TokenBreakdown) -> None:
        by_chain = {chain_id: entry.decimals for chain_id, entry in breakdown.entries.items()}
        if len(set(by_chain.values())) > 1:
            listing = ", ".join(
                f"{self._registry.chain_name(chain_id)}={decimals}" for chain_id, decimals in by_chain.items()
            )
            emit(
                f"{breakdown.token} decimals differ across chains ({listing}); normalizing per chain",
                level=logging.WARNING,
            )

    async def get_token_balances(
        self,
        account: Account,
        tokens: Mapping[str, TokenIdentity],
    ) -> Dict[str, TokenBreakdown]:
        """Read every token concurrently.

        Raises AggregationError when every (token, chain) query fails.
        """
        semaphore = self._semaphore()
        symbols = list(tokens.keys())
        breakdowns = await gather_or_cancel(
            *(self.get_token_balance(account, tokens[symbol], semaphore=semaphore) for symbol in symbols)
        )
        result = dict(zip(symbols, breakdowns))

        attempted = sum(len(b.entries) + len(b.failures) for b in breakdowns)
        succeeded = sum(len(b.entries) for b in breakdowns)
        if attempted and not succeeded:
            raise AggregationError(
                f"All {attempted} token balance queries failed",
                details={"failures": [f.describe() for b in breakdowns for f in b.failures]},
            )
        return result

    async def discover(
        self,
        account: Account,
        tokens: Mapping[str, TokenIdentity],
    ) -> DiscoveryResult:
        """Native and token discovery in parallel."""
        native, token_balances = await asyncio.gather(
            self.get_native_balance(account),
            self.get_token_balances(account, tokens),
            return_exceptions=True,
        )
        for outcome in (native, token_balances):
            if isinstance(outcome, BaseException):
                raise outcome
        self._logger.debug(
            "Discovery finished: %d native chains, %d tokens",
            len(native.per_chain),
            len(token_balances),
        )
        return DiscoveryResult(native=native, tokens=token_balances)
