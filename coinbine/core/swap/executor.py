"""
Swap executor for consolidation runs.

Drives each (chain, token) entry through
PENDING -> QUOTED -> SUBMITTED -> SUCCEEDED | FAILED | UNKNOWN,
isolating failures per entry. Chains run concurrently; swaps for one
account on one chain are serialized.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Dict, List, Mapping, Optional, Set

from ..cancellation import CancellationRequested, gather_or_cancel, run_cancellable
from ..chains import ChainRegistry
from ..errors import ConfigurationError, RouteUnavailableError, describe_error
from ..models import Account, TokenIdentity, format_units, to_units
from ..progress import emit
from .models import SwapPlanEntry, SwapResult, SwapRoute, SwapStatus

if TYPE_CHECKING:  # pragma: no cover
    from ...providers.base import SwapProvider


class InvalidSwapTransitionError(Exception):
    """Raised when a swap entry is moved along an edge the lifecycle forbids."""


class _SwapAttempt:
    """Tracks one entry's status with validated transitions."""

    TRANSITIONS: Dict[SwapStatus, Set[SwapStatus]] = {
        SwapStatus.PENDING: {
            SwapStatus.SKIPPED,
            SwapStatus.QUOTED,
            SwapStatus.FAILED,     # No route
            SwapStatus.CANCELLED,
        },
        SwapStatus.QUOTED: {
            SwapStatus.SUBMITTED,
            SwapStatus.CANCELLED,
        },
        SwapStatus.SUBMITTED: {
            SwapStatus.SUCCEEDED,
            SwapStatus.FAILED,
            SwapStatus.UNKNOWN,    # Broadcast may have happened
        },
    }

    def __init__(self, chain_id: int, from_token: str, to_token: str, amount_in: int) -> None:
        self.result = SwapResult(
            chain_id=chain_id,
            from_token=from_token,
            to_token=to_token,
            amount_in=amount_in,
            status=SwapStatus.PENDING,
        )

    @property
    def status(self) -> SwapStatus:
        return self.result.status

    def advance(self, status: SwapStatus, *, error: Optional[str] = None) -> SwapResult:
        allowed = self.TRANSITIONS.get(self.result.status, set())
        if status not in allowed:
            raise InvalidSwapTransitionError(
                f"Cannot move swap from {self.result.status.value} to {status.value}"
            )
        self.result.status = status
        if error is not None:
            self.result.error = error
        return self.result


def _fmt(amount: int, decimals: Optional[int]) -> str:
    if decimals is None:
        return str(amount)
    return format_units(to_units(amount, decimals))


class SwapExecutor:
    """Quotes and submits swaps through a SwapProvider."""

    def __init__(
        self,
        provider: "SwapProvider",
        tokens: Mapping[str, TokenIdentity],
        registry: ChainRegistry,
        *,
        timeout_s: float = 120.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._provider = provider
        self._tokens = tokens
        self._registry = registry
        self._timeout_s = timeout_s
        self._logger = logger or logging.getLogger(__name__)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _chain_lock(self, chain_id: int, address: str) -> AsyncIterator[None]:
        """Serialize one account's swaps on one chain.

        The lock is dropped once no task holds or waits for it.
        """
        key = f"{chain_id}:{address.lower()}"
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    def _token(self, symbol: str) -> TokenIdentity:
        token = self._tokens.get(symbol)
        if token is None:
            raise ConfigurationError(f"Unknown token {symbol!r}", token=symbol)
        return token

    async def swap(
        self,
        account: Account,
        chain_id: int,
        from_token: str,
        to_token: str,
        amount: int,
        *,
        decimals: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SwapResult:
        """Quote, then submit one swap. Every failure is captured in the result."""
        chain_name = self._registry.resolve(chain_id).name
        source = self._token(from_token).deployment_on(chain_id)
        destination = self._token(to_token).deployment_on(chain_id)
        attempt = _SwapAttempt(chain_id, from_token, to_token, amount)
        label = f"{_fmt(amount, decimals)} {from_token} -> {to_token} on {chain_name}"

        if cancel_event is not None and cancel_event.is_set():
            return attempt.advance(SwapStatus.CANCELLED, error="run cancelled")

        if source is None or destination is None:
            missing = from_token if source is None else to_token
            error = RouteUnavailableError(f"no route ({missing} not deployed on {chain_name})", chain_id=chain_id)
            emit(f"Swap {label} failed: {error.message}", level=logging.WARNING)
            return attempt.advance(SwapStatus.FAILED, error=error.message)

        emit(f"Requesting quote for {label}...")
        try:
            route: Optional[SwapRoute] = await run_cancellable(
                self._provider.quote(account, chain_id, source.address, destination.address, amount),
                cancel_event,
                timeout=self._timeout_s,
            )
        except CancellationRequested:
            emit(f"Swap {label} cancelled before submission")
            return attempt.advance(SwapStatus.CANCELLED, error="run cancelled")
        except RouteUnavailableError:
            route = None
        except Exception as exc:
            self._logger.warning("Quote failed for %s: %s", label, exc)
            emit(f"Swap {label} failed: quote error: {describe_error(exc)}", level=logging.WARNING)
            return attempt.advance(SwapStatus.FAILED, error=f"quote error: {describe_error(exc)}")

        if route is None:
            emit(f"Swap {label} failed: no route", level=logging.WARNING)
            return attempt.advance(SwapStatus.FAILED, error="no route")

        attempt.advance(SwapStatus.QUOTED)
        if cancel_event is not None and cancel_event.is_set():
            emit(f"Swap {label} cancelled before submission")
            return attempt.advance(SwapStatus.CANCELLED, error="run cancelled")

        attempt.advance(SwapStatus.SUBMITTED)
        emit(f"Submitting swap {label}")
        try:
            tx = await run_cancellable(self._provider.execute(route), cancel_event, timeout=self._timeout_s)
        except CancellationRequested:
            emit(f"Swap {label} submitted, outcome unknown (run cancelled)", level=logging.WARNING)
            return attempt.advance(SwapStatus.UNKNOWN, error="cancelled after submission; outcome unknown")
        except asyncio.TimeoutError:
            emit(f"Swap {label} submitted, outcome unknown (timed out)", level=logging.WARNING)
            return attempt.advance(
                SwapStatus.UNKNOWN,
                error=f"no outcome within {self._timeout_s:g}s; outcome unknown",
            )
        except Exception as exc:
            self._logger.warning("Swap execution failed for %s: %s", label, exc)
            emit(f"Swap {label} failed: {describe_error(exc)}", level=logging.WARNING)
            return attempt.advance(SwapStatus.FAILED, error=describe_error(exc))

        attempt.result.tx_hash = tx.tx_hash
        if not tx.success:
            emit(f"Swap {label} failed: {tx.error or 'transaction failed'}", level=logging.WARNING)
            return attempt.advance(SwapStatus.FAILED, error=tx.error or "transaction failed")

        attempt.result.amount_out = tx.amount_out if tx.amount_out is not None else route.amount_out_estimate
        emit(f"Swap {label} succeeded (tx {tx.tx_hash})")
        return attempt.advance(SwapStatus.SUCCEEDED)

    async def _run_chain(
        self,
        account: Account,
        chain_id: int,
        items: List[SwapPlanEntry],
        cancel_event: Optional[asyncio.Event],
    ) -> List[SwapResult]:
        results = []
        async with self._chain_lock(chain_id, account.address):
            for item in items:
                result = await self.swap(
                    account,
                    chain_id,
                    item.entry.token,
                    item.target_token,
                    item.entry.raw_amount,
                    decimals=item.entry.decimals,
                    cancel_event=cancel_event,
                )
                item.status = result.status
                results.append(result)
        return results

    async def execute_plan(
        self,
        account: Account,
        plan: List[SwapPlanEntry],
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[SwapResult]:
        """Attempt every actionable plan entry; results come back in plan order."""
        by_chain: "OrderedDict[int, List[SwapPlanEntry]]" = OrderedDict()
        for item in plan:
            if item.actionable:
                by_chain.setdefault(item.entry.chain_id, []).append(item)

        if not by_chain:
            return []

        chain_results = await gather_or_cancel(
            *(self._run_chain(account, chain_id, items, cancel_event) for chain_id, items in by_chain.items())
        )

        results_by_item = {}
        for items, results in zip(by_chain.values(), chain_results):
            for item, result in zip(items, results):
                results_by_item[id(item)] = result
        return [results_by_item[id(item)] for item in plan if id(item) in results_by_item]
