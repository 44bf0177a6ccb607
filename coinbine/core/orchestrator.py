"""
Run Orchestrator

Drives one consolidation run per trigger:
discover balances -> plan and execute swaps -> bridge residue -> summary.

The orchestrator owns every per-run object (progress log, balance groups,
swap and bridge results) and the run-state enum. Only one run per account
may be in flight.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional

import structlog

from ..config import ConsolidationConfig
from .balances import MultichainBalanceReader, format_groups, group_by_chain, unified_totals
from .bridge.executor import BridgeExecutor
from .bridge.models import BridgeResult
from .cancellation import CancellationRequested, run_cancellable
from .errors import ConfigurationError, ConsolidationError, RunInProgressError, describe_error
from .models import (
    Account,
    ChainBalanceGroup,
    NativeBalanceResult,
    RunState,
    TargetSelection,
    TokenIdentity,
    format_units,
)
from .progress import ProgressEvent, ProgressListener, ProgressLog, emit, progress_scope
from .swap.executor import SwapExecutor
from .swap.models import SwapPlanEntry, SwapResult, SwapStatus
from .swap.planner import actionable, plan_swaps

if TYPE_CHECKING:  # pragma: no cover
    from ..providers.base import BridgeProvider, ChainClient, SwapProvider


NO_WALLET_MESSAGE = "No wallet connected."

# Terminal states kept for state(); the oldest account is forgotten first
MAX_REMEMBERED_STATES = 1024


@dataclass
class RunReport:
    """Everything one consolidation run produced."""

    run_id: str
    target: TargetSelection
    account: Optional[Account] = None
    state: RunState = RunState.IDLE
    native: Optional[NativeBalanceResult] = None
    groups: ChainBalanceGroup = field(default_factory=dict)
    plan: List[SwapPlanEntry] = field(default_factory=list)
    swap_results: List[SwapResult] = field(default_factory=list)
    residue: Dict[int, int] = field(default_factory=dict)
    bridge: Optional[BridgeResult] = None
    failures: List[str] = field(default_factory=list)
    error: Optional[str] = None
    events: List[ProgressEvent] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def swap_attempts(self) -> int:
        """Swaps that were actually quoted or failed for lack of a route."""
        return sum(1 for result in self.swap_results if result.status != SwapStatus.CANCELLED)

    @property
    def messages(self) -> List[str]:
        return [event.message for event in self.events]


class ConsolidationOrchestrator:
    """Sequences discovery, swaps and bridging for one account per run.

    Usage:
        orchestrator = ConsolidationOrchestrator(
            config,
            chain_clients=build_chain_clients(config.registry.all()),
            swap_provider=RelaySwapRouter(sender=wallet),
            bridge_provider=RelayBridgeRouter(sender=wallet),
        )
        report = await orchestrator.run(Account("0x..."), TargetSelection("USDC", 8453))
    """

    def __init__(
        self,
        config: ConsolidationConfig,
        *,
        chain_clients: Mapping[int, "ChainClient"],
        swap_provider: "SwapProvider",
        bridge_provider: "BridgeProvider",
        logger: Optional[logging.Logger] = None,
        max_remembered_states: int = MAX_REMEMBERED_STATES,
    ) -> None:
        self._config = config
        self._logger = logger or logging.getLogger(__name__)
        self._reader = MultichainBalanceReader(
            config.registry,
            chain_clients,
            timeout_s=config.chain_timeout_s,
        )
        self._swaps = SwapExecutor(
            swap_provider,
            config.tokens,
            config.registry,
            timeout_s=config.swap_timeout_s,
        )
        self._bridge = BridgeExecutor(
            bridge_provider,
            config.tokens,
            config.registry,
            timeout_s=config.bridge_timeout_s,
        )
        self._active: Dict[str, asyncio.Event] = {}
        self._last_state: "OrderedDict[str, RunState]" = OrderedDict()
        self._max_remembered_states = max(1, max_remembered_states)

    @property
    def reader(self) -> MultichainBalanceReader:
        return self._reader

    def state(self, address: str) -> RunState:
        key = address.lower()
        if key in self._active:
            return RunState.RUNNING
        return self._last_state.get(key, RunState.IDLE)

    def _remember(self, key: str, state: RunState) -> None:
        self._last_state[key] = state
        self._last_state.move_to_end(key)
        while len(self._last_state) > self._max_remembered_states:
            self._last_state.popitem(last=False)

    def cancel(self, address: str) -> bool:
        """Request cancellation of the in-flight run for ``address``."""
        event = self._active.get(address.lower())
        if event is None:
            return False
        event.set()
        return True

    async def run(
        self,
        account: Optional[Account],
        target: TargetSelection,
        *,
        listener: Optional[ProgressListener] = None,
    ) -> RunReport:
        """Execute one consolidation run and return its report.

        A missing account is a precondition failure: one progress event, no
        work. A second run for an account with a run in flight raises
        RunInProgressError.
        """
        progress = ProgressLog(listeners=[listener] if listener else None)
        report = RunReport(run_id=uuid.uuid4().hex[:12], target=target, account=account)

        if account is None or not account.address:
            progress.append(NO_WALLET_MESSAGE)
            self._logger.info("Run %s rejected: no wallet connected", report.run_id)
            report.state = RunState.FAILED
            report.error = "no connected account"
            report.events = progress.events
            report.finished_at = datetime.now(timezone.utc)
            return report

        key = account.key
        if key in self._active:
            raise RunInProgressError(account.address)
        cancel_event = asyncio.Event()
        self._active[key] = cancel_event
        report.state = RunState.RUNNING

        try:
            with progress_scope(progress), structlog.contextvars.bound_contextvars(
                run_id=report.run_id,
                account=account.address,
            ):
                await self._execute(report, account, target, cancel_event)
        finally:
            self._active.pop(key, None)
            self._remember(key, report.state)
            report.events = progress.events
            report.finished_at = datetime.now(timezone.utc)
        return report

    def _validate(self, target: TargetSelection) -> TokenIdentity:
        chain = self._config.registry.resolve(target.chain_id)
        identity = self._config.tokens.get(target.token)
        if identity is None:
            raise ConfigurationError(f"Unknown target token {target.token!r}", token=target.token)
        if identity.deployment_on(target.chain_id) is None:
            raise ConfigurationError(
                f"{target.token} is not deployed on {chain.name}",
                chain_id=target.chain_id,
                token=target.token,
            )
        return identity

    async def _execute(
        self,
        report: RunReport,
        account: Account,
        target: TargetSelection,
        cancel_event: asyncio.Event,
    ) -> None:
        registry = self._config.registry
        tokens = self._config.tokens
        emit(f"Starting consolidation into {target.token} on {registry.chain_name(target.chain_id)}...")

        try:
            identity = self._validate(target)

            emit(f"Fetching balances across {len(registry)} chains...")
            discovery = await run_cancellable(self._reader.discover(account, tokens), cancel_event)
            report.native = discovery.native
            report.failures.extend(f.describe(registry.chain_name(f.chain_id)) for f in discovery.failures)
            emit(
                f"Unified native balance: {discovery.native.total} wei "
                f"across {len(discovery.native.per_chain)} chains"
            )

            report.groups = group_by_chain(discovery.tokens, list(tokens.keys()), registry.chain_ids())
            for line in format_groups(report.groups, registry):
                emit(line)
            for symbol, total in unified_totals(report.groups).items():
                emit(f"Unified {symbol} balance: {format_units(total)}")

            report.plan = plan_swaps(report.groups, target)
            emit(
                f"Swap plan: {len(actionable(report.plan))} swaps, "
                f"{len(report.plan) - len(actionable(report.plan))} skipped"
            )
            if cancel_event.is_set():
                raise CancellationRequested()

            report.swap_results = await self._swaps.execute_plan(account, report.plan, cancel_event=cancel_event)
            for result in report.swap_results:
                if result.isolated_failure:
                    report.failures.append(
                        f"swap: {result.from_token} -> {result.to_token} on "
                        f"{registry.chain_name(result.chain_id)}: {result.error}"
                    )
            if cancel_event.is_set():
                raise CancellationRequested()

            report.residue = await self._measure_residue(account, target, identity, report, cancel_event)
            decimals = {
                entry.chain_id: entry.decimals
                for entries in report.groups.values()
                for entry in entries
                if entry.token == target.token
            }
            report.bridge = await self._bridge.bridge(
                account,
                report.residue,
                target.chain_id,
                target.token,
                decimals=decimals,
                cancel_event=cancel_event,
            )

            if cancel_event.is_set():
                report.state = RunState.CANCELLED
            elif not report.bridge.success:
                report.state = RunState.FAILED
                report.error = "bridge failed"
                for leg in report.bridge.failed_legs:
                    report.failures.append(
                        f"bridge: {registry.chain_name(leg.source_chain_id)} -> "
                        f"{registry.chain_name(target.chain_id)}: {leg.error}"
                    )
            elif report.failures:
                report.state = RunState.COMPLETED_WITH_PARTIAL_FAILURES
            else:
                report.state = RunState.COMPLETED
        except CancellationRequested:
            report.state = RunState.CANCELLED
            report.error = "run cancelled"
        except ConsolidationError as exc:
            self._logger.warning("Run %s aborted: %s", report.run_id, exc.message)
            report.state = RunState.FAILED
            report.error = exc.message
        except Exception as exc:
            self._logger.exception("Run %s failed unexpectedly", report.run_id)
            report.state = RunState.FAILED
            report.error = describe_error(exc)

        emit(self._summary(report), level=logging.INFO if report.state != RunState.FAILED else logging.ERROR)

    async def _measure_residue(
        self,
        account: Account,
        target: TargetSelection,
        identity: TokenIdentity,
        report: RunReport,
        cancel_event: asyncio.Event,
    ) -> Dict[int, int]:
        """Target-token balance left on each non-target chain after swapping.

        Re-reads the chains that held the target token or received swap
        output; a chain that cannot be re-read falls back to the pre-swap
        balance plus the swap output reported by the executor.
        """
        estimates: Dict[int, int] = {}
        for entries in report.groups.values():
            for entry in entries:
                if entry.token == target.token and entry.chain_id != target.chain_id and entry.raw_amount > 0:
                    estimates[entry.chain_id] = estimates.get(entry.chain_id, 0) + entry.raw_amount
        for result in report.swap_results:
            if result.success and result.chain_id != target.chain_id:
                estimates[result.chain_id] = estimates.get(result.chain_id, 0) + (result.amount_out or 0)

        if not estimates:
            return {}

        candidates = TokenIdentity(
            symbol=identity.symbol,
            deployments=tuple(d for d in identity.deployments if d.chain_id in estimates),
        )
        breakdown = await run_cancellable(self._reader.get_token_balance(account, candidates), cancel_event)

        residue: Dict[int, int] = {}
        for chain_id in self._config.registry.chain_ids():
            if chain_id not in estimates:
                continue
            entry = breakdown.entries.get(chain_id)
            if entry is not None:
                residue[chain_id] = entry.raw_amount
            else:
                residue[chain_id] = estimates[chain_id]
                emit(
                    f"Using estimated {target.token} residue on "
                    f"{self._config.registry.chain_name(chain_id)}: {estimates[chain_id]} base units",
                    level=logging.WARNING,
                )
        return residue

    def _summary(self, report: RunReport) -> str:
        succeeded = sum(1 for result in report.swap_results if result.success)
        parts = [f"Run {report.state.name}"]
        if report.error:
            parts.append(f"error: {report.error}")
        parts.append(f"{succeeded}/{report.swap_attempts} swaps succeeded")
        if report.bridge is not None:
            if report.bridge.noop:
                parts.append("bridge: nothing to move")
            else:
                parts.append(
                    f"bridge: {len(report.bridge.landed)}/{len(report.bridge.legs)} legs landed"
                )
        if report.failures:
            parts.append("isolated failures: " + "; ".join(report.failures))
        return " | ".join(parts)
