"""Typed models used by the swap subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Set

from ..models import BalanceEntry


class SwapStatus(str, Enum):
    """Lifecycle of one (chain, token) swap entry."""

    PENDING = "pending"          # Planned, nothing sent yet
    SKIPPED = "skipped"          # Zero balance or already the target token
    QUOTED = "quoted"            # Route obtained
    SUBMITTED = "submitted"      # Handed to the executor, possibly broadcast
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNKNOWN = "unknown"          # Submitted, outcome unknown (cancelled/timed out)
    CANCELLED = "cancelled"      # Cancelled before anything was broadcast

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: Set[SwapStatus] = {
    SwapStatus.SKIPPED,
    SwapStatus.SUCCEEDED,
    SwapStatus.FAILED,
    SwapStatus.UNKNOWN,
    SwapStatus.CANCELLED,
}


@dataclass
class SwapRoute:
    """A quoted path converting one token into another on a single chain."""

    chain_id: int
    from_token: str               # contract address
    to_token: str                 # contract address
    amount_in: int
    amount_out_estimate: int = 0
    wallet_address: str = ""
    request_id: Optional[str] = None
    steps: list = field(default_factory=list)
    raw_response: Optional[Dict[str, Any]] = None


@dataclass
class SwapPlanEntry:
    """One planned (chain, token) conversion and why it may be skipped."""

    entry: BalanceEntry
    target_token: str
    status: SwapStatus = SwapStatus.PENDING
    skip_reason: Optional[str] = None

    @property
    def actionable(self) -> bool:
        return self.status == SwapStatus.PENDING


@dataclass
class SwapResult:
    """Outcome of one attempted swap. Never retried."""

    chain_id: int
    from_token: str
    to_token: str
    amount_in: int
    status: SwapStatus
    error: Optional[str] = None
    amount_out: Optional[int] = None
    tx_hash: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == SwapStatus.SUCCEEDED

    @property
    def isolated_failure(self) -> bool:
        return self.status in {SwapStatus.FAILED, SwapStatus.UNKNOWN}
