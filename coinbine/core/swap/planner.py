"""Build the swap plan for a consolidation run."""

from __future__ import annotations

from typing import List

from ..models import ChainBalanceGroup, TargetSelection
from .models import SwapPlanEntry, SwapStatus

SKIP_ZERO_BALANCE = "zero balance"
SKIP_ALREADY_TARGET = "already target asset"


def plan_swaps(groups: ChainBalanceGroup, target: TargetSelection) -> List[SwapPlanEntry]:
    """One plan entry per balance entry, in group order.

    Entries with no positive balance, or already holding the target token,
    are SKIPPED and never reach the network.
    """
    plan: List[SwapPlanEntry] = []
    for entries in groups.values():
        for entry in entries:
            item = SwapPlanEntry(entry=entry, target_token=target.token)
            if entry.raw_amount <= 0:
                item.status = SwapStatus.SKIPPED
                item.skip_reason = SKIP_ZERO_BALANCE
            elif entry.token == target.token:
                item.status = SwapStatus.SKIPPED
                item.skip_reason = SKIP_ALREADY_TARGET
            plan.append(item)
    return plan


def actionable(plan: List[SwapPlanEntry]) -> List[SwapPlanEntry]:
    return [item for item in plan if item.actionable]
