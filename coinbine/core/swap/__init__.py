"""Swap planning and execution components."""

from typing import TYPE_CHECKING

from .models import SwapPlanEntry, SwapResult, SwapRoute, SwapStatus
from .planner import actionable, plan_swaps

if TYPE_CHECKING:  # pragma: no cover
    from .executor import SwapExecutor

__all__ = ["SwapExecutor", "SwapPlanEntry", "SwapResult", "SwapRoute", "SwapStatus", "actionable", "plan_swaps"]


def __getattr__(name: str):  # pragma: no cover - simple thunk
    if name == "SwapExecutor":
        from .executor import SwapExecutor as _SwapExecutor

        return _SwapExecutor
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
