"""Bridge step components."""

from typing import TYPE_CHECKING

from .models import BridgeLeg, BridgeLegStatus, BridgeResult

if TYPE_CHECKING:  # pragma: no cover
    from .executor import BridgeExecutor

__all__ = ["BridgeExecutor", "BridgeLeg", "BridgeLegStatus", "BridgeResult"]


def __getattr__(name: str):  # pragma: no cover - simple thunk
    if name == "BridgeExecutor":
        from .executor import BridgeExecutor as _BridgeExecutor

        return _BridgeExecutor
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
