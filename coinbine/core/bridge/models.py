"""Typed models used by the bridge subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class BridgeLegStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNKNOWN = "unknown"        # Submitted, outcome unknown
    CANCELLED = "cancelled"    # Not attempted, funds remain on the source chain


@dataclass
class BridgeLeg:
    """One source chain's transfer onto the target chain."""

    source_chain_id: int
    amount: int
    status: BridgeLegStatus
    tx_hash: Optional[str] = None
    amount_out: Optional[int] = None
    error: Optional[str] = None

    @property
    def landed(self) -> bool:
        return self.status == BridgeLegStatus.SUCCEEDED


@dataclass
class BridgeResult:
    """Structured outcome of the bridge step."""

    target_chain_id: int
    token: str
    legs: List[BridgeLeg] = field(default_factory=list)
    noop: bool = False

    @property
    def success(self) -> bool:
        return all(leg.landed for leg in self.legs)

    @property
    def landed(self) -> Dict[int, int]:
        """Source chain -> amount now on the target chain."""
        return {leg.source_chain_id: leg.amount for leg in self.legs if leg.landed}

    @property
    def stranded(self) -> Dict[int, int]:
        """Source chain -> amount not confirmed on the target chain."""
        return {leg.source_chain_id: leg.amount for leg in self.legs if not leg.landed}

    @property
    def failed_legs(self) -> List[BridgeLeg]:
        return [leg for leg in self.legs if not leg.landed]
