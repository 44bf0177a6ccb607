"""Balance discovery and aggregation."""

from .aggregator import format_groups, group_by_chain, unified_totals
from .reader import DiscoveryResult, MultichainBalanceReader

__all__ = [
    "DiscoveryResult",
    "MultichainBalanceReader",
    "format_groups",
    "group_by_chain",
    "unified_totals",
]
