"""Reshape per-token breakdowns into per-chain balance groups."""

from __future__ import annotations

from decimal import MAX_PREC, Decimal, localcontext
from typing import Dict, List, Mapping, Sequence

from ..chains import ChainRegistry
from ..models import BalanceEntry, ChainBalanceGroup, TokenBreakdown, format_units


def group_by_chain(
    breakdowns: Mapping[str, TokenBreakdown],
    token_order: Sequence[str],
    chain_order: Sequence[int],
) -> ChainBalanceGroup:
    """Build chain -> [BalanceEntry] from per-token breakdowns.

    Chains follow ``chain_order`` (registry order) and tokens within a chain
    follow ``token_order`` (the caller's token mapping). Chains with no
    successful reading are omitted. Pure and deterministic.
    """
    groups: ChainBalanceGroup = {}
    for chain_id in chain_order:
        entries: List[BalanceEntry] = []
        for symbol in token_order:
            breakdown = breakdowns.get(symbol)
            if breakdown is None:
                continue
            entry = breakdown.entries.get(chain_id)
            if entry is not None:
                entries.append(entry)
        if entries:
            groups[chain_id] = entries
    return groups


def unified_totals(groups: ChainBalanceGroup) -> Dict[str, Decimal]:
    """Normalized per-symbol totals across all chains, in first-seen order."""
    totals: Dict[str, Decimal] = {}
    with localcontext() as ctx:
        # Additions stay exact
        ctx.prec = MAX_PREC
        for entries in groups.values():
            for entry in entries:
                totals[entry.token] = totals.get(entry.token, Decimal(0)) + entry.normalized
    return totals


def format_groups(groups: ChainBalanceGroup, registry: ChainRegistry) -> List[str]:
    """Human-readable lines, one per chain."""
    lines = []
    for chain_id, entries in groups.items():
        holdings = ", ".join(f"{format_units(entry.normalized)} {entry.token}" for entry in entries)
        lines.append(f"{registry.chain_name(chain_id)} (chain {chain_id}): {holdings}")
    return lines
