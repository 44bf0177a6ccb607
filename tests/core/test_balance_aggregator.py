"""
Tests for chain grouping and unified totals.
"""

from decimal import Decimal

from coinbine.core.balances import format_groups, group_by_chain, unified_totals
from coinbine.core.models import BalanceEntry, TokenBreakdown, format_units, to_units

OPTIMISM, BASE, ARBITRUM = 10, 8453, 42161


def _breakdown(token, decimals, amounts):
    return TokenBreakdown(
        token=token,
        entries={
            chain_id: BalanceEntry(chain_id=chain_id, token=token, raw_amount=amount, decimals=decimals)
            for chain_id, amount in amounts.items()
        },
    )


def test_groups_follow_registry_and_token_order():
    breakdowns = {
        "DAI": _breakdown("DAI", 18, {ARBITRUM: 5 * 10 ** 18, OPTIMISM: 0}),
        "USDC": _breakdown("USDC", 6, {OPTIMISM: 1_000_000, ARBITRUM: 2_000_000}),
    }

    groups = group_by_chain(breakdowns, ["USDC", "DAI"], [OPTIMISM, BASE, ARBITRUM])

    assert list(groups) == [OPTIMISM, ARBITRUM]
    assert [e.token for e in groups[OPTIMISM]] == ["USDC", "DAI"]
    assert [e.token for e in groups[ARBITRUM]] == ["USDC", "DAI"]


def test_chain_without_readings_is_omitted():
    breakdowns = {"USDC": _breakdown("USDC", 6, {OPTIMISM: 1})}

    groups = group_by_chain(breakdowns, ["USDC"], [OPTIMISM, BASE])

    assert BASE not in groups


def test_grouping_is_deterministic():
    breakdowns = {"USDC": _breakdown("USDC", 6, {BASE: 3, OPTIMISM: 4})}
    first = group_by_chain(breakdowns, ["USDC"], [OPTIMISM, BASE])
    second = group_by_chain(breakdowns, ["USDC"], [OPTIMISM, BASE])
    assert first == second


def test_unified_totals_mix_decimals_exactly():
    breakdowns = {
        "USDC": TokenBreakdown(
            token="USDC",
            entries={
                OPTIMISM: BalanceEntry(OPTIMISM, "USDC", 100_000_000, 6),
                BASE: BalanceEntry(BASE, "USDC", 250_000_000_000_000_000, 18),
            },
        ),
    }
    groups = group_by_chain(breakdowns, ["USDC"], [OPTIMISM, BASE])

    assert unified_totals(groups) == {"USDC": Decimal("100.25")}


def test_unified_totals_beyond_default_precision():
    raw = 10 ** 40 + 1
    groups = {OPTIMISM: [BalanceEntry(OPTIMISM, "DAI", raw, 18)], BASE: [BalanceEntry(BASE, "DAI", 1, 18)]}

    total = unified_totals(groups)["DAI"]

    assert total == to_units(raw + 1, 18)
    assert format_units(total) == "10000000000000000000000.000000000000000002"


def test_format_groups(registry):
    groups = {
        OPTIMISM: [BalanceEntry(OPTIMISM, "USDC", 100_000_000, 6), BalanceEntry(OPTIMISM, "DAI", 0, 18)],
    }

    lines = format_groups(groups, registry)

    assert lines == ["OP Mainnet (chain 10): 100 USDC, 0 DAI"]
