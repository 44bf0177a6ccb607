"""
Tests for swap planning.
"""

from coinbine.core.models import BalanceEntry, TargetSelection
from coinbine.core.swap import SwapStatus, actionable, plan_swaps
from coinbine.core.swap.planner import SKIP_ALREADY_TARGET, SKIP_ZERO_BALANCE

OPTIMISM, BASE, ARBITRUM = 10, 8453, 42161


def _groups():
    return {
        OPTIMISM: [BalanceEntry(OPTIMISM, "USDC", 100_000_000, 6), BalanceEntry(OPTIMISM, "DAI", 0, 18)],
        BASE: [BalanceEntry(BASE, "USDC", 0, 6)],
        ARBITRUM: [BalanceEntry(ARBITRUM, "USDC", 0, 6), BalanceEntry(ARBITRUM, "DAI", 50 * 10 ** 18, 18)],
    }


def test_one_plan_entry_per_balance_entry_in_group_order():
    plan = plan_swaps(_groups(), TargetSelection("USDC", BASE))

    assert [(p.entry.chain_id, p.entry.token) for p in plan] == [
        (OPTIMISM, "USDC"),
        (OPTIMISM, "DAI"),
        (BASE, "USDC"),
        (ARBITRUM, "USDC"),
        (ARBITRUM, "DAI"),
    ]


def test_target_token_and_zero_balances_are_skipped():
    plan = plan_swaps(_groups(), TargetSelection("USDC", BASE))
    reasons = {(p.entry.chain_id, p.entry.token): p.skip_reason for p in plan}

    assert reasons[(OPTIMISM, "USDC")] == SKIP_ALREADY_TARGET
    assert reasons[(OPTIMISM, "DAI")] == SKIP_ZERO_BALANCE
    assert reasons[(ARBITRUM, "DAI")] is None


def test_only_positive_non_target_entries_are_actionable():
    plan = plan_swaps(_groups(), TargetSelection("USDC", BASE))

    todo = actionable(plan)

    assert len(todo) == 1
    assert todo[0].entry.chain_id == ARBITRUM
    assert todo[0].target_token == "USDC"
    assert todo[0].status == SwapStatus.PENDING


def test_empty_groups_produce_empty_plan():
    assert plan_swaps({}, TargetSelection("USDC", BASE)) == []
