"""Command line entry point for inspecting balances and swap plans.

Neither command signs anything: ``balances`` only reads, ``plan`` builds the
swap plan and can ask Relay for quotes.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from .config import ConsolidationConfig, get_settings
from .core.balances import MultichainBalanceReader, format_groups, group_by_chain, unified_totals
from .core.errors import ConsolidationError
from .core.models import Account, TargetSelection, format_units, to_units
from .core.progress import ProgressLog, progress_scope
from .core.swap.planner import plan_swaps
from .logging_config import setup_logging
from .providers.relay import RelaySwapRouter
from .providers.rpc import build_chain_clients


def _reader(config: ConsolidationConfig) -> MultichainBalanceReader:
    clients = build_chain_clients(config.registry.all(), timeout_s=config.chain_timeout_s)
    return MultichainBalanceReader(config.registry, clients, timeout_s=config.chain_timeout_s)


def _print_event(event) -> None:
    print(f"   {event.format()}")


async def cli_balances(address: str, config: ConsolidationConfig) -> int:
    """Print native and token balances grouped by chain"""
    print(f"🔍 Fetching balances for {address}...")
    account = Account(address)
    progress = ProgressLog(listeners=[_print_event])

    with progress_scope(progress):
        discovery = await _reader(config).discover(account, config.tokens)

    registry = config.registry
    print("\nNative balances")
    print("=" * 50)
    for chain_id, amount in discovery.native.per_chain.items():
        chain = registry.resolve(chain_id)
        formatted = format_units(to_units(amount, chain.native_decimals))
        print(f"{chain.name:<16} {formatted:>20} {chain.native_symbol}")

    groups = group_by_chain(discovery.tokens, list(config.tokens.keys()), registry.chain_ids())
    print("\nToken balances")
    print("=" * 50)
    for line in format_groups(groups, registry):
        print(line)
    for symbol, total in unified_totals(groups).items():
        print(f"Total {symbol}: {format_units(total)}")

    if discovery.failures:
        print(f"\n⚠️  {len(discovery.failures)} queries failed")
    return 0


async def cli_plan(address: str, token: str, chain: str, config: ConsolidationConfig, quote: bool) -> int:
    """Print the swap plan, optionally with Relay quotes"""
    registry = config.registry
    target = TargetSelection(token=token.upper(), chain_id=registry.resolve_alias(chain))
    if target.token not in config.tokens:
        print(f"❌ Unknown token {token}; known: {', '.join(config.tokens)}")
        return 2

    account = Account(address)
    progress = ProgressLog(listeners=[_print_event])
    with progress_scope(progress):
        discovery = await _reader(config).discover(account, config.tokens)
    groups = group_by_chain(discovery.tokens, list(config.tokens.keys()), registry.chain_ids())
    plan = plan_swaps(groups, target)

    router = RelaySwapRouter() if quote else None
    print(f"\n📋 Plan: consolidate into {target.token} on {registry.chain_name(target.chain_id)}")
    print("-" * 50)
    for item in plan:
        entry = item.entry
        line = f"{registry.chain_name(entry.chain_id):<16} {format_units(entry.normalized):>16} {entry.token:<6}"
        if not item.actionable:
            print(f"{line} skip ({item.skip_reason})")
            continue
        if router is None:
            print(f"{line} swap -> {target.token}")
            continue
        source = config.tokens[entry.token].deployment_on(entry.chain_id)
        destination = config.tokens[target.token].deployment_on(entry.chain_id)
        if source is None or destination is None:
            print(f"{line} swap -> {target.token}: no route")
            continue
        try:
            route = await router.quote(account, entry.chain_id, source.address, destination.address, entry.raw_amount)
        except Exception as e:
            print(f"{line} swap -> {target.token}: quote failed ({e})")
            continue
        if route is None:
            print(f"{line} swap -> {target.token}: no route")
        else:
            print(f"{line} swap -> {target.token}: ~{route.amount_out_estimate} base units out")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="coinbine", description="Multichain asset consolidation")
    parser.add_argument("--log-level", default=None, help="Override log level")
    sub = parser.add_subparsers(dest="command", required=True)

    balances = sub.add_parser("balances", help="Show balances across chains")
    balances.add_argument("--address", required=True)

    plan = sub.add_parser("plan", help="Show the swap plan for a target token and chain")
    plan.add_argument("--address", required=True)
    plan.add_argument("--token", default="USDC")
    plan.add_argument("--chain", default="base")
    plan.add_argument("--quote", action="store_true", help="Fetch Relay quotes for each swap")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(args.log_level or settings.log_level)

    try:
        config = ConsolidationConfig.from_settings(settings)
        if args.command == "balances":
            return asyncio.run(cli_balances(args.address, config))
        return asyncio.run(cli_plan(args.address, args.token, args.chain, config, args.quote))
    except ConsolidationError as e:
        print(f"❌ {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
