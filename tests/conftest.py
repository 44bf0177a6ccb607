"""
Shared fixtures: a small chain registry and an in-memory ledger backing fake
chain, swap and bridge collaborators.
"""

import asyncio
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

import httpx
import pytest

from coinbine.config import ConsolidationConfig
from coinbine.core.chains import ChainRegistry, build_token_table
from coinbine.core.models import Account, Chain, TxResult
from coinbine.core.swap.models import SwapRoute
from coinbine.providers.base import BridgeProvider, ChainClient, SwapProvider


OPTIMISM = 10
BASE = 8453
ARBITRUM = 42161

WALLET = "0x50ac5CFcc81BB0872e85255D7079F8a529345D16"

USDC = {
    OPTIMISM: "0x0b2c639c533813f4aa9d7837caf62653d097ff85",
    BASE: "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913",
    ARBITRUM: "0xaf88d065e77c8cc2239327c5edb3a432268e5831",
}
DAI = {
    OPTIMISM: "0xda10009cbd5d07dd0cecc66161fc93d7c9000da1",
    BASE: "0x50c5725949a6f0c72e6c4a641f24049a917db0cb",
    ARBITRUM: "0xda10009cbd5d07dd0cecc66161fc93d7c9000da1",
}


class FakeLedger:
    """On-chain state shared by the fake collaborators."""

    def __init__(self) -> None:
        self.native: Dict[int, int] = {}
        self.tokens: Dict[Tuple[int, str], int] = defaultdict(int)
        self.decimals: Dict[Tuple[int, str], int] = {}
        self.unreachable: Set[int] = set()
        self.slow: Set[int] = set()
        self.rpc_calls: List[Tuple[int, str]] = []

    def register_token(self, chain_id: int, address: str, decimals: int) -> None:
        self.decimals[(chain_id, address.lower())] = decimals

    def set_balance(self, chain_id: int, address: str, amount: int) -> None:
        self.tokens[(chain_id, address.lower())] = amount

    def balance(self, chain_id: int, address: str) -> int:
        return self.tokens[(chain_id, address.lower())]

    def convert(self, amount: int, from_key: Tuple[int, str], to_key: Tuple[int, str]) -> int:
        """1:1 value conversion between tokens with different decimals."""
        shift = self.decimals[to_key] - self.decimals[from_key]
        if shift >= 0:
            return amount * 10 ** shift
        return amount // 10 ** (-shift)


class FakeChainClient(ChainClient):
    def __init__(self, ledger: FakeLedger, chain_id: int) -> None:
        self.ledger = ledger
        self.chain_id = chain_id

    async def _guard(self, method: str) -> None:
        self.ledger.rpc_calls.append((self.chain_id, method))
        if self.chain_id in self.ledger.slow:
            await asyncio.sleep(5)
        if self.chain_id in self.ledger.unreachable:
            raise httpx.ConnectError("connection refused")

    async def get_native_balance(self, address: str) -> int:
        await self._guard("native")
        return self.ledger.native.get(self.chain_id, 0)

    async def get_token_balance(self, address: str, contract_address: str) -> int:
        await self._guard("balanceOf")
        return self.ledger.balance(self.chain_id, contract_address)

    async def decimals_of(self, contract_address: str) -> int:
        await self._guard("decimals")
        return self.ledger.decimals[(self.chain_id, contract_address.lower())]


class FakeSwapProvider(SwapProvider):
    name = "fake"

    def __init__(self, ledger: FakeLedger) -> None:
        self.ledger = ledger
        self.quotes: List[Tuple[int, str, str, int]] = []
        self.executed: List[SwapRoute] = []
        self.no_route: Set[int] = set()
        self.fail_chains: Set[int] = set()
        self.raise_chains: Set[int] = set()
        self.execute_delay = 0.0
        self.in_flight: Dict[int, int] = defaultdict(int)
        self.max_in_flight: Dict[int, int] = defaultdict(int)
        self.started = asyncio.Event()

    async def quote(self, account, chain_id, from_token, to_token, amount) -> Optional[SwapRoute]:
        self.quotes.append((chain_id, from_token.lower(), to_token.lower(), amount))
        if chain_id in self.no_route:
            return None
        out = self.ledger.convert(amount, (chain_id, from_token.lower()), (chain_id, to_token.lower()))
        return SwapRoute(
            chain_id=chain_id,
            from_token=from_token,
            to_token=to_token,
            amount_in=amount,
            amount_out_estimate=out,
            wallet_address=account.address,
        )

    async def execute(self, route: SwapRoute) -> TxResult:
        chain_id = route.chain_id
        self.executed.append(route)
        self.in_flight[chain_id] += 1
        self.max_in_flight[chain_id] = max(self.max_in_flight[chain_id], self.in_flight[chain_id])
        self.started.set()
        try:
            if self.execute_delay:
                await asyncio.sleep(self.execute_delay)
            if chain_id in self.raise_chains:
                raise RuntimeError("nonce too low")
            if chain_id in self.fail_chains:
                return TxResult(success=False, tx_hash="0xreverted", error="execution reverted")
            from_key = (chain_id, route.from_token.lower())
            to_key = (chain_id, route.to_token.lower())
            self.ledger.tokens[from_key] -= route.amount_in
            self.ledger.tokens[to_key] += route.amount_out_estimate
            return TxResult(success=True, tx_hash=f"0xswap{len(self.executed)}", amount_out=route.amount_out_estimate)
        finally:
            self.in_flight[chain_id] -= 1


class FakeBridgeProvider(BridgeProvider):
    name = "fake"

    def __init__(self, ledger: FakeLedger) -> None:
        self.ledger = ledger
        self.calls: List[Tuple[int, int, int]] = []
        self.fail_chains: Set[int] = set()

    async def bridge(self, account, source_chain_id, target_chain_id, source_token, target_token, amount) -> TxResult:
        self.calls.append((source_chain_id, target_chain_id, amount))
        if source_chain_id in self.fail_chains:
            return TxResult(success=False, error="bridge deposit reverted")
        source_key = (source_chain_id, source_token.lower())
        target_key = (target_chain_id, target_token.lower())
        out = self.ledger.convert(amount, source_key, target_key)
        self.ledger.tokens[source_key] -= amount
        self.ledger.tokens[target_key] += out
        return TxResult(success=True, tx_hash=f"0xbridge{len(self.calls)}", amount_out=out)


@pytest.fixture
def registry() -> ChainRegistry:
    return ChainRegistry(
        [
            Chain(chain_id=OPTIMISM, name="OP Mainnet", rpc_url="https://op.test"),
            Chain(chain_id=BASE, name="Base", rpc_url="https://base.test"),
            Chain(chain_id=ARBITRUM, name="Arbitrum One", rpc_url="https://arb.test"),
        ],
        aliases={"optimism": OPTIMISM, "arb": ARBITRUM},
    )


@pytest.fixture
def tokens():
    return build_token_table({"USDC": dict(USDC), "DAI": dict(DAI)})


@pytest.fixture
def config(registry, tokens) -> ConsolidationConfig:
    return ConsolidationConfig(
        registry=registry,
        tokens=tokens,
        chain_timeout_s=0.2,
        swap_timeout_s=1.0,
        bridge_timeout_s=1.0,
    )


@pytest.fixture
def ledger() -> FakeLedger:
    ledger = FakeLedger()
    for chain_id in (OPTIMISM, BASE, ARBITRUM):
        ledger.native[chain_id] = 10 ** 18
        ledger.register_token(chain_id, USDC[chain_id], 6)
        ledger.register_token(chain_id, DAI[chain_id], 18)
    return ledger


@pytest.fixture
def chain_clients(ledger) -> Dict[int, FakeChainClient]:
    return {chain_id: FakeChainClient(ledger, chain_id) for chain_id in (OPTIMISM, BASE, ARBITRUM)}


@pytest.fixture
def swap_provider(ledger) -> FakeSwapProvider:
    return FakeSwapProvider(ledger)


@pytest.fixture
def bridge_provider(ledger) -> FakeBridgeProvider:
    return FakeBridgeProvider(ledger)


@pytest.fixture
def account() -> Account:
    return Account(WALLET)
