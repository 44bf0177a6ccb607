from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..core.models import Account, TxResult
from ..core.swap.models import SwapRoute


class ChainClient(ABC):
    """Read-only access to one chain's balances"""

    chain_id: int
    timeout_s: float = 10

    @abstractmethod
    async def get_native_balance(self, address: str) -> int:
        """Native currency balance in base units"""
        pass

    @abstractmethod
    async def get_token_balance(self, address: str, contract_address: str) -> int:
        """ERC-20 balance in base units"""
        pass

    @abstractmethod
    async def decimals_of(self, contract_address: str) -> int:
        """ERC-20 decimals of a contract"""
        pass


class SwapProvider(ABC):
    """Quote and execute same-chain swaps"""

    name: str

    @abstractmethod
    async def quote(
        self,
        account: Account,
        chain_id: int,
        from_token: str,
        to_token: str,
        amount: int,
    ) -> Optional[SwapRoute]:
        """Return a route converting ``amount`` of ``from_token`` (contract
        address) into ``to_token`` on ``chain_id``, or None when no route exists"""
        pass

    @abstractmethod
    async def execute(self, route: SwapRoute) -> TxResult:
        """Submit the route's transactions and wait for the outcome"""
        pass


class BridgeProvider(ABC):
    """Move funds between chains"""

    name: str

    @abstractmethod
    async def bridge(
        self,
        account: Account,
        source_chain_id: int,
        target_chain_id: int,
        source_token: str,
        target_token: str,
        amount: int,
    ) -> TxResult:
        """Bridge ``amount`` of ``source_token`` to ``target_token`` on the target chain"""
        pass


class TransactionSender(ABC):
    """Wallet-side signing hook: signs and broadcasts one transaction"""

    @abstractmethod
    async def send_transaction(self, chain_id: int, tx: Dict[str, Any]) -> str:
        """Broadcast ``tx`` on ``chain_id`` and return its hash once mined.

        Raises an exception when the transaction reverts."""
        pass
