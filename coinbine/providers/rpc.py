"""JSON-RPC chain client for EVM networks."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..core.errors import TransientChainError
from ..core.models import Chain
from .base import ChainClient

logger = logging.getLogger(__name__)

# ERC-20 function selectors
BALANCE_OF_SELECTOR = "0x70a08231"
DECIMALS_SELECTOR = "0x313ce567"


def _encode_address(address: str) -> str:
    """Left-pad a 20-byte address to a 32-byte ABI word."""
    body = address.lower().removeprefix("0x")
    if len(body) != 40:
        raise ValueError(f"Invalid address {address!r}")
    return body.rjust(64, "0")


def _decode_uint(value: Optional[str]) -> int:
    if value in (None, "", "0x"):
        return 0
    return int(value, 16)


class RpcChainClient(ChainClient):
    """Reads balances from one chain through its JSON-RPC endpoint."""

    def __init__(
        self,
        chain: Chain,
        *,
        timeout_s: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.chain = chain
        self.chain_id = chain.chain_id
        self.timeout_s = timeout_s
        self._client = client
        self._decimals: Dict[str, int] = {}
        self._request_id = 0

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Make an RPC call to the chain."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        try:
            if self._client is not None:
                response = await self._client.post(self.chain.rpc_url, json=payload, timeout=self.timeout_s)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                    response = await client.post(self.chain.rpc_url, json=payload)
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise TransientChainError(
                f"{self.chain.name} RPC {method} failed: {exc}",
                chain_id=self.chain_id,
            ) from exc

        if "error" in result:
            raise TransientChainError(
                f"{self.chain.name} RPC error: {result['error']}",
                chain_id=self.chain_id,
            )

        return result.get("result")

    async def get_native_balance(self, address: str) -> int:
        result = await self._rpc_call("eth_getBalance", [address, "latest"])
        return _decode_uint(result)

    async def get_token_balance(self, address: str, contract_address: str) -> int:
        call = {"to": contract_address, "data": BALANCE_OF_SELECTOR + _encode_address(address)}
        result = await self._rpc_call("eth_call", [call, "latest"])
        return _decode_uint(result)

    async def decimals_of(self, contract_address: str) -> int:
        key = contract_address.lower()
        if key in self._decimals:
            return self._decimals[key]
        call = {"to": contract_address, "data": DECIMALS_SELECTOR}
        result = await self._rpc_call("eth_call", [call, "latest"])
        decimals = _decode_uint(result)
        self._decimals[key] = decimals
        logger.debug("Cached decimals=%d for %s on %s", decimals, contract_address, self.chain.name)
        return decimals


def build_chain_clients(
    chains,
    *,
    timeout_s: float = 10.0,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[int, ChainClient]:
    """One RpcChainClient per registered chain."""
    return {
        chain.chain_id: RpcChainClient(chain, timeout_s=timeout_s, client=client)
        for chain in chains
    }
