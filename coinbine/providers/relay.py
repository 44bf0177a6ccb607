"""Async client for Relay's public API, plus swap and bridge routers on top of it."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from ..config import get_settings
from ..core.errors import ExecutionError, RouteUnavailableError
from ..core.models import Account, TxResult
from ..core.swap.models import SwapRoute
from .base import BridgeProvider, SwapProvider, TransactionSender

logger = logging.getLogger(__name__)

# Relay error codes that mean "no path", as opposed to a malformed request
NO_ROUTE_ERROR_CODES = frozenset({
    "NO_SWAP_ROUTES_FOUND",
    "NO_QUOTES",
    "UNSUPPORTED_ROUTE",
    "UNSUPPORTED_CURRENCY",
    "AMOUNT_TOO_LOW",
})


class RelayProvider:
    """Thin wrapper around https://api.relay.link endpoints."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        configured = (
            base_url
            or settings.relay_base_url
            or os.environ.get("RELAY_BASE_URL", "")
        )
        if configured:
            self.base_urls: List[str] = [configured.rstrip("/")]
        else:
            self.base_urls = ["https://api.relay.link"]
        self.timeout_s = timeout_s if timeout_s is not None else settings.request_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json, text/plain, */*",
            "content-type": "application/json",
            "user-agent": "CoinbineRelayClient/0.1",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        merged_headers = {**self._headers(), **(headers or {})}
        last_error: Optional[Exception] = None

        for index, base_url in enumerate(self.base_urls):
            try:
                async with httpx.AsyncClient(
                    base_url=base_url,
                    timeout=self.timeout_s,
                    transport=self._transport,
                ) as client:
                    response = await client.request(method, path, json=json, headers=merged_headers, **kwargs)
                    response.raise_for_status()
                    return response
            except httpx.HTTPStatusError as exc:
                # Relay returns JSON error bodies with useful context; stop early unless we have another base URL to try.
                if exc.response.status_code in (404, 405) and index < len(self.base_urls) - 1:
                    last_error = exc
                    continue
                raise
            except httpx.RequestError as exc:
                last_error = exc
                continue

        if last_error is not None:
            raise last_error
        raise RuntimeError("All Relay hosts failed without providing an error response")

    async def quote(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Request a swap or bridge quote from Relay.

        `payload` should follow the schema documented at
        https://docs.relay.link/ (e.g. originChainId, destinationChainId, amount, etc.).
        """

        resp = await self._request("POST", "/quote", json=payload)
        return resp.json()

    async def get_chains(self) -> List[Dict[str, Any]]:
        resp = await self._request("GET", "/chains")
        data = resp.json()
        return data.get("chains", []) if isinstance(data, dict) else []


def _relay_error_code(exc: httpx.HTTPStatusError) -> Optional[str]:
    try:
        body = exc.response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("errorCode")
    return None


def _amount_out(quote: Dict[str, Any]) -> int:
    details = quote.get("details") or {}
    currency_out = details.get("currencyOut") or {}
    try:
        return int(currency_out.get("amount", 0) or 0)
    except (TypeError, ValueError):
        return 0


class _RelayRouter:
    """Shared quote/execute plumbing for the swap and bridge routers."""

    def __init__(
        self,
        *,
        relay: Optional[RelayProvider] = None,
        sender: Optional[TransactionSender] = None,
        slippage_bps: Optional[int] = None,
        referrer: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self._relay = relay or RelayProvider()
        self._sender = sender
        self._slippage_bps = slippage_bps if slippage_bps is not None else settings.slippage_bps
        self._referrer = referrer or settings.relay_referrer

    def _payload(
        self,
        account: Account,
        origin_chain_id: int,
        destination_chain_id: int,
        origin_currency: str,
        destination_currency: str,
        amount: int,
    ) -> Dict[str, Any]:
        return {
            'user': account.address,
            'recipient': account.address,
            'originChainId': origin_chain_id,
            'destinationChainId': destination_chain_id,
            'originCurrency': origin_currency,
            'destinationCurrency': destination_currency,
            'tradeType': 'EXACT_INPUT',
            'amount': str(amount),
            'slippageTolerance': str(self._slippage_bps),
            'referrer': self._referrer,
            'useExternalLiquidity': False,
            'useDepositAddress': False,
            'topupGas': False,
        }

    async def _fetch_quote(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            quote = await self._relay.quote(payload)
        except httpx.HTTPStatusError as exc:
            code = _relay_error_code(exc)
            if code in NO_ROUTE_ERROR_CODES:
                logger.info("Relay has no route (%s): payload=%s", code, payload)
                return None
            raise
        if not isinstance(quote, dict) or not quote.get('steps'):
            return None
        return quote

    async def _send_steps(self, default_chain_id: int, steps: List[Dict[str, Any]]) -> str:
        if self._sender is None:
            raise ExecutionError("No transaction sender configured; cannot sign Relay steps")

        last_hash: Optional[str] = None
        for step in steps:
            if step.get('kind') == 'signature':
                raise ExecutionError(
                    f"Relay step {step.get('id')!r} needs an off-chain signature, which is not supported",
                    chain_id=default_chain_id,
                )
            for item in step.get('items') or []:
                if item.get('status') == 'complete':
                    continue
                data = item.get('data') or {}
                if not isinstance(data, dict) or 'to' not in data:
                    continue
                tx = {key: data[key] for key in ('from', 'to', 'data', 'value', 'gas', 'maxFeePerGas', 'maxPriorityFeePerGas') if key in data}
                chain_id = int(data.get('chainId') or default_chain_id)
                last_hash = await self._sender.send_transaction(chain_id, tx)
                logger.info("Relay step %s sent on chain %d: %s", step.get('id'), chain_id, last_hash)

        if last_hash is None:
            raise ExecutionError("Relay route contained no transactions to send", chain_id=default_chain_id)
        return last_hash

    async def _execute(self, chain_id: int, steps: List[Dict[str, Any]], amount_out: int) -> TxResult:
        try:
            tx_hash = await self._send_steps(chain_id, steps)
        except (ExecutionError, httpx.HTTPError):
            raise
        except Exception as exc:
            # The sender raises on revert; report it as a failed transaction
            logger.warning("Relay execution failed on chain %d: %s", chain_id, exc)
            return TxResult(success=False, error=str(exc) or exc.__class__.__name__)
        return TxResult(success=True, tx_hash=tx_hash, amount_out=amount_out)


class RelaySwapRouter(_RelayRouter, SwapProvider):
    """Same-chain swaps quoted and routed by Relay."""

    name = "relay"

    async def quote(
        self,
        account: Account,
        chain_id: int,
        from_token: str,
        to_token: str,
        amount: int,
    ) -> Optional[SwapRoute]:
        payload = self._payload(account, chain_id, chain_id, from_token, to_token, amount)
        quote = await self._fetch_quote(payload)
        if quote is None:
            return None
        return SwapRoute(
            chain_id=chain_id,
            from_token=from_token,
            to_token=to_token,
            amount_in=amount,
            amount_out_estimate=_amount_out(quote),
            wallet_address=account.address,
            request_id=quote.get('requestId') or next(
                (step['requestId'] for step in quote['steps'] if step.get('requestId')),
                None,
            ),
            steps=quote.get('steps') or [],
            raw_response=quote,
        )

    async def execute(self, route: SwapRoute) -> TxResult:
        return await self._execute(route.chain_id, route.steps, route.amount_out_estimate)


class RelayBridgeRouter(_RelayRouter, BridgeProvider):
    """Cross-chain transfers quoted and routed by Relay."""

    name = "relay"

    async def bridge(
        self,
        account: Account,
        source_chain_id: int,
        target_chain_id: int,
        source_token: str,
        target_token: str,
        amount: int,
    ) -> TxResult:
        payload = self._payload(account, source_chain_id, target_chain_id, source_token, target_token, amount)
        quote = await self._fetch_quote(payload)
        if quote is None:
            raise RouteUnavailableError(
                f"no bridge route from chain {source_chain_id} to chain {target_chain_id}",
                chain_id=source_chain_id,
            )
        return await self._execute(source_chain_id, quote.get('steps') or [], _amount_out(quote))
