"""BridgeExecutor moves post-swap residue from source chains onto the target chain."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Mapping, Optional

from ..cancellation import CancellationRequested, run_cancellable
from ..chains import ChainRegistry
from ..errors import ConfigurationError, RouteUnavailableError, describe_error
from ..models import Account, TokenIdentity, format_units, to_units
from ..progress import emit
from .models import BridgeLeg, BridgeLegStatus, BridgeResult

if TYPE_CHECKING:  # pragma: no cover
    from ...providers.base import BridgeProvider


class BridgeExecutor:
    """Runs one serialized bridge leg per source chain holding residue.

    A failed leg never rolls back legs that already landed; each chain's
    funds stay individually safe, on either the source or the target chain.
    """

    def __init__(
        self,
        provider: "BridgeProvider",
        tokens: Mapping[str, TokenIdentity],
        registry: ChainRegistry,
        *,
        timeout_s: float = 600.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._provider = provider
        self._tokens = tokens
        self._registry = registry
        self._timeout_s = timeout_s
        self._logger = logger or logging.getLogger(__name__)

    def _amount(self, token: TokenIdentity, chain_id: int, amount: int, decimals: Optional[Mapping[int, int]]) -> str:
        if decimals and chain_id in decimals:
            return f"{format_units(to_units(amount, decimals[chain_id]))} {token.symbol}"
        return f"{amount} base units of {token.symbol}"

    async def bridge(
        self,
        account: Account,
        source_amounts: Mapping[int, int],
        target_chain_id: int,
        token: str,
        *,
        decimals: Optional[Mapping[int, int]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BridgeResult:
        """Bridge ``source_amounts`` (chain id -> raw amount) onto ``target_chain_id``."""
        target_chain = self._registry.resolve(target_chain_id)
        identity = self._tokens.get(token)
        if identity is None:
            raise ConfigurationError(f"Unknown token {token!r}", token=token)
        target_deployment = identity.deployment_on(target_chain_id)
        if target_deployment is None:
            raise ConfigurationError(
                f"{token} is not deployed on {target_chain.name}",
                chain_id=target_chain_id,
                token=token,
            )

        result = BridgeResult(target_chain_id=target_chain_id, token=token)
        legs = [
            (chain_id, amount)
            for chain_id, amount in source_amounts.items()
            if chain_id != target_chain_id and amount > 0
        ]
        if not legs:
            result.noop = True
            emit(f"All {token} already on {target_chain.name}; nothing to bridge")
            return result

        for chain_id, amount in legs:
            source_name = self._registry.resolve(chain_id).name
            label = f"{self._amount(identity, chain_id, amount, decimals)} from {source_name} to {target_chain.name}"
            leg = BridgeLeg(source_chain_id=chain_id, amount=amount, status=BridgeLegStatus.FAILED)
            result.legs.append(leg)

            if cancel_event is not None and cancel_event.is_set():
                leg.status = BridgeLegStatus.CANCELLED
                leg.error = "run cancelled"
                continue

            source_deployment = identity.deployment_on(chain_id)
            if source_deployment is None:
                leg.error = f"no route ({token} not deployed on {source_name})"
                emit(f"Bridge {label} failed: {leg.error}", level=logging.WARNING)
                continue

            emit(f"Bridging {label}...")
            try:
                tx = await run_cancellable(
                    self._provider.bridge(
                        account,
                        chain_id,
                        target_chain_id,
                        source_deployment.address,
                        target_deployment.address,
                        amount,
                    ),
                    cancel_event,
                    timeout=self._timeout_s,
                )
            except CancellationRequested:
                leg.status = BridgeLegStatus.UNKNOWN
                leg.error = "cancelled after submission; outcome unknown"
                emit(f"Bridge {label} submitted, outcome unknown (run cancelled)", level=logging.WARNING)
                continue
            except asyncio.TimeoutError:
                leg.status = BridgeLegStatus.UNKNOWN
                leg.error = f"no outcome within {self._timeout_s:g}s; outcome unknown"
                emit(f"Bridge {label} submitted, outcome unknown (timed out)", level=logging.WARNING)
                continue
            except RouteUnavailableError as exc:
                leg.error = exc.message
                emit(f"Bridge {label} failed: {exc.message}", level=logging.WARNING)
                continue
            except Exception as exc:
                self._logger.warning("Bridge leg failed for %s: %s", label, exc)
                leg.error = describe_error(exc)
                emit(f"Bridge {label} failed: {leg.error}", level=logging.WARNING)
                continue

            leg.tx_hash = tx.tx_hash
            if not tx.success:
                leg.error = tx.error or "transaction failed"
                emit(f"Bridge {label} failed: {leg.error}", level=logging.WARNING)
                continue

            leg.status = BridgeLegStatus.SUCCEEDED
            leg.amount_out = tx.amount_out
            emit(f"Bridge {label} landed (tx {tx.tx_hash})")

        if not result.success:
            remaining = ", ".join(
                f"{self._registry.chain_name(leg.source_chain_id)} "
                f"({self._amount(identity, leg.source_chain_id, leg.amount, decimals)}, {leg.status.value})"
                for leg in result.failed_legs
            )
            emit(f"Funds not moved to {target_chain.name} remain on: {remaining}", level=logging.WARNING)
        return result
