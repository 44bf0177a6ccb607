"""
Error Classification

Defines the error taxonomy for consolidation runs.
Run-fatal errors abort the run; isolated errors are captured into the
affected entry's result and reported through the progress log.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorCategory(str, Enum):
    """Categories of errors for propagation decisions."""

    CONFIGURATION = "configuration"          # Unknown chain/token
    PRECONDITION = "precondition"            # No connected account, run in flight
    TRANSIENT_CHAIN = "transient_chain"      # RPC timeout/unreachable
    ROUTE_UNAVAILABLE = "route_unavailable"  # No swap path
    EXECUTION = "execution"                  # Swap or bridge tx failed
    AGGREGATION = "aggregation"              # Every balance query failed
    UNKNOWN = "unknown"


# Categories that end the run immediately
RUN_FATAL_CATEGORIES = frozenset({
    ErrorCategory.CONFIGURATION,
    ErrorCategory.PRECONDITION,
    ErrorCategory.AGGREGATION,
})


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    chain_id: Optional[int] = None
    token: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def run_fatal(self) -> bool:
        return self.category in RUN_FATAL_CATEGORIES


class ConsolidationError(Exception):
    """Base class for every error raised by the consolidation core."""

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        chain_id: Optional[int] = None,
        token: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = ErrorContext(
            category=self.category,
            chain_id=chain_id,
            token=token,
            details=details or {},
        )

    @property
    def chain_id(self) -> Optional[int]:
        return self.context.chain_id

    @property
    def token(self) -> Optional[str]:
        return self.context.token

    @property
    def run_fatal(self) -> bool:
        return self.context.run_fatal


class ConfigurationError(ConsolidationError):
    """Unknown chain or token; fatal before any network call."""

    category = ErrorCategory.CONFIGURATION


class PreconditionError(ConsolidationError):
    """The run cannot start (e.g. no wallet connected)."""

    category = ErrorCategory.PRECONDITION


class RunInProgressError(PreconditionError):
    """A consolidation run for the same account is already in flight."""

    def __init__(self, address: str):
        super().__init__(
            f"A consolidation run is already in progress for {address}",
            details={"address": address},
        )


class TransientChainError(ConsolidationError):
    """RPC timeout or unreachable endpoint, isolated to one chain/token pair."""

    category = ErrorCategory.TRANSIENT_CHAIN


class RouteUnavailableError(ConsolidationError):
    """No swap path exists for the requested pair."""

    category = ErrorCategory.ROUTE_UNAVAILABLE

    def __init__(self, message: str = "no route", **kwargs: Any):
        super().__init__(message, **kwargs)


class ExecutionError(ConsolidationError):
    """A swap or bridge transaction reverted or could not be submitted."""

    category = ErrorCategory.EXECUTION

    def __init__(self, message: str, *, tx_hash: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.tx_hash = tx_hash


class AggregationError(ConsolidationError):
    """Every balance query in a discovery step failed."""

    category = ErrorCategory.AGGREGATION


def classify_error(error: BaseException) -> ErrorCategory:
    """Map an arbitrary exception onto the consolidation error taxonomy."""

    if isinstance(error, ConsolidationError):
        return error.category
    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException, httpx.TransportError)):
        return ErrorCategory.TRANSIENT_CHAIN
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 429 or status >= 500:
            return ErrorCategory.TRANSIENT_CHAIN
        return ErrorCategory.EXECUTION
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.TRANSIENT_CHAIN
    return ErrorCategory.UNKNOWN


def describe_error(error: BaseException) -> str:
    """Short human-readable description used in progress events."""

    if isinstance(error, ConsolidationError):
        return error.message
    if isinstance(error, asyncio.TimeoutError):
        return "timed out"
    text = str(error).strip()
    return text or error.__class__.__name__
