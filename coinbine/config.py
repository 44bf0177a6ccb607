from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.chains import ChainRegistry, build_token_table, validate_tokens
from .core.models import TokenIdentity


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        env_prefix="COINBINE_",
        case_sensitive=False,
        extra="ignore"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Timeouts
    chain_timeout_seconds: float = Field(default=10.0, description="Per-chain balance query timeout")
    swap_timeout_seconds: float = Field(default=120.0, description="Timeout waiting for a swap to settle")
    bridge_timeout_seconds: float = Field(default=600.0, description="Timeout waiting for a bridge leg to settle")
    request_timeout_seconds: float = Field(default=20.0, description="HTTP request timeout for providers")

    # Relay
    relay_base_url: str = Field(
        default="",
        validation_alias=AliasChoices("COINBINE_RELAY_BASE_URL", "RELAY_BASE_URL"),
        description="Override the default Relay API base URL",
    )
    relay_referrer: str = Field(default="coinbine", description="Referrer tag sent with Relay quotes")
    slippage_bps: int = Field(default=50, description="Max slippage for swaps, in basis points")

    # RPC overrides: JSON map of chain id -> URL
    rpc_urls: Dict[int, str] = Field(
        default_factory=dict,
        description="Per-chain RPC endpoint overrides",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once from the environment and ``.env``."""
    return Settings()


@dataclass(frozen=True)
class ConsolidationConfig:
    """Explicit configuration handed to the orchestrator at construction."""

    registry: ChainRegistry
    tokens: Mapping[str, TokenIdentity] = field(default_factory=build_token_table)
    chain_timeout_s: float = 10.0
    swap_timeout_s: float = 120.0
    bridge_timeout_s: float = 600.0

    def __post_init__(self) -> None:
        validate_tokens(self.registry, self.tokens)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        *,
        tokens: Optional[Mapping[str, TokenIdentity]] = None,
        **overrides: Any,
    ) -> "ConsolidationConfig":
        settings = settings or get_settings()
        values: Dict[str, Any] = {
            "registry": ChainRegistry.default(settings.rpc_urls),
            "tokens": tokens if tokens is not None else build_token_table(),
            "chain_timeout_s": settings.chain_timeout_seconds,
            "swap_timeout_s": settings.swap_timeout_seconds,
            "bridge_timeout_s": settings.bridge_timeout_seconds,
        }
        values.update(overrides)
        return cls(**values)
