"""Chain registry and token deployment tables."""

from .registry import ChainRegistry, build_token_table, validate_tokens

__all__ = ["ChainRegistry", "build_token_table", "validate_tokens"]
