"""Collaborator contracts and their concrete implementations."""

from .base import BridgeProvider, ChainClient, SwapProvider, TransactionSender

__all__ = ["BridgeProvider", "ChainClient", "SwapProvider", "TransactionSender"]
