"""Coinbine: consolidate multichain wallet holdings into one asset on one chain."""

__version__ = "0.1.0"
