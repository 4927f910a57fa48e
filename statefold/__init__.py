"""Reorg-aware block history and state folding over Ethereum-style chains."""

__version__ = "0.1.0"