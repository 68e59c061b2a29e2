"""Priced, deduplicated ERC20 portfolio snapshots for Ethereum accounts."""

__version__ = "0.1.0"
