"""Nexus Portfolio - multi-chain crypto portfolio aggregation."""

__version__ = "0.1.0"
