"""Chain adapters - per-family fetchers producing price-less portfolio records."""

from nexus_portfolio.adapters.base import AdapterResult, ChainAdapter
from nexus_portfolio.adapters.bitcoin import BitcoinAdapter
from nexus_portfolio.adapters.evm import EvmAdapter
from nexus_portfolio.adapters.normalize import (
    IPFS_GATEWAY,
    PLACEHOLDER_IMAGE,
    infer_swaps,
    resolve_ipfs_url,
    scale_amount,
)
from nexus_portfolio.adapters.solana import SolanaAdapter

__all__ = [
    "AdapterResult",
    "BitcoinAdapter",
    "ChainAdapter",
    "EvmAdapter",
    "IPFS_GATEWAY",
    "PLACEHOLDER_IMAGE",
    "SolanaAdapter",
    "infer_swaps",
    "resolve_ipfs_url",
    "scale_amount",
]
