"""Portfolio domain - chain metadata, records and valuation."""

from nexus_portfolio.portfolio.chains import (
    BLOCKCHAIN_METADATA,
    EVM_CHAINS,
    Blockchain,
    ChainFamily,
    chain_family,
    native_asset,
)
from nexus_portfolio.portfolio.models import (
    NFT,
    DeFiPosition,
    DeFiPositionToken,
    DeFiPositionType,
    PortfolioAssets,
    PortfolioSnapshot,
    PortfolioValue,
    Token,
    TokenBalance,
    Transaction,
    TransactionType,
    Wallet,
)
from nexus_portfolio.portfolio.valuation import change_24h_percent, compute_portfolio_value

__all__ = [
    "BLOCKCHAIN_METADATA",
    "Blockchain",
    "ChainFamily",
    "DeFiPosition",
    "DeFiPositionToken",
    "DeFiPositionType",
    "EVM_CHAINS",
    "NFT",
    "PortfolioAssets",
    "PortfolioSnapshot",
    "PortfolioValue",
    "Token",
    "TokenBalance",
    "Transaction",
    "TransactionType",
    "Wallet",
    "chain_family",
    "change_24h_percent",
    "compute_portfolio_value",
    "native_asset",
]
