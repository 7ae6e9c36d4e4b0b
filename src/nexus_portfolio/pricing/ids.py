"""Ticker symbol to price-service id resolution."""

from __future__ import annotations

from types import MappingProxyType

from nexus_portfolio.portfolio.chains import BLOCKCHAIN_METADATA, Blockchain

# Keys are upper-cased ticker symbols.
SYMBOL_PRICE_IDS: MappingProxyType[str, str] = MappingProxyType(
    {
        "ETH": "ethereum",
        "WETH": "weth",
        "SOL": "solana",
        "BTC": "bitcoin",
        "MATIC": "matic-network",
        "USDC": "usd-coin",
        "ARB": "arbitrum",
        "PEPE": "pepe",
        "BONK": "bonk",
        "WIF": "dogwifhat",
        "BNB": "binancecoin",
        "USDT": "tether",
        "LINK": "chainlink",
        "UNI": "uniswap",
        "AAVE": "aave",
        "DAI": "dai",
        "SHIB": "shiba-inu",
        "LDO": "lido-dao",
        "MKR": "maker",
        "CRV": "curve-dao-token",
        "STETH": "staked-ether",
    }
)

NATIVE_PRICE_IDS: MappingProxyType[Blockchain, str] = MappingProxyType(
    {chain: info.native.price_id for chain, info in BLOCKCHAIN_METADATA.items()}
)


def resolve_price_id(symbol: str, chain: Blockchain | None = None) -> str:
    """Resolve a ticker symbol to the price service's canonical id.

    Lookup order: the static symbol table, then the chain's native asset
    (so ETH on Base prices as "ethereum"), then the lower-cased symbol as
    a best-effort guess.
    """
    ticker = symbol.strip().upper()
    mapped = SYMBOL_PRICE_IDS.get(ticker)
    if mapped is not None:
        return mapped
    if chain is not None and BLOCKCHAIN_METADATA[chain].native.symbol == ticker:
        return NATIVE_PRICE_IDS[chain]
    return symbol.strip().lower()
