"""Static blockchain metadata.

All tables in this module are read-only and loaded once at import time.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType


class Blockchain(str, Enum):
    """Supported blockchains."""

    ETHEREUM = "ethereum"
    POLYGON = "polygon"
    BSC = "bsc"
    ARBITRUM = "arbitrum"
    BASE = "base"
    SOLANA = "solana"
    BITCOIN = "bitcoin"

    @classmethod
    def parse(cls, value: str | Blockchain) -> Blockchain:
        """Parse a blockchain name case-insensitively."""
        if isinstance(value, Blockchain):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unsupported blockchain: {value!r}") from None


class ChainFamily(str, Enum):
    """Adapter grouping by blockchain technology."""

    EVM = "evm"
    SOLANA = "solana"
    BITCOIN = "bitcoin"


@dataclass(frozen=True)
class NativeAsset:
    """A blockchain's base currency."""

    symbol: str
    name: str
    decimals: int
    price_id: str
    logo_url: str


@dataclass(frozen=True)
class ChainInfo:
    """Display metadata and transaction explorer link for one blockchain."""

    name: str
    family: ChainFamily
    native: NativeAsset
    explorer_tx_url: str

    def tx_url(self, tx_hash: str) -> str:
        return self.explorer_tx_url.format(tx_hash)


def _trustwallet_logo(chain: str) -> str:
    return f"https://raw.githubusercontent.com/trustwallet/assets/master/blockchains/{chain}/info/logo.png"


_ETH = NativeAsset("ETH", "Ether", 18, "ethereum", _trustwallet_logo("ethereum"))

BLOCKCHAIN_METADATA: MappingProxyType[Blockchain, ChainInfo] = MappingProxyType(
    {
        Blockchain.ETHEREUM: ChainInfo(
            name="Ethereum",
            family=ChainFamily.EVM,
            native=NativeAsset("ETH", "Ethereum", 18, "ethereum", _trustwallet_logo("ethereum")),
            explorer_tx_url="https://etherscan.io/tx/{}",
        ),
        Blockchain.POLYGON: ChainInfo(
            name="Polygon",
            family=ChainFamily.EVM,
            native=NativeAsset("MATIC", "Polygon", 18, "matic-network", _trustwallet_logo("polygon")),
            explorer_tx_url="https://polygonscan.com/tx/{}",
        ),
        Blockchain.BSC: ChainInfo(
            name="BSC",
            family=ChainFamily.EVM,
            native=NativeAsset("BNB", "BNB", 18, "binancecoin", _trustwallet_logo("smartchain")),
            explorer_tx_url="https://bscscan.com/tx/{}",
        ),
        Blockchain.ARBITRUM: ChainInfo(
            name="Arbitrum",
            family=ChainFamily.EVM,
            native=_ETH,
            explorer_tx_url="https://arbiscan.io/tx/{}",
        ),
        Blockchain.BASE: ChainInfo(
            name="Base",
            family=ChainFamily.EVM,
            native=_ETH,
            explorer_tx_url="https://basescan.org/tx/{}",
        ),
        Blockchain.SOLANA: ChainInfo(
            name="Solana",
            family=ChainFamily.SOLANA,
            native=NativeAsset("SOL", "Solana", 9, "solana", _trustwallet_logo("solana")),
            explorer_tx_url="https://solscan.io/tx/{}",
        ),
        Blockchain.BITCOIN: ChainInfo(
            name="Bitcoin",
            family=ChainFamily.BITCOIN,
            native=NativeAsset("BTC", "Bitcoin", 8, "bitcoin", _trustwallet_logo("bitcoin")),
            explorer_tx_url="https://www.blockchain.com/btc/tx/{}",
        ),
    }
)

EVM_CHAINS: frozenset[Blockchain] = frozenset(
    chain for chain, info in BLOCKCHAIN_METADATA.items() if info.family is ChainFamily.EVM
)


def chain_family(blockchain: Blockchain) -> ChainFamily:
    """Return the adapter family a blockchain belongs to."""
    return BLOCKCHAIN_METADATA[blockchain].family


def native_asset(blockchain: Blockchain) -> NativeAsset:
    """Return the native asset metadata for a blockchain."""
    return BLOCKCHAIN_METADATA[blockchain].native
