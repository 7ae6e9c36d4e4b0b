"""Data models for portfolio aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from nexus_portfolio.portfolio.chains import BLOCKCHAIN_METADATA, Blockchain

ZERO = Decimal(0)


class TransactionType(str, Enum):
    """Direction of a transaction relative to the queried wallet."""

    SEND = "send"
    RECEIVE = "receive"
    SWAP = "swap"


class DeFiPositionType(str, Enum):
    """Canonical DeFi position categories."""

    STAKING = "Staking"
    LIQUIDITY_POOL = "Liquidity Pool"
    LENDING = "Lending"
    FARMING = "Farming"
    OTHER = "Other"


@dataclass(frozen=True)
class Wallet:
    """One address on one blockchain.

    Wallets, whales and segment members are all represented by this type
    at the aggregation boundary.
    """

    address: str
    blockchain: Blockchain
    nickname: str | None = None
    id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Wallet:
        """Create a Wallet from a persisted row or request payload."""
        return cls(
            address=str(data["address"]).strip(),
            blockchain=Blockchain.parse(data["blockchain"]),
            nickname=data.get("nickname") or None,
            id=str(data["id"]) if data.get("id") is not None else None,
        )

    @property
    def key(self) -> str:
        """Stable wallet identifier used when the caller supplies no id."""
        return self.id or f"{self.blockchain.value}:{self.address}"


@dataclass(frozen=True)
class TokenBalance:
    """A price-less fungible holding as reported by a chain adapter."""

    symbol: str
    name: str
    chain: Blockchain
    amount: Decimal
    logo_url: str = ""

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"Token amount must be non-negative, got {self.amount}")

    @property
    def merge_key(self) -> tuple[str, Blockchain]:
        return (self.symbol.lower(), self.chain)


@dataclass(frozen=True)
class Token:
    """A priced fungible holding.

    `value` is always derived from amount and price; it is never stored.
    """

    id: str
    symbol: str
    name: str
    chain: Blockchain
    amount: Decimal
    price: Decimal
    change_24h: Decimal
    logo_url: str = ""

    @classmethod
    def from_balance(
        cls,
        balance: TokenBalance,
        *,
        price: Decimal,
        change_24h: Decimal,
    ) -> Token:
        symbol_key, chain = balance.merge_key
        return cls(
            id=f"{symbol_key}-{chain.value}",
            symbol=balance.symbol,
            name=balance.name,
            chain=balance.chain,
            amount=balance.amount,
            price=price,
            change_24h=change_24h,
            logo_url=balance.logo_url,
        )

    @property
    def value(self) -> Decimal:
        return self.amount * self.price

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "chain": self.chain.value,
            "amount": str(self.amount),
            "price": str(self.price),
            "value": str(self.value),
            "change24h": str(self.change_24h),
            "logoUrl": self.logo_url,
        }


@dataclass(frozen=True)
class NFT:
    """A non-fungible holding."""

    id: str
    name: str
    collection: str
    image_url: str
    chain: Blockchain
    marketplace_url: str
    floor_price: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "collection": self.collection,
            "imageUrl": self.image_url,
            "floorPrice": str(self.floor_price) if self.floor_price is not None else None,
            "chain": self.chain.value,
            "marketplaceUrl": self.marketplace_url,
        }


@dataclass(frozen=True)
class Transaction:
    """A historical on-chain transfer relative to a queried wallet.

    `value_usd` is None until the aggregator finalizes it, unless the
    provider reported a USD value directly.
    """

    id: str
    hash: str
    type: TransactionType
    timestamp: datetime
    token_symbol: str
    amount: Decimal
    from_address: str
    to_address: str
    chain: Blockchain
    value_usd: Decimal | None = None

    @property
    def date(self) -> str:
        """ISO 8601 timestamp."""
        return self.timestamp.isoformat()

    def involves(self, address: str) -> bool:
        """Check whether an address is a party to this transfer (case-insensitive)."""
        needle = address.lower()
        return needle in (self.from_address.lower(), self.to_address.lower())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "hash": self.hash,
            "type": self.type.value,
            "date": self.date,
            "tokenSymbol": self.token_symbol,
            "amount": str(self.amount),
            "valueUsd": str(self.value_usd) if self.value_usd is not None else None,
            "fromAddress": self.from_address,
            "toAddress": self.to_address,
            "chain": self.chain.value,
            "explorerUrl": BLOCKCHAIN_METADATA[self.chain].tx_url(self.hash),
        }


@dataclass(frozen=True)
class DeFiPositionToken:
    """One asset inside a DeFi position."""

    symbol: str
    amount: Decimal
    value_usd: Decimal
    logo_url: str


@dataclass(frozen=True)
class DeFiPosition:
    """A staking, lending, liquidity or farming position."""

    id: str
    platform: str
    type: DeFiPositionType
    label: str
    value_usd: Decimal
    chain: Blockchain
    tokens: tuple[DeFiPositionToken, ...] = ()
    apy: Decimal | None = None
    rewards_earned: Decimal = ZERO
    platform_logo_url: str = ""
    url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "platform": self.platform,
            "type": self.type.value,
            "label": self.label,
            "valueUsd": str(self.value_usd),
            "tokens": [
                {
                    "symbol": t.symbol,
                    "amount": str(t.amount),
                    "valueUsd": str(t.value_usd),
                    "logoUrl": t.logo_url,
                }
                for t in self.tokens
            ],
            "apy": str(self.apy) if self.apy is not None else None,
            "rewardsEarned": str(self.rewards_earned),
            "chain": self.chain.value,
            "platformLogoUrl": self.platform_logo_url,
            "url": self.url,
        }


@dataclass(frozen=True)
class PortfolioAssets:
    """Aggregated holdings for a wallet set, without the value summary.

    Token order is not guaranteed. Transactions are newest first.
    """

    tokens: tuple[Token, ...] = ()
    nfts: tuple[NFT, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    defi_positions: tuple[DeFiPosition, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.tokens or self.nfts or self.transactions or self.defi_positions)


@dataclass(frozen=True)
class PortfolioValue:
    """Aggregate value summary."""

    total: Decimal = ZERO
    change_24h: Decimal = ZERO
    change_24h_percent: Decimal = ZERO

    def to_dict(self) -> dict[str, str]:
        return {
            "total": str(self.total),
            "change24h": str(self.change_24h),
            "change24hPercent": str(self.change_24h_percent),
        }


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Point-in-time aggregation result for a wallet set."""

    assets: PortfolioAssets
    value: PortfolioValue
    computed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "tokens": [t.to_dict() for t in self.assets.tokens],
            "nfts": [n.to_dict() for n in self.assets.nfts],
            "transactions": [t.to_dict() for t in self.assets.transactions],
            "defiPositions": [p.to_dict() for p in self.assets.defi_positions],
            "portfolioValue": self.value.to_dict(),
            "computedAt": self.computed_at.isoformat(),
        }
