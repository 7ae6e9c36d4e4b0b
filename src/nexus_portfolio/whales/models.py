"""Data models for whale tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from nexus_portfolio.portfolio.chains import Blockchain
from nexus_portfolio.portfolio.models import (
    NFT,
    PortfolioValue,
    Token,
    Transaction,
    Wallet,
)


@dataclass(frozen=True)
class WhaleWallet:
    """A tracked wallet of interest for its trading activity."""

    id: str
    name: str
    address: str
    blockchain: Blockchain
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WhaleWallet:
        """Create a WhaleWallet from a persisted row."""
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["address"]),
            address=str(data["address"]).strip(),
            blockchain=Blockchain.parse(data["blockchain"]),
            description=str(data.get("description") or ""),
        )

    def to_wallet(self) -> Wallet:
        return Wallet(address=self.address, blockchain=self.blockchain, nickname=self.name, id=self.id)


@dataclass(frozen=True)
class SegmentMember:
    address: str
    blockchain: Blockchain


@dataclass(frozen=True)
class WhaleSegment:
    """A named group of whale wallets analyzed collectively."""

    id: str
    name: str
    description: str = ""
    addresses: tuple[SegmentMember, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WhaleSegment:
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            addresses=tuple(
                SegmentMember(
                    address=str(member["address"]).strip(),
                    blockchain=Blockchain.parse(member["blockchain"]),
                )
                for member in data.get("addresses") or []
            ),
        )

    def to_wallets(self) -> list[Wallet]:
        """One synthetic wallet per member address."""
        return [
            Wallet(
                address=member.address,
                blockchain=member.blockchain,
                id=f"segment-wallet-{index}",
            )
            for index, member in enumerate(self.addresses)
        ]


@dataclass(frozen=True)
class WhalePortfolio:
    """Holdings of a single whale wallet."""

    tokens: tuple[Token, ...] = ()
    nfts: tuple[NFT, ...] = ()
    transactions: tuple[Transaction, ...] = ()


@dataclass(frozen=True)
class SegmentPortfolio:
    """Merged holdings and value summary of a whale segment."""

    tokens: tuple[Token, ...] = ()
    nfts: tuple[NFT, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    value: PortfolioValue = field(default_factory=PortfolioValue)


@dataclass(frozen=True)
class Alert:
    """A significant whale transaction.

    The id is the transaction hash, so the same on-chain event never
    produces two alerts.
    """

    id: str
    whale_id: str
    whale_name: str
    transaction: Transaction
    timestamp: datetime
    is_read: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "whaleId": self.whale_id,
            "whaleName": self.whale_name,
            "transaction": self.transaction.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "isRead": self.is_read,
        }
