"""Solana chain adapter backed by Helius.

Holdings come from the DAS `getAssetsByOwner` JSON-RPC method, history from
the enriched transactions REST endpoint. Solana addresses are base58 and
compared case-sensitively.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from nexus_portfolio.adapters.base import AdapterResult, ChainAdapter
from nexus_portfolio.adapters.normalize import (
    infer_swaps,
    parse_decimal,
    parse_decimals,
    parse_timestamp,
    resolve_ipfs_url,
    scale_amount,
    transfer_direction,
)
from nexus_portfolio.portfolio.chains import Blockchain, ChainFamily, native_asset
from nexus_portfolio.portfolio.models import NFT, TokenBalance, Transaction, TransactionType, Wallet
from nexus_portfolio.providers.http import ProviderClient

if TYPE_CHECKING:
    import httpx

    from nexus_portfolio.config import Settings


FUNGIBLE_INTERFACES = frozenset({"FungibleToken", "FungibleAsset"})
ASSETS_PAGE_LIMIT = 1000
SWAP_TRANSACTION_TYPE = "SWAP"


@dataclass(frozen=True)
class MintMetadata:
    """Symbol and decimals of an SPL mint, taken from the owner's assets."""

    symbol: str
    decimals: int


@dataclass(frozen=True)
class SolanaHoldings:
    tokens: tuple[TokenBalance, ...]
    nfts: tuple[NFT, ...]
    mints: dict[str, MintMetadata]


class SolanaAdapter(ChainAdapter):
    """Helius-backed adapter for Solana wallets. Produces no DeFi positions."""

    family = ChainFamily.SOLANA
    name = "solana"
    supports_nfts = True
    supports_defi = False

    def __init__(
        self,
        client: ProviderClient,
        *,
        rpc_url: str,
        transaction_limit: int = 50,
    ) -> None:
        """Initialize the adapter.

        Args:
            client: HTTP client for the enriched-transactions API, carrying
                the `api-key` query parameter.
            rpc_url: Absolute DAS JSON-RPC endpoint (same credential).
            transaction_limit: Transactions requested per wallet.
        """
        self._client = client
        self._rpc_url = rpc_url
        self._transaction_limit = transaction_limit

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> SolanaAdapter:
        if settings.helius.api_key is None:
            raise ValueError("HELIUS_API_KEY is required for the Solana adapter")
        client = ProviderClient(
            "helius",
            settings.helius.api_url,
            params={"api-key": settings.helius.api_key.get_secret_value()},
            timeout_seconds=settings.aggregation.request_timeout_seconds,
            max_requests_per_second=settings.helius.max_requests_per_second,
            max_retries=settings.aggregation.max_retries,
            transport=transport,
        )
        return cls(
            client,
            rpc_url=settings.helius.rpc_url,
            transaction_limit=settings.helius.transaction_limit,
        )

    async def fetch_wallet(self, wallet: Wallet) -> AdapterResult:
        parts = await self._gather_parts(
            wallet,
            {
                "assets": self._client.post_json(
                    self._rpc_url,
                    {
                        "jsonrpc": "2.0",
                        "id": "nexus-assets",
                        "method": "getAssetsByOwner",
                        "params": {
                            "ownerAddress": wallet.address,
                            "page": 1,
                            "limit": ASSETS_PAGE_LIMIT,
                            "displayOptions": {
                                "showFungible": True,
                                "showNativeBalance": True,
                            },
                        },
                    },
                ),
                "transactions": self._client.get_json(
                    f"/v0/addresses/{wallet.address}/transactions",
                    params={"limit": self._transaction_limit},
                ),
            },
        )

        holdings = self.normalize_assets(parts.get("assets"), wallet)

        transactions: list[Transaction] = []
        raw_transactions = parts.get("transactions")
        if isinstance(raw_transactions, list):
            for tx in raw_transactions:
                if isinstance(tx, dict):
                    transactions.extend(self.normalize_transaction(tx, wallet, holdings.mints))

        return AdapterResult(
            tokens=holdings.tokens,
            nfts=holdings.nfts,
            transactions=tuple(infer_swaps(transactions)),
        )

    @staticmethod
    def normalize_assets(payload: Any, wallet: Wallet) -> SolanaHoldings:
        """Split a getAssetsByOwner result into SOL, fungible tokens and NFTs."""
        result = payload.get("result") if isinstance(payload, dict) else None
        if not isinstance(result, dict):
            return SolanaHoldings(tokens=(), nfts=(), mints={})

        native = native_asset(Blockchain.SOLANA)
        tokens: list[TokenBalance] = []
        nfts: list[NFT] = []
        mints: dict[str, MintMetadata] = {}

        native_balance = result.get("nativeBalance")
        if isinstance(native_balance, dict):
            lamports = scale_amount(native_balance.get("lamports"), native.decimals)
            if lamports:
                tokens.append(
                    TokenBalance(
                        symbol=native.symbol,
                        name=native.name,
                        chain=Blockchain.SOLANA,
                        amount=lamports,
                        logo_url=native.logo_url,
                    )
                )

        for item in result.get("items") or []:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            content = item.get("content") if isinstance(item.get("content"), dict) else {}
            metadata = content.get("metadata") if isinstance(content.get("metadata"), dict) else {}
            links = content.get("links") if isinstance(content.get("links"), dict) else {}

            if item.get("interface") in FUNGIBLE_INTERFACES:
                token_info = item.get("token_info") if isinstance(item.get("token_info"), dict) else {}
                symbol = metadata.get("symbol") or token_info.get("symbol")
                decimals = parse_decimals(token_info.get("decimals"))
                if not symbol or decimals is None:
                    continue
                mints[item["id"]] = MintMetadata(symbol=str(symbol), decimals=decimals)
                amount = scale_amount(token_info.get("balance"), decimals)
                if not amount:
                    continue
                tokens.append(
                    TokenBalance(
                        symbol=str(symbol),
                        name=str(metadata.get("name") or symbol),
                        chain=Blockchain.SOLANA,
                        amount=amount,
                        logo_url=resolve_ipfs_url(links.get("image")),
                    )
                )
                continue

            collection = next(
                (
                    group
                    for group in item.get("grouping") or []
                    if isinstance(group, dict) and group.get("group_key") == "collection"
                ),
                None,
            )
            if collection is None or not metadata:
                continue
            collection_meta = collection.get("collection_metadata")
            collection_name = (
                collection_meta.get("name") if isinstance(collection_meta, dict) else None
            ) or collection.get("group_value")
            nfts.append(
                NFT(
                    id=str(item["id"]),
                    name=str(metadata.get("name") or item["id"]),
                    collection=str(collection_name or "Unknown Collection"),
                    image_url=resolve_ipfs_url(links.get("image")),
                    chain=Blockchain.SOLANA,
                    marketplace_url=f"https://magiceden.io/item-details/{item['id']}",
                )
            )

        return SolanaHoldings(tokens=tuple(tokens), nfts=tuple(nfts), mints=mints)

    @staticmethod
    def normalize_transaction(
        tx: dict[str, Any],
        wallet: Wallet,
        mints: dict[str, MintMetadata],
    ) -> list[Transaction]:
        """Normalize the native and token transfer legs of an enriched transaction.

        Token legs whose mint is not among the wallet's known assets are
        dropped, since their decimals cannot be resolved.
        """
        signature = tx.get("signature")
        timestamp = parse_timestamp(tx.get("timestamp"))
        if not signature or timestamp is None:
            return []

        native = native_asset(Blockchain.SOLANA)
        legs: list[Transaction] = []
        transfers = [
            *(tx.get("nativeTransfers") or []),
            *(tx.get("tokenTransfers") or []),
        ]
        for transfer in transfers:
            if not isinstance(transfer, dict):
                continue
            sender = transfer.get("fromUserAccount")
            recipient = transfer.get("toUserAccount")
            if not sender or not recipient:
                continue
            tx_type = transfer_direction(wallet.address, sender, recipient, case_sensitive=True)
            if tx_type is None:
                continue

            mint = transfer.get("mint")
            amount: Decimal | None
            if not mint:
                symbol = native.symbol
                amount = scale_amount(transfer.get("amount"), native.decimals)
            else:
                meta = mints.get(mint)
                if meta is None:
                    continue
                symbol = meta.symbol
                raw = transfer.get("rawTokenAmount")
                if isinstance(raw, dict) and raw.get("tokenAmount") is not None:
                    amount = scale_amount(raw["tokenAmount"], meta.decimals)
                else:
                    amount = parse_decimal(transfer.get("tokenAmount"))
            if not amount or amount < 0:
                continue

            legs.append(
                Transaction(
                    id=f"{signature}-{mint or 'native'}-{len(legs)}",
                    hash=str(signature),
                    type=tx_type,
                    timestamp=timestamp,
                    token_symbol=symbol,
                    amount=amount,
                    from_address=sender,
                    to_address=recipient,
                    chain=Blockchain.SOLANA,
                )
            )

        if tx.get("type") == SWAP_TRANSACTION_TYPE:
            legs = [replace(leg, type=TransactionType.SWAP) for leg in legs]
        return legs

    async def aclose(self) -> None:
        await self._client.aclose()
