"""EVM chain adapter backed by the Moralis Web3 Data API (v2.2).

Covers every EVM-compatible chain in `Blockchain`. Per wallet, the native
balance, ERC-20 balances, NFTs, native and ERC-20 transfers and DeFi
positions are requested in parallel.
"""

from __future__ import annotations

import json
import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from web3 import AsyncWeb3

from nexus_portfolio.adapters.base import AdapterResult, ChainAdapter
from nexus_portfolio.adapters.normalize import (
    has_image,
    infer_swaps,
    parse_decimal,
    parse_timestamp,
    resolve_ipfs_url,
    scale_amount,
    transfer_direction,
)
from nexus_portfolio.portfolio.chains import Blockchain, ChainFamily, native_asset
from nexus_portfolio.portfolio.models import (
    NFT,
    ZERO,
    DeFiPosition,
    DeFiPositionToken,
    DeFiPositionType,
    TokenBalance,
    Transaction,
    Wallet,
)
from nexus_portfolio.providers.http import ProviderClient

if TYPE_CHECKING:
    import httpx

    from nexus_portfolio.config import Settings

logger = logging.getLogger(__name__)

MORALIS_CHAIN_IDS: MappingProxyType[Blockchain, str] = MappingProxyType(
    {
        Blockchain.ETHEREUM: "eth",
        Blockchain.POLYGON: "polygon",
        Blockchain.BSC: "bsc",
        Blockchain.ARBITRUM: "arbitrum",
        Blockchain.BASE: "base",
    }
)

OPENSEA_CHAIN_SLUGS: MappingProxyType[Blockchain, str] = MappingProxyType(
    {
        Blockchain.ETHEREUM: "ethereum",
        Blockchain.POLYGON: "matic",
        Blockchain.BSC: "bsc",
        Blockchain.ARBITRUM: "arbitrum",
        Blockchain.BASE: "base",
    }
)

DEFI_CATEGORY_TYPES: MappingProxyType[str, DeFiPositionType] = MappingProxyType(
    {
        "lending": DeFiPositionType.LENDING,
        "supplied": DeFiPositionType.LENDING,
        "borrowed": DeFiPositionType.LENDING,
        "staking": DeFiPositionType.STAKING,
        "staked": DeFiPositionType.STAKING,
        "liquidity_pool": DeFiPositionType.LIQUIDITY_POOL,
        "liquidity": DeFiPositionType.LIQUIDITY_POOL,
        "yield_farming": DeFiPositionType.FARMING,
        "farming": DeFiPositionType.FARMING,
    }
)

NFT_PAGE_SIZE = 50
TRANSFER_PAGE_SIZE = 50


def defi_position_type(category: object) -> DeFiPositionType:
    """Map a provider category string to a canonical position type.

    Unrecognized categories become OTHER rather than being mislabeled.
    """
    if not isinstance(category, str):
        return DeFiPositionType.OTHER
    return DEFI_CATEGORY_TYPES.get(category.strip().lower(), DeFiPositionType.OTHER)


def _results(payload: Any) -> list[dict[str, Any]]:
    """Moralis answers either a bare list or a cursor page with `result`."""
    if isinstance(payload, dict):
        payload = payload.get("result")
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


class EvmAdapter(ChainAdapter):
    """Moralis-backed adapter for EVM-compatible chains.

    Example:
        ```python
        adapter = EvmAdapter.from_settings(get_settings())
        result = await adapter.fetch([Wallet("0xabc...", Blockchain.ETHEREUM)])
        await adapter.aclose()
        ```
    """

    family = ChainFamily.EVM
    name = "evm"
    supports_nfts = True
    supports_defi = True

    def __init__(self, client: ProviderClient) -> None:
        self._client = client

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> EvmAdapter:
        if settings.moralis.api_key is None:
            raise ValueError("MORALIS_API_KEY is required for the EVM adapter")
        client = ProviderClient(
            "moralis",
            settings.moralis.base_url,
            headers={"X-API-Key": settings.moralis.api_key.get_secret_value()},
            timeout_seconds=settings.aggregation.request_timeout_seconds,
            max_requests_per_second=settings.moralis.max_requests_per_second,
            max_retries=settings.aggregation.max_retries,
            transport=transport,
        )
        return cls(client)

    async def fetch_wallet(self, wallet: Wallet) -> AdapterResult:
        chain_id = MORALIS_CHAIN_IDS.get(wallet.blockchain)
        if chain_id is None:
            return AdapterResult.empty()
        if not AsyncWeb3.is_address(wallet.address):
            logger.warning("Skipping invalid EVM address: %s", wallet.address)
            return AdapterResult.empty()

        address = wallet.address
        params = {"chain": chain_id}
        parts = await self._gather_parts(
            wallet,
            {
                "native balance": self._client.get_json(f"/{address}/balance", params=params),
                "erc20 balances": self._client.get_json(
                    f"/{address}/erc20", params={**params, "exclude_spam": "true"}
                ),
                "nfts": self._client.get_json(
                    f"/{address}/nft",
                    params={
                        **params,
                        "format": "decimal",
                        "normalizeMetadata": "true",
                        "media_items": "false",
                        "limit": NFT_PAGE_SIZE,
                    },
                ),
                "native transfers": self._client.get_json(
                    f"/{address}", params={**params, "limit": TRANSFER_PAGE_SIZE}
                ),
                "erc20 transfers": self._client.get_json(
                    f"/{address}/erc20/transfers", params={**params, "limit": TRANSFER_PAGE_SIZE}
                ),
                "defi positions": self._client.get_json(
                    f"/wallets/{address}/defi/positions", params=params
                ),
            },
        )

        tokens: list[TokenBalance] = []
        native = self._normalize_native_balance(parts.get("native balance"), wallet)
        if native is not None:
            tokens.append(native)
        tokens.extend(
            token
            for item in _results(parts.get("erc20 balances"))
            if (token := self._normalize_erc20_balance(item, wallet)) is not None
        )

        nfts = [
            nft
            for item in _results(parts.get("nfts"))
            if (nft := self._normalize_nft(item, wallet)) is not None
        ]

        transactions = [
            tx
            for item in _results(parts.get("native transfers"))
            if (tx := self.normalize_transfer(item, wallet, is_native=True)) is not None
        ]
        transactions.extend(
            tx
            for item in _results(parts.get("erc20 transfers"))
            if (tx := self.normalize_transfer(item, wallet, is_native=False)) is not None
        )

        defi_positions = [
            position
            for item in _results(parts.get("defi positions"))
            if (position := self.normalize_defi_position(item, wallet.blockchain)) is not None
        ]

        return AdapterResult(
            tokens=tuple(tokens),
            nfts=tuple(nfts),
            transactions=tuple(infer_swaps(transactions)),
            defi_positions=tuple(defi_positions),
        )

    @staticmethod
    def _normalize_native_balance(payload: Any, wallet: Wallet) -> TokenBalance | None:
        if not isinstance(payload, dict):
            return None
        native = native_asset(wallet.blockchain)
        amount = scale_amount(payload.get("balance"), native.decimals)
        if not amount:
            return None
        return TokenBalance(
            symbol=native.symbol,
            name=native.name,
            chain=wallet.blockchain,
            amount=amount,
            logo_url=native.logo_url,
        )

    @staticmethod
    def _normalize_erc20_balance(item: dict[str, Any], wallet: Wallet) -> TokenBalance | None:
        if item.get("possible_spam"):
            return None
        symbol = item.get("symbol")
        if not isinstance(symbol, str) or not symbol.strip():
            return None
        amount = scale_amount(item.get("balance"), item.get("decimals"))
        if not amount:
            return None
        return TokenBalance(
            symbol=symbol.strip(),
            name=str(item.get("name") or symbol).strip(),
            chain=wallet.blockchain,
            amount=amount,
            logo_url=resolve_ipfs_url(item.get("logo") or item.get("thumbnail")),
        )

    @staticmethod
    def _nft_metadata(item: dict[str, Any]) -> dict[str, Any]:
        normalized = item.get("normalized_metadata")
        if isinstance(normalized, dict) and normalized:
            return normalized
        raw = item.get("metadata")
        if isinstance(raw, str):
            try:
                decoded = json.loads(raw)
            except ValueError:
                return {}
            return decoded if isinstance(decoded, dict) else {}
        return {}

    def _normalize_nft(self, item: dict[str, Any], wallet: Wallet) -> NFT | None:
        contract = item.get("token_address")
        token_id = item.get("token_id")
        if not contract or token_id is None:
            return None
        metadata = self._nft_metadata(item)
        image = metadata.get("image") or metadata.get("image_url")
        if not has_image(image):
            return None
        slug = OPENSEA_CHAIN_SLUGS[wallet.blockchain]
        return NFT(
            id=f"{wallet.key}-{contract}-{token_id}",
            name=str(metadata.get("name") or f"#{token_id}"),
            collection=str(item.get("name") or "Unknown Collection"),
            image_url=resolve_ipfs_url(image),
            chain=wallet.blockchain,
            marketplace_url=f"https://opensea.io/assets/{slug}/{contract}/{token_id}",
            floor_price=parse_decimal(item.get("floor_price")),
        )

    @staticmethod
    def normalize_transfer(
        item: dict[str, Any],
        wallet: Wallet,
        *,
        is_native: bool,
    ) -> Transaction | None:
        """Normalize a native or ERC-20 transfer relative to the queried wallet.

        Returns None for transfers the wallet is not party to, self
        transfers, zero amounts and records without usable decimals.
        """
        from_address = item.get("from_address")
        to_address = item.get("to_address")
        if not isinstance(from_address, str) or not isinstance(to_address, str):
            return None
        tx_type = transfer_direction(wallet.address, from_address, to_address)
        if tx_type is None:
            return None

        tx_hash = item.get("transaction_hash") or item.get("hash")
        timestamp = parse_timestamp(item.get("block_timestamp"))
        if not tx_hash or timestamp is None:
            return None

        if is_native:
            native = native_asset(wallet.blockchain)
            decimals: object = native.decimals
            symbol = native.symbol
            suffix = "native"
        else:
            decimals = item.get("token_decimals")
            symbol = item.get("token_symbol")
            suffix = str(item.get("log_index", "token"))
            if not isinstance(symbol, str) or not symbol:
                return None

        amount = scale_amount(item.get("value"), decimals)
        if not amount:
            return None

        return Transaction(
            id=f"{tx_hash}-{suffix}",
            hash=str(tx_hash),
            type=tx_type,
            timestamp=timestamp,
            token_symbol=symbol,
            amount=amount,
            from_address=from_address,
            to_address=to_address,
            chain=wallet.blockchain,
            value_usd=parse_decimal(item.get("value_usd")),
        )

    @staticmethod
    def normalize_defi_position(item: dict[str, Any], chain: Blockchain) -> DeFiPosition | None:
        """Normalize one protocol position; non-protocol entries are skipped."""
        protocol_id = item.get("protocol_id")
        if not protocol_id:
            return None
        asset_type = item.get("asset_type")
        if asset_type is not None and asset_type != "protocol":
            return None

        position = item.get("position") if isinstance(item.get("position"), dict) else {}
        label = str(item.get("label") or position.get("label") or "")
        value_usd = parse_decimal(item.get("value_usd", position.get("balance_usd")))
        if value_usd is None:
            return None

        tokens = []
        for token in item.get("tokens") or position.get("tokens") or []:
            if not isinstance(token, dict) or not token.get("symbol"):
                continue
            tokens.append(
                DeFiPositionToken(
                    symbol=str(token["symbol"]),
                    amount=parse_decimal(token.get("amount_formatted", token.get("balance_formatted")))
                    or ZERO,
                    value_usd=parse_decimal(token.get("value_usd", token.get("usd_value"))) or ZERO,
                    logo_url=resolve_ipfs_url(token.get("logo_url") or token.get("logo")),
                )
            )

        details = position.get("position_details")
        apy = parse_decimal(item.get("apy"))
        if apy is None and isinstance(details, dict):
            apy = parse_decimal(details.get("apy"))

        rewards = sum(
            (
                parse_decimal(r.get("value_usd")) or ZERO
                for r in item.get("rewards") or []
                if isinstance(r, dict)
            ),
            ZERO,
        )
        if not rewards:
            rewards = parse_decimal(position.get("total_unclaimed_usd_value")) or ZERO

        return DeFiPosition(
            id=f"{protocol_id}-{label}-{chain.value}",
            platform=str(item.get("protocol_name") or protocol_id),
            type=defi_position_type(item.get("category", position.get("label"))),
            label=label,
            value_usd=value_usd,
            chain=chain,
            tokens=tuple(tokens),
            apy=apy or None,
            rewards_earned=rewards,
            platform_logo_url=resolve_ipfs_url(
                item.get("protocol_logo_url") or item.get("protocol_logo")
            ),
            url=str(item.get("protocol_url") or ""),
        )

    async def aclose(self) -> None:
        await self._client.aclose()
