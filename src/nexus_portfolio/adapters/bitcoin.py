"""Bitcoin chain adapter backed by the Blockstream Esplora API (no auth)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from nexus_portfolio.adapters.base import AdapterResult, ChainAdapter
from nexus_portfolio.adapters.normalize import parse_timestamp, scale_amount
from nexus_portfolio.portfolio.chains import Blockchain, ChainFamily, native_asset
from nexus_portfolio.portfolio.models import TokenBalance, Transaction, TransactionType, Wallet
from nexus_portfolio.providers.http import ProviderClient

if TYPE_CHECKING:
    import httpx

    from nexus_portfolio.config import Settings


COINBASE_SENDER = "Newly Minted"
MULTIPLE_RECIPIENTS = "Self/Multiple"


def _sats(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return value


def _output_address(entry: object) -> str | None:
    if not isinstance(entry, dict):
        return None
    address = entry.get("scriptpubkey_address")
    return address if isinstance(address, str) else None


class BitcoinAdapter(ChainAdapter):
    """Esplora-backed adapter for Bitcoin addresses.

    Only the native BTC balance is reported; no NFTs, no DeFi.
    """

    family = ChainFamily.BITCOIN
    name = "bitcoin"
    supports_nfts = False
    supports_defi = False

    def __init__(self, client: ProviderClient, *, transaction_limit: int = 50) -> None:
        self._client = client
        self._transaction_limit = transaction_limit

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> BitcoinAdapter:
        client = ProviderClient(
            "blockstream",
            settings.blockstream.base_url,
            timeout_seconds=settings.aggregation.request_timeout_seconds,
            max_retries=settings.aggregation.max_retries,
            transport=transport,
        )
        return cls(client, transaction_limit=settings.blockstream.transaction_limit)

    async def fetch_wallet(self, wallet: Wallet) -> AdapterResult:
        parts = await self._gather_parts(
            wallet,
            {
                "balance": self._client.get_json(f"/address/{wallet.address}"),
                "transactions": self._client.get_json(f"/address/{wallet.address}/txs"),
            },
        )

        tokens: list[TokenBalance] = []
        balance = self.normalize_balance(parts.get("balance"))
        if balance is not None:
            tokens.append(balance)

        transactions: list[Transaction] = []
        raw_transactions = parts.get("transactions")
        if isinstance(raw_transactions, list):
            for tx in raw_transactions[: self._transaction_limit]:
                if not isinstance(tx, dict):
                    continue
                normalized = self.normalize_transaction(tx, wallet)
                if normalized is not None:
                    transactions.append(normalized)

        return AdapterResult(tokens=tuple(tokens), transactions=tuple(transactions))

    @staticmethod
    def normalize_balance(payload: Any) -> TokenBalance | None:
        """Confirmed balance: funded minus spent outputs."""
        if not isinstance(payload, dict) or not isinstance(payload.get("chain_stats"), dict):
            return None
        stats = payload["chain_stats"]
        sats = _sats(stats.get("funded_txo_sum")) - _sats(stats.get("spent_txo_sum"))
        native = native_asset(Blockchain.BITCOIN)
        amount = scale_amount(sats, native.decimals)
        if not amount:
            return None
        return TokenBalance(
            symbol=native.symbol,
            name=native.name,
            chain=Blockchain.BITCOIN,
            amount=amount,
            logo_url=native.logo_url,
        )

    @staticmethod
    def normalize_transaction(tx: dict[str, Any], wallet: Wallet) -> Transaction | None:
        """Derive direction and amount from the wallet's own inputs and outputs.

        A transaction whose wallet-owned inputs equal its wallet-owned outputs
        is a self-transfer and is dropped, as are unconfirmed transactions.
        """
        txid = tx.get("txid")
        status = tx.get("status") if isinstance(tx.get("status"), dict) else {}
        timestamp = parse_timestamp(status.get("block_time"))
        if not txid or timestamp is None:
            return None

        address = wallet.address
        inputs = [vin.get("prevout") for vin in tx.get("vin") or [] if isinstance(vin, dict)]
        outputs = [vout for vout in tx.get("vout") or [] if isinstance(vout, dict)]

        value_in = sum(
            _sats(prevout.get("value"))
            for prevout in inputs
            if _output_address(prevout) == address
        )
        value_out = sum(_sats(vout.get("value")) for vout in outputs if _output_address(vout) == address)
        net = value_out - value_in
        if net == 0:
            return None

        if net > 0:
            tx_type = TransactionType.RECEIVE
            sats = net
            first_input = inputs[0] if inputs else None
            from_address = _output_address(first_input) or COINBASE_SENDER
            to_address = address
        else:
            tx_type = TransactionType.SEND
            sats = sum(_sats(vout.get("value")) for vout in outputs if _output_address(vout) != address)
            from_address = address
            to_address = next(
                (
                    recipient
                    for vout in outputs
                    if (recipient := _output_address(vout)) is not None and recipient != address
                ),
                MULTIPLE_RECIPIENTS,
            )

        amount = scale_amount(sats, native_asset(Blockchain.BITCOIN).decimals)
        if not amount:
            return None

        return Transaction(
            id=str(txid),
            hash=str(txid),
            type=tx_type,
            timestamp=timestamp,
            token_symbol=native_asset(Blockchain.BITCOIN).symbol,
            amount=amount,
            from_address=from_address,
            to_address=to_address,
            chain=Blockchain.BITCOIN,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
