"""Tests for the Blockstream-backed Bitcoin adapter."""

from datetime import UTC, datetime
from decimal import Decimal

import httpx
import pytest

from nexus_portfolio.adapters.bitcoin import (
    COINBASE_SENDER,
    MULTIPLE_RECIPIENTS,
    BitcoinAdapter,
)
from nexus_portfolio.portfolio.chains import Blockchain
from nexus_portfolio.portfolio.models import TransactionType, Wallet
from nexus_portfolio.providers.http import ProviderClient

BASE_URL = "https://blockstream.test/api"
ADDRESS = "bc1qxy2kgdygjrsqtzq2n0yrf2493p83kkfjhx0wlh"
CONFIRMED = {"confirmed": True, "block_height": 840000, "block_time": 1714564800}


def _tx(txid: str, vin: list[dict], vout: list[dict], status: dict | None = None) -> dict:
    return {"txid": txid, "status": status or CONFIRMED, "vin": vin, "vout": vout}


def _vin(address: str | None, value: int) -> dict:
    if address is None:
        return {"is_coinbase": True, "prevout": None}
    return {"prevout": {"scriptpubkey_address": address, "value": value}}


def _vout(address: str | None, value: int) -> dict:
    out: dict = {"value": value}
    if address is not None:
        out["scriptpubkey_address"] = address
    return out


RECEIVE = _tx(
    "t-receive",
    [_vin("bc1qsender", 200_000_000)],
    [_vout(ADDRESS, 150_000_000), _vout("bc1qsender", 49_990_000)],
)
SEND = _tx(
    "t-send",
    [_vin(ADDRESS, 100_000_000)],
    [_vout("bc1qrecipient", 60_000_000), _vout(ADDRESS, 39_990_000)],
)
SELF = _tx(
    "t-self",
    [_vin(ADDRESS, 50_000_000)],
    [_vout(ADDRESS, 50_000_000)],
)
UNCONFIRMED = _tx(
    "t-pending",
    [_vin("bc1qsender", 10_000_000)],
    [_vout(ADDRESS, 10_000_000)],
    status={"confirmed": False},
)
COINBASE = _tx("t-coinbase", [_vin(None, 0)], [_vout(ADDRESS, 312_500_000)])
OP_RETURN_ONLY = _tx(
    "t-opreturn",
    [_vin(ADDRESS, 1_000)],
    [_vout(None, 0)],
)


def _adapter(txs: list[dict], *, balance: dict | None = None, limit: int = 50) -> BitcoinAdapter:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == f"/api/address/{ADDRESS}":
            return httpx.Response(
                200,
                json=balance
                or {
                    "address": ADDRESS,
                    "chain_stats": {"funded_txo_sum": 300_000_000, "spent_txo_sum": 100_000_000},
                    "mempool_stats": {"funded_txo_sum": 10_000_000, "spent_txo_sum": 0},
                },
            )
        if request.url.path == f"/api/address/{ADDRESS}/txs":
            return httpx.Response(200, json=txs)
        return httpx.Response(404)

    client = ProviderClient(
        "blockstream",
        BASE_URL,
        transport=httpx.MockTransport(handler),
        max_requests_per_second=1000,
        max_retries=0,
    )
    return BitcoinAdapter(client, transaction_limit=limit)


class TestBitcoinAdapterFetch:
    """Tests for BitcoinAdapter.fetch_wallet."""

    @pytest.mark.asyncio
    async def test_confirmed_balance(self, btc_wallet: Wallet) -> None:
        """Only confirmed funded minus spent outputs count."""
        result = await _adapter([]).fetch([btc_wallet])

        assert len(result.tokens) == 1
        token = result.tokens[0]
        assert token.symbol == "BTC"
        assert token.chain is Blockchain.BITCOIN
        assert token.amount == Decimal("2")

    @pytest.mark.asyncio
    async def test_empty_balance(self, btc_wallet: Wallet) -> None:
        adapter = _adapter([], balance={"chain_stats": {"funded_txo_sum": 5, "spent_txo_sum": 5}})
        result = await adapter.fetch([btc_wallet])
        assert result.tokens == ()

    @pytest.mark.asyncio
    async def test_transactions(self, btc_wallet: Wallet) -> None:
        result = await _adapter([RECEIVE, SEND, SELF, UNCONFIRMED, COINBASE]).fetch([btc_wallet])

        by_id = {tx.id: tx for tx in result.transactions}
        assert set(by_id) == {"t-receive", "t-send", "t-coinbase"}

        receive = by_id["t-receive"]
        assert receive.type is TransactionType.RECEIVE
        assert receive.amount == Decimal("1.5")
        assert receive.from_address == "bc1qsender"
        assert receive.to_address == ADDRESS
        assert receive.timestamp == datetime(2024, 5, 1, 12, tzinfo=UTC)

        send = by_id["t-send"]
        assert send.type is TransactionType.SEND
        assert send.amount == Decimal("0.6")
        assert send.to_address == "bc1qrecipient"

        assert by_id["t-coinbase"].from_address == COINBASE_SENDER

    @pytest.mark.asyncio
    async def test_transaction_limit(self, btc_wallet: Wallet) -> None:
        result = await _adapter([RECEIVE, SEND], limit=1).fetch([btc_wallet])
        assert [tx.id for tx in result.transactions] == ["t-receive"]

    @pytest.mark.asyncio
    async def test_capabilities(self, btc_wallet: Wallet) -> None:
        adapter = _adapter([RECEIVE])
        result = await adapter.fetch([btc_wallet])

        assert not adapter.supports_nfts
        assert not adapter.supports_defi
        assert result.nfts == ()
        assert result.defi_positions == ()


class TestBitcoinNormalization:
    """Tests for BitcoinAdapter.normalize_transaction."""

    def test_self_transfer_excluded(self, btc_wallet: Wallet) -> None:
        """Wallet inputs equal to wallet outputs net to zero and are dropped."""
        assert BitcoinAdapter.normalize_transaction(SELF, btc_wallet) is None

    def test_unconfirmed_excluded(self, btc_wallet: Wallet) -> None:
        assert BitcoinAdapter.normalize_transaction(UNCONFIRMED, btc_wallet) is None

    def test_send_without_other_addresses(self, btc_wallet: Wallet) -> None:
        """Spending into outputs without an address (fee only) is dropped."""
        assert BitcoinAdapter.normalize_transaction(OP_RETURN_ONLY, btc_wallet) is None

    def test_send_to_unaddressed_output(self, btc_wallet: Wallet) -> None:
        tx = _tx("t-burn", [_vin(ADDRESS, 100_000)], [_vout(None, 90_000)])

        result = BitcoinAdapter.normalize_transaction(tx, btc_wallet)

        assert result is not None
        assert result.type is TransactionType.SEND
        assert result.amount == Decimal("0.0009")
        assert result.to_address == MULTIPLE_RECIPIENTS
