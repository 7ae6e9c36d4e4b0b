"""Tests for price-id resolution."""

import pytest

from nexus_portfolio.portfolio.chains import Blockchain
from nexus_portfolio.pricing.ids import SYMBOL_PRICE_IDS, resolve_price_id


class TestResolvePriceId:
    """Tests for resolve_price_id."""

    @pytest.mark.parametrize(
        ("symbol", "expected"),
        [
            ("ETH", "ethereum"),
            ("eth", "ethereum"),
            ("USDC", "usd-coin"),
            ("MATIC", "matic-network"),
            ("WIF", "dogwifhat"),
            ("BTC", "bitcoin"),
        ],
    )
    def test_static_table(self, symbol: str, expected: str) -> None:
        assert resolve_price_id(symbol) == expected

    def test_unknown_symbol_falls_back_to_lowercase(self) -> None:
        """Unmapped symbols become a best-effort lower-cased id."""
        assert resolve_price_id("ZZZ") == "zzz"
        assert resolve_price_id("ZZZ", Blockchain.ETHEREUM) == "zzz"

    def test_native_symbol_uses_chain_native_id(self) -> None:
        assert resolve_price_id("BNB", Blockchain.BSC) == "binancecoin"
        assert resolve_price_id("ETH", Blockchain.BASE) == "ethereum"

    def test_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            SYMBOL_PRICE_IDS["ZZZ"] = "zzz"  # type: ignore[index]
