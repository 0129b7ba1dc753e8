"""Tests for the core value types."""

import pytest

from hypernova.core.models import (
    Candle,
    ChainTag,
    OrderBook,
    Side,
    Trade,
    align_to_bucket,
    to_seconds,
)


class TestChainTag:
    """Test chain tag parsing."""

    @pytest.mark.parametrize("raw,expected", [
        ("Cosmos", ChainTag.COSMOS),
        ("evm", ChainTag.EVM),
        (" SOLANA ", ChainTag.SOLANA),
        (ChainTag.EVM, ChainTag.EVM),
    ])
    def test_parse(self, raw, expected):
        assert ChainTag.parse(raw) is expected

    def test_unknown_chain(self):
        with pytest.raises(ValueError):
            ChainTag.parse("Bitcoin")


class TestSide:
    def test_parse_is_case_insensitive(self):
        assert Side.parse("BUY") is Side.BUY
        assert Side.parse("sell") is Side.SELL

    def test_invalid_side(self):
        with pytest.raises(ValueError):
            Side.parse("hold")


class TestTimestamps:
    """Test epoch normalisation."""

    def test_milliseconds_converted(self):
        assert to_seconds(1_700_000_000_123) == 1_700_000_000

    def test_seconds_unchanged(self):
        assert to_seconds(1_700_000_000) == 1_700_000_000
        assert to_seconds("1700000000") == 1_700_000_000

    def test_bucket_alignment(self):
        assert align_to_bucket(1_700_000_059, 60) == 1_700_000_040
        assert align_to_bucket(1_699_999_980, 60) == 1_699_999_980


class TestRecords:
    """Test parsing of market-data records."""

    def test_trade_from_dict(self):
        trade = Trade.from_dict({"price": "30000.5", "amount": 0.1, "side": "Sell", "timestamp": 1_700_000_000_000})

        assert trade == Trade(price=30000.5, amount=0.1, side=Side.SELL, timestamp=1_700_000_000)

    def test_candle_from_dict_aligns_bucket(self):
        """Test a millisecond candle time lands on its 60 s bucket start."""
        candle = Candle.from_dict(
            {"time": 1_700_000_030_000, "open": 1, "high": 2, "low": 0.5, "close": 1.5},
            interval_seconds=60,
        )

        assert candle.time == 1_699_999_980
        assert candle.volume is None
        assert candle.close == 1.5


class TestOrderBook:
    """Test order book parsing."""

    def test_levels_sorted_and_spread(self):
        book = OrderBook.from_dict({
            "bids": [{"price": 99, "amount": 1}, {"price": 100, "amount": 2}],
            "asks": [{"price": 102, "amount": 1}, {"price": 101, "amount": 3}],
        })

        assert [level.price for level in book.bids] == [100, 99]
        assert [level.price for level in book.asks] == [101, 102]
        assert book.best_bid == 100
        assert book.best_ask == 101
        assert book.spread == 1

    def test_empty_book(self):
        book = OrderBook.from_dict({})

        assert book.best_bid is None
        assert book.spread is None
