from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

# Millisecond epoch values are all above this; seconds won't reach it for ~30k years.
_MS_THRESHOLD = 10**12


class ChainTag(Enum):
    COSMOS = "Cosmos"    # account model, contract-execute style
    EVM = "EVM"          # ABI-call style
    SOLANA = "Solana"    # instruction style

    @classmethod
    def parse(cls, value: "ChainTag | str") -> "ChainTag":
        """Accept a tag or the wallet name the UI uses ("Cosmos", "evm", ...)."""
        if isinstance(value, cls):
            return value
        for tag in cls:
            if str(value).strip().lower() in (tag.value.lower(), tag.name.lower()):
                return tag
        raise ValueError(f"Unknown chain: {value!r}")


class Side(Enum):
    BUY = "buy"
    SELL = "sell"

    @classmethod
    def parse(cls, value: "Side | str") -> "Side":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Side must be 'buy' or 'sell', got {value!r}") from None


class MarketKind(Enum):
    SPOT = "spot"
    PERP = "perp"


@dataclass(frozen=True)
class TradeRequest:
    chain: ChainTag
    address: Any         # bech32 / 0x-hex / base58 public key, opaque here
    side: Side
    amount: float
    price: float


@dataclass(frozen=True)
class TradeResult:
    transaction_id: str
    chain: Optional[ChainTag] = None


@dataclass(frozen=True)
class FeeQuote:
    amount: float
    currency: str
    estimated: bool = True   # False when a static fallback was used


@dataclass(frozen=True)
class Trade:
    price: float
    amount: float
    side: Side
    timestamp: int       # epoch seconds

    @classmethod
    def from_dict(cls, raw: dict) -> "Trade":
        return cls(
            price=float(raw["price"]),
            amount=float(raw["amount"]),
            side=Side.parse(raw["side"]),
            timestamp=to_seconds(raw["timestamp"]),
        )


@dataclass(frozen=True)
class Candle:
    time: int            # bucket start, epoch seconds
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = None

    @classmethod
    def from_dict(cls, raw: dict, interval_seconds: int = 0) -> "Candle":
        ts = to_seconds(raw["time"])
        if interval_seconds > 0:
            ts = align_to_bucket(ts, interval_seconds)
        volume = raw.get("volume")
        return cls(
            time=ts,
            open=float(raw["open"]),
            high=float(raw["high"]),
            low=float(raw["low"]),
            close=float(raw["close"]),
            volume=float(volume) if volume is not None else None,
        )


@dataclass(frozen=True)
class OrderLevel:
    price: float
    amount: float


@dataclass(frozen=True)
class OrderBook:
    bids: tuple[OrderLevel, ...] = field(default_factory=tuple)
    asks: tuple[OrderLevel, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, raw: dict) -> "OrderBook":
        bids = [OrderLevel(float(o["price"]), float(o["amount"])) for o in raw.get("bids", [])]
        asks = [OrderLevel(float(o["price"]), float(o["amount"])) for o in raw.get("asks", [])]
        bids.sort(key=lambda o: o.price, reverse=True)
        asks.sort(key=lambda o: o.price)
        return cls(bids=tuple(bids), asks=tuple(asks))

    @property
    def best_bid(self) -> Optional[float]:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.asks[0].price if self.asks else None

    @property
    def spread(self) -> Optional[float]:
        if self.best_bid is None or self.best_ask is None:
            return None
        return self.best_ask - self.best_bid


def to_seconds(ts: Any) -> int:
    """Normalise an epoch timestamp in seconds or milliseconds to seconds."""
    value = int(float(ts))
    if value >= _MS_THRESHOLD:
        value //= 1000
    return value


def align_to_bucket(ts: int, interval_seconds: int) -> int:
    return ts - (ts % interval_seconds)
