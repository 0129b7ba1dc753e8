"""
DataFrame helpers for candle and trade records.

Bulk OHLC responses arrive in whatever order and granularity the market API
produces.  ``normalize_candles`` turns them into a clean series: seconds
timestamps aligned to the bucket width, ascending, one row per bucket (the
last record for a bucket wins, as with the live merge).
"""

from __future__ import annotations

from typing import Iterable, Optional

import pandas as pd

from hypernova.core.models import Candle, Trade, align_to_bucket, to_seconds

CANDLE_COLUMNS = ["time", "open", "high", "low", "close", "volume"]
TRADE_COLUMNS = ["timestamp", "price", "amount", "side"]


def normalize_candles(records: Iterable[dict], interval_seconds: int = 0) -> list[Candle]:
    df = pd.DataFrame(list(records))
    if df.empty:
        return []

    missing = [c for c in CANDLE_COLUMNS[:5] if c not in df.columns]
    if missing:
        raise ValueError(f"candle records missing columns: {missing}")
    if "volume" not in df.columns:
        df["volume"] = None

    df["time"] = df["time"].map(to_seconds)
    if interval_seconds > 0:
        df["time"] = df["time"].map(lambda ts: align_to_bucket(ts, interval_seconds))
    df[["open", "high", "low", "close"]] = df[["open", "high", "low", "close"]].astype(float)

    df = df.sort_values("time", kind="stable")
    df = df.drop_duplicates(subset=["time"], keep="last").reset_index(drop=True)

    return [
        Candle(
            time=int(row.time),
            open=row.open,
            high=row.high,
            low=row.low,
            close=row.close,
            volume=None if pd.isna(row.volume) else float(row.volume),
        )
        for row in df[CANDLE_COLUMNS].itertuples(index=False)
    ]


def normalize_trades(records: Iterable[dict], limit: Optional[int] = None) -> list[Trade]:
    """Parse trades and order them newest first, keeping at most *limit*."""
    trades = [Trade.from_dict(r) for r in records]
    trades.sort(key=lambda t: t.timestamp, reverse=True)
    return trades[:limit] if limit is not None else trades


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    df = pd.DataFrame(
        [(c.time, c.open, c.high, c.low, c.close, c.volume) for c in candles],
        columns=CANDLE_COLUMNS,
    )
    df["open_time"] = pd.to_datetime(df["time"], unit="s", utc=True)
    return df


def trades_to_frame(trades: Iterable[Trade]) -> pd.DataFrame:
    df = pd.DataFrame(
        [(t.timestamp, t.price, t.amount, t.side.value) for t in trades],
        columns=TRADE_COLUMNS,
    )
    df["time"] = pd.to_datetime(df["timestamp"], unit="s", utc=True)
    return df
