"""
Live trades and OHLC candles for one symbol at a time.

State machine::

    Idle ──subscribe──▶ Loading ──▶ Live ──subscribe(other)──▶ Resubscribing ─┐
                                      ▲                                       │
                                      └──────────── Loading ◀─────────────────┘
    any ──unsubscribe / close──▶ Closed

``Loading`` issues one bulk query for recent trades and one for OHLC
history, then ``Live`` opens exactly one trade stream and one candle stream.
A symbol switch closes both streams before the new ones are opened, and
every update is tagged with the subscription token it was opened under, so
nothing from the previous symbol is merged once a switch has begun.

When a stream drops, the last trades and candles stay visible and the
snapshot is flagged ``degraded``; the feed does not reconnect on its own.
"""

from __future__ import annotations

import asyncio
import logging
import itertools
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, Iterable, Optional

import pandas as pd

from hypernova.core.errors import SubscriptionFailed
from hypernova.core.models import Candle, Trade
from hypernova.data.frames import candles_to_frame, trades_to_frame
from hypernova.data.market_client import MarketDataClient
from hypernova.data.streams import Connector, SocketSubscription, open_candle_stream, open_trade_stream

DEFAULT_MAX_TRADES = 100
DEFAULT_MAX_CANDLES = 500


class FeedState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    LIVE = "live"
    RESUBSCRIBING = "resubscribing"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# Bounded windows
# ---------------------------------------------------------------------------

class TradeWindow:
    """Newest-first ring of trades; the oldest falls off past *bound*."""

    def __init__(self, bound: int = DEFAULT_MAX_TRADES) -> None:
        if bound <= 0:
            raise ValueError("bound must be positive")
        self.bound = bound
        self._items: deque[Trade] = deque(maxlen=bound)

    def reset(self, trades: Iterable[Trade]) -> None:
        """Replace contents with *trades*, given newest first."""
        self._items = deque(itertools.islice(trades, self.bound), maxlen=self.bound)

    def push(self, trade: Trade) -> None:
        # No re-sorting: a late trade from a reordering transport sits where it lands.
        self._items.appendleft(trade)

    def snapshot(self) -> tuple[Trade, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)


class CandleSeries:
    """
    Ascending candles keyed by bucket ``time``.

    Merge rule for an incoming candle:
      * same ``time`` as the last entry -> replace it (open bucket refined)
      * greater ``time``                 -> append, drop from the front past *bound*
      * smaller ``time``                 -> ignored
    """

    def __init__(self, bound: int = DEFAULT_MAX_CANDLES) -> None:
        if bound <= 0:
            raise ValueError("bound must be positive")
        self.bound = bound
        self._items: list[Candle] = []

    def reset(self, candles: Iterable[Candle]) -> None:
        self._items = []
        for candle in candles:
            self.merge(candle)

    def merge(self, candle: Candle) -> bool:
        """Apply *candle*; returns ``False`` when it was ignored."""
        if self._items:
            last = self._items[-1]
            if candle.time == last.time:
                self._items[-1] = candle
                return True
            if candle.time < last.time:
                return False
        self._items.append(candle)
        overflow = len(self._items) - self.bound
        if overflow > 0:
            del self._items[:overflow]
        return True

    @property
    def last(self) -> Optional[Candle]:
        return self._items[-1] if self._items else None

    def snapshot(self) -> tuple[Candle, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)


@dataclass(frozen=True)
class MarketSnapshot:
    """Read-only view handed to consumers."""
    symbol: Optional[str]
    state: FeedState
    trades: tuple[Trade, ...] = ()
    candles: tuple[Candle, ...] = ()
    degraded: bool = False
    error: Optional[Exception] = None

    def candles_frame(self) -> pd.DataFrame:
        return candles_to_frame(self.candles)

    def trades_frame(self) -> pd.DataFrame:
        return trades_to_frame(self.trades)


Listener = Callable[[MarketSnapshot], None]


# ---------------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------------

class MarketFeed:
    """
    Parameters
    ----------
    client : MarketDataClient
        Bulk query endpoint for the initial load.
    ws_url : str
        Base URL of the trade/candle socket endpoint.
    max_trades, max_candles : int
        Window bounds.
    interval_seconds : int
        Candle bucket width; live candle times are aligned to it.
    connect : callable, optional
        Websocket connector passed through to the streams.
    logger : logging.Logger, optional
        Falls back to a module-level logger.
    """

    def __init__(
        self,
        client: MarketDataClient,
        ws_url: str,
        max_trades: int = DEFAULT_MAX_TRADES,
        max_candles: int = DEFAULT_MAX_CANDLES,
        interval_seconds: int = 60,
        connect: Optional[Connector] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.ws_url = ws_url
        self.interval_seconds = interval_seconds
        self._connect = connect
        self.logger = logger or logging.getLogger(__name__)

        self.state = FeedState.IDLE
        self.symbol: Optional[str] = None
        self.trades = TradeWindow(max_trades)
        self.candles = CandleSeries(max_candles)
        self.degraded = False
        self.error: Optional[Exception] = None

        self._token = 0
        self._handles: dict[str, SocketSubscription] = {}
        self._listeners: list[Listener] = []
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def snapshot(self) -> MarketSnapshot:
        return MarketSnapshot(
            symbol=self.symbol,
            state=self.state,
            trades=self.trades.snapshot(),
            candles=self.candles.snapshot(),
            degraded=self.degraded,
            error=self.error,
        )

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def live_feeds(self) -> list[str]:
        return [feed for feed, handle in self._handles.items() if handle.live]

    async def subscribe(self, symbol: str) -> MarketSnapshot:
        """Load and go live for *symbol*, switching away from any current one."""
        async with self._lock:
            if symbol == self.symbol and self.state is FeedState.LIVE:
                return self.snapshot()

            self._token += 1
            token = self._token

            if self._handles:
                self._set_state(FeedState.RESUBSCRIBING)
                self.logger.info(f"Switching market feed {self.symbol} -> {symbol}")
                await self._close_handles()

            self.symbol = symbol
            self.trades.reset(())
            self.candles.reset(())
            self.degraded = False
            self.error = None
            self._set_state(FeedState.LOADING)

            await self._load(symbol)
            if token == self._token:
                await self._open_streams(symbol, token)
                self._set_state(FeedState.LIVE)
            return self.snapshot()

    async def unsubscribe(self) -> None:
        """Tear down both streams; the feed ends ``Closed``."""
        self._token += 1
        async with self._lock:
            await self._close_handles()
            self._set_state(FeedState.CLOSED)

    close = unsubscribe

    @asynccontextmanager
    async def session(self, symbol: str) -> AsyncIterator["MarketFeed"]:
        """``async with feed.session("BTC/USD"): ...`` with guaranteed teardown."""
        await self.subscribe(symbol)
        try:
            yield self
        finally:
            await self.unsubscribe()

    # ------------------------------------------------------------------
    # Merges (also used directly by tests and replay tools)
    # ------------------------------------------------------------------

    def merge_trade(self, trade: Trade) -> None:
        self.logger.debug(f"[{self.symbol}] trade {trade.side.value} {trade.amount} @ {trade.price}")
        self.trades.push(trade)
        self._notify()

    def merge_candle(self, candle: Candle) -> bool:
        applied = self.candles.merge(candle)
        if applied:
            self._notify()
        else:
            self.logger.debug(
                f"[{self.symbol}] ignoring out-of-order candle time={candle.time} "
                f"(last={self.candles.last.time if self.candles.last else None})"
            )
        return applied

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(self, symbol: str) -> None:
        trades, candles = await asyncio.gather(
            self.client.get_recent_trades(symbol),
            self.client.get_ohlc(symbol),
            return_exceptions=True,
        )
        for label, result in (("trades", trades), ("candles", candles)):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                self.logger.warning(f"[{symbol}] initial {label} load failed: {result}")
                self.degraded = True
                self.error = result
        if not isinstance(trades, BaseException):
            self.trades.reset(trades)
        if not isinstance(candles, BaseException):
            self.candles.reset(candles)
        self.logger.info(
            f"[{symbol}] loaded {len(self.trades)} trades, {len(self.candles)} candles"
        )
        self._notify()

    async def _open_streams(self, symbol: str, token: int) -> None:
        openers = (
            ("trades", lambda: open_trade_stream(
                self.ws_url, symbol,
                on_trade=lambda t: self._on_trade(token, t),
                on_error=lambda e: self._on_error(token, e),
                connect=self._connect, logger=self.logger,
            )),
            ("candles", lambda: open_candle_stream(
                self.ws_url, symbol,
                on_candle=lambda c: self._on_candle(token, c),
                on_error=lambda e: self._on_error(token, e),
                interval_seconds=self.interval_seconds,
                connect=self._connect, logger=self.logger,
            )),
        )
        for feed, opener in openers:
            try:
                self._handles[feed] = await opener()
            except SubscriptionFailed as exc:
                self._on_error(token, exc)

    async def _close_handles(self) -> None:
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            await handle.close()

    def _on_trade(self, token: int, trade: Trade) -> None:
        if token != self._token:
            self.logger.debug(f"dropping trade from superseded subscription {token}")
            return
        self.merge_trade(trade)

    def _on_candle(self, token: int, candle: Candle) -> None:
        if token != self._token:
            self.logger.debug(f"dropping candle from superseded subscription {token}")
            return
        self.merge_candle(candle)

    def _on_error(self, token: int, error: SubscriptionFailed) -> None:
        if token != self._token:
            return
        self.logger.warning(f"[{self.symbol}] market feed degraded: {error}")
        self.degraded = True
        self.error = error
        self._notify()

    def _set_state(self, state: FeedState) -> None:
        self.state = state
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception as exc:
                self.logger.error(f"market feed listener failed: {exc}", exc_info=True)
