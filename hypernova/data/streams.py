"""
Push subscriptions for live trades and candles.

One ``SocketSubscription`` owns exactly one websocket for one
(symbol, feed-kind) pair::

    {ws_url}/trades/{symbol}     -> {"price", "amount", "side", "timestamp"}
    {ws_url}/candles/{symbol}    -> {"time", "open", "high", "low", "close", "volume"}

Messages are parsed and handed to *on_message* in the order the socket
delivers them.  When the transport drops, *on_error* receives a
``SubscriptionFailed`` and the subscription stays down: reconnecting is the
owner's decision, not this class's.

Usage::

    sub = await open_trade_stream(ws_url, "BTC/USD", on_trade, on_error)
    ...
    await sub.close()
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

import websockets
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from hypernova.core.errors import SubscriptionFailed
from hypernova.core.models import Candle, Trade

TRADES = "trades"
CANDLES = "candles"

MessageCallback = Callable[[Any], None]
ErrorCallback = Callable[[SubscriptionFailed], None]
Connector = Callable[..., Awaitable[Any]]


# ---------------------------------------------------------------------------
# Message parsing
# ---------------------------------------------------------------------------

def _payload(msg: Any) -> Optional[dict]:
    """Unwrap Tendermint-style ``{"result": {"data": {"value": {...}}}}`` envelopes."""
    if not isinstance(msg, dict):
        return None
    value = (((msg.get("result") or {}).get("data") or {}).get("value"))
    if isinstance(value, dict):
        return value
    return msg


def parse_trade_message(msg: Any) -> Optional[Trade]:
    data = _payload(msg)
    if not data or "price" not in data:
        return None
    return Trade.from_dict(data)


def parse_candle_message(msg: Any, interval_seconds: int = 0) -> Optional[Candle]:
    data = _payload(msg)
    if not data or "time" not in data:
        return None
    return Candle.from_dict(data, interval_seconds)


# ---------------------------------------------------------------------------
# Subscription handle
# ---------------------------------------------------------------------------

class SocketSubscription:
    """
    Parameters
    ----------
    url : str
        Fully-built stream URL.
    symbol : str
        Market symbol, for logging and error events.
    feed : str
        ``"trades"`` or ``"candles"``.
    parse : callable
        ``decoded JSON -> item | None``; ``None`` skips the message.
    on_message : callable
        Receives each parsed item.  Called on the event loop; must be
        non-blocking.
    on_error : callable, optional
        Receives a ``SubscriptionFailed`` when the transport is lost.
    connect : callable, optional
        Coroutine factory returning a websocket; defaults to
        ``websockets.connect``.
    logger : logging.Logger, optional
        Falls back to a module-level logger.
    """

    def __init__(
        self,
        url: str,
        symbol: str,
        feed: str,
        parse: Callable[[Any], Any],
        on_message: MessageCallback,
        on_error: Optional[ErrorCallback] = None,
        connect: Optional[Connector] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.url = url
        self.symbol = symbol
        self.feed = feed
        self.parse = parse
        self.on_message = on_message
        self.on_error = on_error
        self._connect = connect or websockets.connect
        self.logger = logger or logging.getLogger(__name__)

        self._ws: Any = None
        self._task: Optional[asyncio.Task] = None
        self._closing = False

    @property
    def live(self) -> bool:
        return self._task is not None and not self._task.done() and not self._closing

    async def open(self) -> "SocketSubscription":
        if self._ws is not None:
            raise RuntimeError(f"{self.feed} subscription for {self.symbol} already opened")
        try:
            self._ws = await self._connect(
                self.url, ping_interval=20, ping_timeout=10, close_timeout=5
            )
        except Exception as exc:
            raise SubscriptionFailed(self.symbol, self.feed, f"connect failed: {exc}") from exc

        self.logger.info(f"[WS {self.feed}] Connected for {self.symbol}")
        self._task = asyncio.get_running_loop().create_task(self._listen())
        return self

    async def close(self) -> None:
        """Release the socket.  Safe to call more than once."""
        if self._closing:
            return
        self._closing = True
        if self._task is not None:
            self._task.cancel()
        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception as exc:
                self.logger.debug(f"[WS {self.feed}] close error for {self.symbol}: {exc}")
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
        self.logger.info(f"[WS {self.feed}] Disconnected for {self.symbol}")

    async def _listen(self) -> None:
        try:
            async for raw in self._ws:
                if self._closing:
                    break
                try:
                    item = self.parse(json.loads(raw))
                except (ValueError, KeyError, TypeError) as exc:
                    self.logger.error(
                        f"[WS {self.feed}] Failed to parse message for {self.symbol}: {exc}"
                    )
                    continue
                if item is not None:
                    self.on_message(item)
        except (ConnectionClosedError, ConnectionClosedOK) as exc:
            self._fail(f"connection closed ({exc})")
            return
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._fail(f"{type(exc).__name__}: {exc}")
            return
        self._fail("stream ended")

    def _fail(self, reason: str) -> None:
        if self._closing:
            return
        self.logger.warning(f"[WS {self.feed}] Lost stream for {self.symbol}: {reason}")
        if self.on_error is not None:
            self.on_error(SubscriptionFailed(self.symbol, self.feed, reason))


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

def stream_url(ws_url: str, feed: str, symbol: str) -> str:
    return f"{ws_url.rstrip('/')}/{feed}/{quote(symbol, safe='')}"


async def open_trade_stream(
    ws_url: str,
    symbol: str,
    on_trade: Callable[[Trade], None],
    on_error: Optional[ErrorCallback] = None,
    connect: Optional[Connector] = None,
    logger: Optional[logging.Logger] = None,
) -> SocketSubscription:
    sub = SocketSubscription(
        stream_url(ws_url, TRADES, symbol), symbol, TRADES,
        parse_trade_message, on_trade, on_error, connect, logger,
    )
    return await sub.open()


async def open_candle_stream(
    ws_url: str,
    symbol: str,
    on_candle: Callable[[Candle], None],
    on_error: Optional[ErrorCallback] = None,
    interval_seconds: int = 0,
    connect: Optional[Connector] = None,
    logger: Optional[logging.Logger] = None,
) -> SocketSubscription:
    sub = SocketSubscription(
        stream_url(ws_url, CANDLES, symbol), symbol, CANDLES,
        lambda msg: parse_candle_message(msg, interval_seconds),
        on_candle, on_error, connect, logger,
    )
    return await sub.open()
