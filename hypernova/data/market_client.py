"""
Request/response market-data queries.

    GET {api_url}/trades?market=BTC/USD
    GET {api_url}/candles?market=BTC/USD
    GET {api_url}/orderbook?market=BTC/USD
    GET {api_url}/prelaunch/markets
    GET {api_url}/prelaunch/token/{symbol}

Used by ``MarketFeed`` for the initial bulk load before the live streams
take over.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from hypernova.chains.rpc import RestClient
from hypernova.core.errors import HyperNovaError
from hypernova.core.models import Candle, OrderBook, Trade
from hypernova.data.frames import normalize_candles, normalize_trades


def _unwrap(payload: Any, key: str) -> Any:
    """Accept both ``[...]`` and ``{"<key>": [...]}`` response shapes."""
    if isinstance(payload, dict) and key in payload:
        return payload[key]
    return payload


class MarketDataClient:
    """
    Parameters
    ----------
    api_url : str
        Market API base URL.
    interval_seconds : int
        Candle bucket width; OHLC rows are aligned to it.
    max_trades : int, optional
        Cap on trades returned by ``get_recent_trades``.
    timeout : float
        Per-request timeout in seconds.
    rest : RestClient, optional
        Injected transport (useful for testing).
    logger : logging.Logger, optional
        Falls back to a module-level logger.
    """

    def __init__(
        self,
        api_url: str,
        interval_seconds: int = 60,
        max_trades: Optional[int] = None,
        timeout: float = 10,
        rest: Optional[RestClient] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.rest = rest or RestClient(api_url, timeout=timeout)
        self.interval_seconds = interval_seconds
        self.max_trades = max_trades
        self.logger = logger or logging.getLogger(__name__)

    async def get_recent_trades(self, symbol: str) -> list[Trade]:
        payload = await self.rest.get("/trades", {"market": symbol})
        trades = normalize_trades(_unwrap(payload, "trades") or [], limit=self.max_trades)
        self.logger.debug(f"[{symbol}] loaded {len(trades)} recent trades")
        return trades

    async def get_ohlc(self, symbol: str) -> list[Candle]:
        payload = await self.rest.get("/candles", {"market": symbol})
        candles = normalize_candles(_unwrap(payload, "candles") or [], self.interval_seconds)
        self.logger.debug(f"[{symbol}] loaded {len(candles)} candles")
        return candles

    async def get_orderbook(self, symbol: str) -> OrderBook:
        payload = await self.rest.get("/orderbook", {"market": symbol})
        return OrderBook.from_dict(payload or {})

    async def get_prelaunch_markets(self) -> list:
        """Upcoming markets; an unreachable API yields an empty list."""
        try:
            payload = await self.rest.get("/prelaunch/markets")
        except HyperNovaError as exc:
            self.logger.error(f"Failed to fetch prelaunch markets: {exc}")
            return []
        return _unwrap(payload, "markets") or []

    async def get_prelaunch_token(self, symbol: str) -> Optional[dict]:
        try:
            return await self.rest.get(f"/prelaunch/token/{symbol}")
        except HyperNovaError as exc:
            self.logger.error(f"Failed to fetch prelaunch token info for {symbol}: {exc}")
            return None
