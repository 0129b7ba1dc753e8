"""
Market watch pipeline: headless entry point.

Runs the market-data half of the client without a UI:

    [1] INIT      — Load config, setup logger
    [2] HYDRATE   — Bulk-load recent trades, OHLC history and the order book
    [3] WATCH     — Go live on the trade/candle streams, log updates until Ctrl+C

Usage::

    python -m hypernova.pipelines.market_watch BTC/USD
    python -m hypernova.pipelines.market_watch ETH/USD --config config/hypernova.json
"""

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from hypernova.client import TradingClient, build_client
from hypernova.core.errors import HyperNovaError
from hypernova.data.market_feed import FeedState, MarketSnapshot
from hypernova.utils.config import ROOT, load_config
from hypernova.utils.logger import level_from_name, setup_logger


# ═══════════════════════════════════════════════════════════════════════════
# STAGE 1 — INIT
# ═══════════════════════════════════════════════════════════════════════════

def init(config_path: Optional[str] = None) -> tuple[dict, logging.Logger]:
    config = load_config(config_path)

    log_path = ROOT / config["data_paths"]["log_path"] / "market_watch.log"
    logger = setup_logger("hypernova", log_path, level=level_from_name(config.get("log_level", "INFO")))

    logger.info("=" * 60)
    logger.info("Market watch starting")
    logger.info("=" * 60)
    logger.info(f"Config loaded from: {config_path or 'config/hypernova.json'}")
    logger.info(
        f"API: {config['market_data']['api_url']} | "
        f"WS: {config['market_data']['ws_url']} | "
        f"Bucket: {config['market_data']['candle_interval_seconds']}s"
    )
    return config, logger


# ═══════════════════════════════════════════════════════════════════════════
# STAGE 2 — HYDRATE
# ═══════════════════════════════════════════════════════════════════════════

async def hydrate(client: TradingClient, symbol: str, logger: logging.Logger) -> None:
    """Log the order book top; the feed performs its own trade/candle load."""
    logger.info("Stage 2 — HYDRATE")
    try:
        book = await client.feed.client.get_orderbook(symbol)
    except HyperNovaError as exc:
        logger.warning(f"[{symbol}] order book unavailable: {exc}")
        return
    logger.info(
        f"[{symbol}] best bid={book.best_bid} best ask={book.best_ask} spread={book.spread}"
    )


# ═══════════════════════════════════════════════════════════════════════════
# STAGE 3 — WATCH
# ═══════════════════════════════════════════════════════════════════════════

def build_snapshot_logger(logger: logging.Logger) -> Callable[[MarketSnapshot], None]:
    """Return a feed listener that logs each new trade and each closed candle."""
    last = {"trade": None, "candle_time": None, "degraded": False}

    def on_snapshot(snap: MarketSnapshot) -> None:
        if snap.state is not FeedState.LIVE:
            return
        if snap.trades and snap.trades[0] != last["trade"]:
            t = snap.trades[0]
            logger.info(f"[{snap.symbol}] TRADE {t.side.value.upper()} {t.amount:.4f} @ {t.price:.2f}")
            last["trade"] = t
        if len(snap.candles) >= 2 and snap.candles[-1].time != last["candle_time"]:
            closed = snap.candles[-2]
            logger.info(
                f"[{snap.symbol}] CANDLE closed time={closed.time} "
                f"O={closed.open} H={closed.high} L={closed.low} C={closed.close}"
            )
            last["candle_time"] = snap.candles[-1].time
        if snap.degraded and not last["degraded"]:
            logger.warning(f"[{snap.symbol}] feed degraded: {snap.error}")
        last["degraded"] = snap.degraded

    return on_snapshot


async def heartbeat(client: TradingClient, logger: logging.Logger, interval_sec: int = 60):
    while True:
        await asyncio.sleep(interval_sec)
        snap = client.market_snapshot()
        logger.info(
            f"Heartbeat: {snap.symbol} state={snap.state.value} trades={len(snap.trades)} "
            f"candles={len(snap.candles)} degraded={snap.degraded}"
        )


async def watch(client: TradingClient, symbol: str, logger: logging.Logger) -> None:
    logger.info("Stage 3 — WATCH")
    await client.subscribe_market(symbol, listener=build_snapshot_logger(logger))
    try:
        await heartbeat(client, logger)
    finally:
        await client.unsubscribe()


async def run(symbol: str, config_path: Optional[str] = None) -> None:
    config, logger = init(config_path)
    client = build_client(config, logger=logger)
    await hydrate(client, symbol, logger)
    await watch(client, symbol, logger)


# ═══════════════════════════════════════════════════════════════════════════
# MAIN ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════

def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Watch live trades and candles for a market.")
    parser.add_argument("symbol", help='market symbol, e.g. "BTC/USD"')
    parser.add_argument("--config", type=Path, default=None, help="path to a JSON config file")
    args = parser.parse_args(argv)

    try:
        asyncio.run(run(args.symbol, args.config))
    except KeyboardInterrupt:
        logging.getLogger("hypernova").info("Market watch stopped by user.")


if __name__ == "__main__":
    main()
