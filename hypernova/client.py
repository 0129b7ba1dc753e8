"""
The surface the UI layer calls.

    estimate_fee(chain, side, amount, price)                 -> FeeQuote | None
    place_trade(market_kind, chain, address, side, amount, price) -> transaction id
    subscribe_market(symbol)                                 -> MarketSnapshot (kept current)
    unsubscribe()

``build_client`` wires everything from the configuration dict and the
wallets the wallet-connection provider hands over::

    config = load_config()
    client = build_client(config, wallets={ChainTag.EVM: metamask})
    fee = await client.estimate_fee("EVM", "buy", "1.5", "30000")
    tx = await client.place_trade("spot", "EVM", "0xabc", "buy", "1.5", "30000")
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from hypernova.chains.base import ChainAdapter
from hypernova.chains.cosmos import CosmosAdapter
from hypernova.chains.evm import EvmAdapter
from hypernova.chains.rpc import JsonRpcClient, RestClient
from hypernova.chains.solana import SolanaAdapter
from hypernova.core.models import ChainTag, FeeQuote, MarketKind
from hypernova.data.market_client import MarketDataClient
from hypernova.data.market_feed import Listener, MarketFeed, MarketSnapshot
from hypernova.execution.fee_estimator import FeeEstimator
from hypernova.execution.router import TradeRouter
from hypernova.execution.trade_service import (
    PerpTradeService,
    SpotTradeService,
    TradeService,
    build_request,
)


class TradingClient:
    def __init__(
        self,
        router: TradeRouter,
        feed: MarketFeed,
        debounce_seconds: float = 0.5,
        refresh_seconds: float = 5.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.router = router
        self.feed = feed
        self.services: dict[MarketKind, TradeService] = {
            MarketKind.SPOT: SpotTradeService(router, self.logger),
            MarketKind.PERP: PerpTradeService(router, self.logger),
        }
        self.debounce_seconds = debounce_seconds
        self.refresh_seconds = refresh_seconds

    def service(self, market_kind: MarketKind | str) -> TradeService:
        kind = market_kind if isinstance(market_kind, MarketKind) else MarketKind(str(market_kind).lower())
        return self.services[kind]

    async def estimate_fee(
        self,
        chain: Any,
        side: Any,
        amount: Any,
        price: Any,
        address: Any = None,
        market_kind: MarketKind | str = MarketKind.SPOT,
    ) -> Optional[FeeQuote]:
        """One-shot quote; ``None`` means unknown (invalid inputs or no estimate)."""
        if chain is None:
            return None
        try:
            request = build_request(chain, address, side, amount, price)
        except ValueError:
            return None
        return await self.service(market_kind).estimate_fee(request)

    async def place_trade(
        self,
        market_kind: MarketKind | str,
        chain: Any,
        address: Any,
        side: Any,
        amount: Any,
        price: Any,
    ) -> str:
        request = build_request(chain, address, side, amount, price)
        result = await self.service(market_kind).place_trade(request)
        return result.transaction_id

    def fee_estimator(self, market_kind: MarketKind | str = MarketKind.SPOT, on_quote=None) -> FeeEstimator:
        """A debounced estimator bound to one trade form."""
        return FeeEstimator(
            self.service(market_kind).estimate_fee,
            debounce_seconds=self.debounce_seconds,
            refresh_seconds=self.refresh_seconds,
            on_quote=on_quote,
            logger=self.logger,
        )

    async def subscribe_market(self, symbol: str, listener: Optional[Listener] = None) -> MarketSnapshot:
        if listener is not None:
            self.feed.add_listener(listener)
        return await self.feed.subscribe(symbol)

    def market_snapshot(self) -> MarketSnapshot:
        return self.feed.snapshot()

    async def unsubscribe(self) -> None:
        await self.feed.unsubscribe()


def build_adapters(
    config: dict,
    wallets: Optional[dict[ChainTag, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> dict[ChainTag, ChainAdapter]:
    wallets = wallets or {}
    chains = config["chains"]

    cosmos = chains["cosmos"]
    evm = chains["evm"]
    solana = chains["solana"]

    return {
        ChainTag.COSMOS: CosmosAdapter(
            cosmos,
            lcd=RestClient(cosmos["lcd_url"], timeout=cosmos.get("request_timeout", 10)),
            wallet=wallets.get(ChainTag.COSMOS),
            logger=logger,
        ),
        ChainTag.EVM: EvmAdapter(
            evm,
            rpc=JsonRpcClient(evm["rpc_url"], timeout=evm.get("request_timeout", 10)),
            wallet=wallets.get(ChainTag.EVM),
            logger=logger,
        ),
        ChainTag.SOLANA: SolanaAdapter(
            solana,
            rpc=JsonRpcClient(solana["rpc_url"], timeout=solana.get("request_timeout", 10)),
            wallet=wallets.get(ChainTag.SOLANA),
            logger=logger,
        ),
    }


def build_client(
    config: dict,
    wallets: Optional[dict[ChainTag, Any]] = None,
    logger: Optional[logging.Logger] = None,
    connect=None,
) -> TradingClient:
    market_cfg = config["market_data"]
    fee_cfg = config["fees"]

    router = TradeRouter(
        build_adapters(config, wallets, logger),
        fee_retries=fee_cfg.get("fee_retries", 0),
        logger=logger,
    )
    market_client = MarketDataClient(
        market_cfg["api_url"],
        interval_seconds=market_cfg["candle_interval_seconds"],
        max_trades=market_cfg["max_trades"],
        timeout=market_cfg.get("request_timeout", 10),
        logger=logger,
    )
    feed = MarketFeed(
        market_client,
        market_cfg["ws_url"],
        max_trades=market_cfg["max_trades"],
        max_candles=market_cfg["max_candles"],
        interval_seconds=market_cfg["candle_interval_seconds"],
        connect=connect,
        logger=logger,
    )
    return TradingClient(
        router,
        feed,
        debounce_seconds=fee_cfg["debounce_seconds"],
        refresh_seconds=fee_cfg["refresh_seconds"],
        logger=logger,
    )
