"""
Chain-agnostic dispatch of fee and submit requests.

Every request goes to exactly one adapter, the one registered for its chain
tag.  A failure on one chain is never retried on another.  Fee routes pass
``fee_retries`` to the adapter, which retries its own node when unreachable;
submit routes are never retried because a submission may already have been signed.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from hypernova.chains.base import ChainAdapter
from hypernova.core.errors import FeeEstimationUnavailable, UnsupportedChain
from hypernova.core.models import ChainTag, FeeQuote, TradeRequest, TradeResult


class RouteKind(Enum):
    FEE = "fee"
    SUBMIT = "submit"


class TradeRouter:
    def __init__(
        self,
        adapters: Optional[dict[ChainTag, ChainAdapter]] = None,
        fee_retries: int = 0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.fee_retries = max(0, int(fee_retries))
        self._adapters: dict[ChainTag, ChainAdapter] = {}
        for chain, adapter in (adapters or {}).items():
            self.register(chain, adapter)

    def register(self, chain: ChainTag, adapter: ChainAdapter) -> None:
        self._adapters[chain] = adapter
        self.logger.debug(f"Registered {type(adapter).__name__} for {chain.value}")

    @property
    def chains(self) -> list[ChainTag]:
        return list(self._adapters)

    def adapter_for(self, chain: ChainTag) -> ChainAdapter:
        adapter = self._adapters.get(chain)
        if adapter is None:
            raise UnsupportedChain(getattr(chain, "value", chain))
        return adapter

    async def route(self, kind: RouteKind, request: TradeRequest) -> FeeQuote | TradeResult:
        adapter = self.adapter_for(request.chain)
        if kind is RouteKind.FEE:
            return await self._route_fee(adapter, request)
        if kind is RouteKind.SUBMIT:
            return await adapter.submit_trade(request)
        raise ValueError(f"Unknown route kind: {kind!r}")

    async def estimate_fee(self, request: TradeRequest) -> FeeQuote:
        return await self.route(RouteKind.FEE, request)

    async def submit_trade(self, request: TradeRequest) -> TradeResult:
        return await self.route(RouteKind.SUBMIT, request)

    async def _route_fee(self, adapter: ChainAdapter, request: TradeRequest) -> FeeQuote:
        try:
            return await adapter.estimate_fee(request, retries=self.fee_retries)
        except FeeEstimationUnavailable:
            raise
        except Exception as exc:
            raise FeeEstimationUnavailable(
                f"{request.chain.value} fee estimation failed: {exc}"
            ) from exc
