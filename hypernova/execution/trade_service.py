"""
Spot and perp trade services.

Both market kinds share one request shape and one execution path; the kind
is carried as metadata for logging and for the UI.  Leverage and margin are
not modelled.

Usage::

    service = SpotTradeService(router, logger)
    request = build_request("EVM", "0xabc", "buy", "1.5", "30000")
    fee = await service.estimate_fee(request)      # FeeQuote or None
    result = await service.place_trade(request)    # TradeResult
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional

from hypernova.core.errors import FeeEstimationUnavailable, InvalidAmount, UnsupportedChain
from hypernova.core.models import ChainTag, FeeQuote, MarketKind, Side, TradeRequest, TradeResult
from hypernova.execution.router import TradeRouter


def parse_positive(value: Any, name: str) -> float:
    """Parse a form value (``"1.5"``, ``1.5``) into a finite positive float."""
    if isinstance(value, bool):
        raise InvalidAmount(f"{name} must be a number, got {value!r}")
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        raise InvalidAmount(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(number) or number <= 0:
        raise InvalidAmount(f"{name} must be greater than 0, got {value!r}")
    return number


def parse_chain(value: Any) -> ChainTag:
    try:
        return ChainTag.parse(value)
    except ValueError:
        raise UnsupportedChain(value) from None


def build_request(chain: Any, address: Any, side: Any, amount: Any, price: Any) -> TradeRequest:
    """Validate raw form input and freeze it into a ``TradeRequest``."""
    return TradeRequest(
        chain=parse_chain(chain),
        address=address,
        side=Side.parse(side),
        amount=parse_positive(amount, "amount"),
        price=parse_positive(price, "price"),
    )


def validate_request(request: TradeRequest) -> None:
    if not isinstance(request.chain, ChainTag):
        raise UnsupportedChain(request.chain)
    parse_positive(request.amount, "amount")
    parse_positive(request.price, "price")


class TradeService:
    """
    Validates trade parameters and hands them to the router.

    Parameters
    ----------
    router : TradeRouter
        Dispatches to the adapter for the request's chain.
    logger : logging.Logger, optional
        Falls back to a module-level logger.
    """

    market_kind: MarketKind = MarketKind.SPOT

    def __init__(self, router: TradeRouter, logger: Optional[logging.Logger] = None) -> None:
        self.router = router
        self.logger = logger or logging.getLogger(__name__)

    async def place_trade(self, request: TradeRequest) -> TradeResult:
        """
        Submit *request* once.  Identical-looking requests are not
        deduplicated; every call is an independent submission.

        Raises
        ------
        InvalidAmount
            Amount or price is not a positive number (no adapter is called).
        UnsupportedChain, WalletUnavailable, SubmissionRejected, ChainUnreachable
            Propagated from routing and the chain adapter.
        """
        validate_request(request)
        tag = f"[{self.market_kind.value}/{request.chain.value}]"
        self.logger.info(
            f"{tag} placing {request.side.value} amount={request.amount} price={request.price}"
        )
        try:
            result = await self.router.submit_trade(request)
        except Exception as exc:
            self.logger.error(f"{tag} trade failed: {type(exc).__name__}: {exc}")
            raise
        self.logger.info(f"{tag} trade placed, tx={result.transaction_id}")
        return result

    async def estimate_fee(self, request: TradeRequest) -> Optional[FeeQuote]:
        """Return a fee quote, or ``None`` when the fee is unknown."""
        try:
            validate_request(request)
        except InvalidAmount:
            return None
        try:
            return await self.router.estimate_fee(request)
        except FeeEstimationUnavailable as exc:
            self.logger.warning(
                f"[{self.market_kind.value}/{request.chain.value}] fee unavailable: {exc}"
            )
            return None


class SpotTradeService(TradeService):
    market_kind = MarketKind.SPOT


class PerpTradeService(TradeService):
    market_kind = MarketKind.PERP
