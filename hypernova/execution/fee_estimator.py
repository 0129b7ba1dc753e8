"""
Debounced, periodically refreshed fee quote for the trade form.

Every change to the form bumps a generation counter.  An estimate captures
the generation at the moment it is issued and may only publish its result
if the counter has not moved since; anything older is dropped.  The quote
shown to the user therefore always belongs to the most recently issued
request, whatever order the nodes answer in.

Timeline for a user typing a price::

    update(price="3")     -> debounce timer armed
    update(price="30")    -> timer re-armed, nothing issued
    … 0.5 s quiet …       -> one estimate issued for price=30
    … every 5 s …         -> refresh estimate for the same inputs
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional

from hypernova.core.errors import InvalidAmount, UnsupportedChain
from hypernova.core.models import ChainTag, FeeQuote, Side, TradeRequest
from hypernova.execution.trade_service import build_request

EstimateFn = Callable[[TradeRequest], Awaitable[Optional[FeeQuote]]]
QuoteCallback = Callable[[Optional[FeeQuote]], None]

DEFAULT_DEBOUNCE_SECONDS = 0.5
DEFAULT_REFRESH_SECONDS = 5.0


@dataclass(frozen=True)
class FormState:
    """Raw trade-form inputs as the UI holds them (strings are fine)."""
    chain: Optional[ChainTag] = None
    address: Any = None
    side: Side = Side.BUY
    amount: Any = None
    price: Any = None

    def to_request(self) -> Optional[TradeRequest]:
        if self.chain is None:
            return None
        try:
            return build_request(self.chain, self.address, self.side, self.amount, self.price)
        except (InvalidAmount, UnsupportedChain, ValueError):
            return None


class FeeEstimator:
    """
    Parameters
    ----------
    estimate : async callable
        ``TradeRequest -> FeeQuote | None``; usually
        ``TradeService.estimate_fee``.
    debounce_seconds : float
        Quiet period after the last input change before quoting.
    refresh_seconds : float
        Interval for re-quoting unchanged, valid inputs.
    on_quote : callable, optional
        Called with every quote the estimator publishes (``None`` included).
        Runs on the event loop; must be non-blocking.
    logger : logging.Logger, optional
        Falls back to a module-level logger.
    """

    def __init__(
        self,
        estimate: EstimateFn,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        refresh_seconds: float = DEFAULT_REFRESH_SECONDS,
        on_quote: Optional[QuoteCallback] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._estimate = estimate
        self.debounce_seconds = debounce_seconds
        self.refresh_seconds = refresh_seconds
        self.on_quote = on_quote
        self.logger = logger or logging.getLogger(__name__)

        self.state = FormState()
        self.quote: Optional[FeeQuote] = None
        self.generation = 0

        self._debounce_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._inflight: set[asyncio.Task] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def can_submit(self) -> bool:
        """An unknown fee is never treated as zero: no quote, no submit."""
        return self.quote is not None and self.state.to_request() is not None

    def start(self) -> None:
        """Begin the periodic refresh.  Must be called on the event loop."""
        if self._closed:
            raise RuntimeError("FeeEstimator is closed")
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_loop())

    def update(self, **fields: Any) -> None:
        """Apply form changes (``chain``, ``address``, ``side``, ``amount``, ``price``)."""
        if "chain" in fields and fields["chain"] is not None:
            fields["chain"] = ChainTag.parse(fields["chain"])
        if "side" in fields:
            fields["side"] = Side.parse(fields["side"])

        new_state = replace(self.state, **fields)
        if new_state == self.state:
            return

        chain_changed = new_state.chain != self.state.chain
        self.state = new_state
        self.generation += 1

        if chain_changed:
            # Never show the previous chain's fee under the new chain's currency.
            self._publish(None)

        if new_state.to_request() is None:
            self._cancel_debounce()
            self._publish(None)
            return

        self._schedule_debounce()

    async def refresh_now(self) -> Optional[FeeQuote]:
        """Skip the debounce and quote the current inputs immediately."""
        self._cancel_debounce()
        await self._issue()
        return self.quote

    async def close(self) -> None:
        self._closed = True
        tasks = [t for t in (self._debounce_task, self._refresh_task) if t is not None]
        tasks.extend(self._inflight)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _publish(self, quote: Optional[FeeQuote]) -> None:
        changed = quote != self.quote
        self.quote = quote
        if changed and self.on_quote is not None:
            self.on_quote(quote)

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None

    def _schedule_debounce(self) -> None:
        if self._closed:
            return
        self._cancel_debounce()
        self._debounce_task = asyncio.get_running_loop().create_task(self._debounced())

    async def _debounced(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self._debounce_task = None
        self._spawn_issue()

    def _spawn_issue(self) -> None:
        task = asyncio.get_running_loop().create_task(self._issue())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _issue(self) -> None:
        request = self.state.to_request()
        if request is None:
            self._publish(None)
            return

        self.generation += 1
        issued = self.generation
        try:
            quote = await self._estimate(request)
        except Exception as exc:
            self.logger.warning(f"[{request.chain.value}] fee estimate failed: {exc}")
            quote = None

        if issued != self.generation:
            self.logger.debug(
                f"Discarding stale fee result (generation {issued}, current {self.generation})"
            )
            return
        self._publish(quote)

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_seconds)
            if self._debounce_task is not None:
                continue
            if self.state.to_request() is None:
                continue
            self._spawn_issue()
