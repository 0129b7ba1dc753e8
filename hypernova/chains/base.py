from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Optional

from hypernova.core.errors import (
    ChainUnreachable,
    HyperNovaError,
    RpcError,
    SignatureDeclined,
    SubmissionRejected,
    WalletUnavailable,
)
from hypernova.core.models import ChainTag, FeeQuote, TradeRequest, TradeResult


class ChainAdapter(ABC):
    """
    Fee estimation and trade submission for one chain.

    Subclasses implement ``_simulate_fee``, ``fallback_fee`` and ``_submit``;
    this class turns their failures into the typed errors the router and
    the UI expect.

    Parameters
    ----------
    config : dict
        The chain's section of the configuration (``config["chains"][...]``).
    wallet : object, optional
        Chain-specific signing collaborator.  ``None`` means no wallet is
        connected; fee estimation still works, submission does not.
    logger : logging.Logger, optional
        Falls back to a module-level logger.
    """

    chain: ChainTag

    def __init__(
        self,
        config: dict,
        wallet: Optional[Any] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.wallet = wallet
        self.logger = logger or logging.getLogger(__name__)
        self.fee_currency: str = config.get("fee_currency", "")
        self.amount_decimals: int = int(config.get("amount_decimals", 18))

    # Fee estimation
    async def estimate_fee(self, request: TradeRequest, retries: int = 0) -> FeeQuote:
        """Simulate the trade's cost; on failure return the static fallback.

        An unreachable node is retried up to *retries* times on this adapter
        before falling back. Any other failure falls back immediately.
        """
        attempt = 0
        while True:
            try:
                return await self._simulate_fee(request)
            except ChainUnreachable as exc:
                if attempt < retries:
                    attempt += 1
                    self.logger.warning(
                        f"[{self.chain.value}] fee node unreachable ({exc}); retry {attempt}/{retries}"
                    )
                    continue
                error = exc
            except Exception as exc:
                error = exc
            self.logger.warning(
                f"[{self.chain.value}] fee simulation failed ({error}); using fallback estimate."
            )
            return self.fallback_fee(request)

    @abstractmethod
    async def _simulate_fee(self, request: TradeRequest) -> FeeQuote:
        pass

    @abstractmethod
    def fallback_fee(self, request: TradeRequest) -> FeeQuote:
        pass

    # Trading
    async def submit_trade(self, request: TradeRequest) -> TradeResult:
        """Sign and submit *request*; returns once the chain has accepted it."""
        if self.wallet is None:
            raise WalletUnavailable(f"No {self.chain.value} wallet connected")

        self.logger.info(
            f"[{self.chain.value}] submitting {request.side.value} "
            f"amount={request.amount} price={request.price} from {request.address}"
        )
        try:
            tx_id = await self._submit(request)
        except SignatureDeclined as exc:
            raise SubmissionRejected(f"Signature request declined: {exc}") from exc
        except RpcError as exc:
            raise SubmissionRejected(str(exc), code=exc.code) from exc
        except HyperNovaError:
            raise
        except Exception as exc:
            raise SubmissionRejected(
                f"{self.chain.value} wallet failed: {type(exc).__name__}: {exc}"
            ) from exc

        self.logger.info(f"[{self.chain.value}] trade accepted, tx={tx_id}")
        return TradeResult(transaction_id=tx_id, chain=self.chain)

    @abstractmethod
    async def _submit(self, request: TradeRequest) -> str:
        pass

    # Helpers
    def to_base_units(self, value: float, decimals: Optional[int] = None) -> int:
        """Fixed-point encode *value* (``1.5`` with 6 decimals -> ``1500000``)."""
        places = self.amount_decimals if decimals is None else decimals
        return int(Decimal(str(value)).scaleb(places).to_integral_value())

    @staticmethod
    def from_base_units(value: int, decimals: int) -> float:
        return float(Decimal(value).scaleb(-decimals))
