"""
Typed failures raised by the trading core.

Validation errors (``InvalidAmount``, ``UnsupportedChain``) are raised before
any wallet or network interaction.  Submission errors reach the caller
unchanged so the user can decide whether to resubmit.  Fee and subscription
errors are non-fatal: they are recovered into an "unknown fee" or a degraded
feed by the components that raise them.
"""

from __future__ import annotations

from typing import Any, Optional


class HyperNovaError(Exception):
    """Base class for every error the core raises on purpose."""


class InvalidAmount(HyperNovaError, ValueError):
    pass


class UnsupportedChain(HyperNovaError):
    def __init__(self, chain: Any) -> None:
        super().__init__(f"Unsupported chain: {chain}")
        self.chain = chain


class WalletUnavailable(HyperNovaError):
    pass


class SubmissionRejected(HyperNovaError):
    def __init__(self, message: str, *, code: Optional[Any] = None, tx_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code
        self.tx_id = tx_id


class ChainUnreachable(HyperNovaError):
    pass


class FeeEstimationUnavailable(HyperNovaError):
    pass


class SubscriptionFailed(HyperNovaError):
    def __init__(self, symbol: str, feed: str, reason: str) -> None:
        super().__init__(f"{feed} subscription for {symbol} failed: {reason}")
        self.symbol = symbol
        self.feed = feed
        self.reason = reason


class SignatureDeclined(HyperNovaError):
    """Raised by wallet collaborators when the user closes or rejects the
    signature prompt."""


class RpcError(HyperNovaError):
    """The node answered, but with an error object."""

    def __init__(self, message: str, *, code: Optional[Any] = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data
