"""
Solana adapter: Solana trading program invoked through one instruction.

Instruction data layout (little-endian, base64 on the wire)::

    u8   side     0 = buy, 1 = sell
    u64  amount   9-decimal fixed point
    u64  price    9-decimal fixed point

Solana has no gas simulation for an unsigned message, so the fee is the
per-signature base fee plus the median recent priority fee paid on the
program account, scaled by the compute-unit limit the wallet will request.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import math
import statistics
import struct
from abc import ABC, abstractmethod
from typing import Optional

from hypernova.chains.base import ChainAdapter
from hypernova.chains.rpc import JsonRpcClient
from hypernova.core.errors import InvalidAmount, SubmissionRejected
from hypernova.core.models import ChainTag, FeeQuote, Side, TradeRequest

_LAMPORT_DECIMALS = 9
_U64_MAX = 2**64 - 1
_CONFIRMED = ("confirmed", "finalized")


class SolanaWallet(ABC):
    """Phantom/Solflare style wallet adapter."""

    @abstractmethod
    async def sign_and_send_transaction(self, instructions: list[dict]) -> str:
        """Build, sign and send a transaction; returns its signature."""


class SolanaAdapter(ChainAdapter):
    chain = ChainTag.SOLANA

    def __init__(
        self,
        config: dict,
        rpc: JsonRpcClient,
        wallet: Optional[SolanaWallet] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(config, wallet=wallet, logger=logger)
        self.rpc = rpc
        self.program_id: str = config.get("program_id", "")
        self.market_account: str = config.get("market_account", "")
        self.base_fee_lamports: int = int(config.get("base_fee_lamports", 5000))
        self.compute_unit_limit: int = int(config.get("compute_unit_limit", 200_000))
        self.fallback_priority: int = int(config.get("fallback_priority_micro_lamports", 10_000))
        self.confirm_poll_interval: float = float(config.get("confirm_poll_interval", 1.0))
        if not self.fee_currency:
            self.fee_currency = "SOL"

    def _u64(self, value: float) -> int:
        units = self.to_base_units(value)
        if not 0 < units <= _U64_MAX:
            raise InvalidAmount(f"{value} does not fit the program's u64 encoding")
        return units

    def build_instruction(self, request: TradeRequest) -> dict:
        side = 0 if request.side is Side.BUY else 1
        data = struct.pack("<BQQ", side, self._u64(request.amount), self._u64(request.price))
        return {
            "program_id": self.program_id,
            "accounts": [
                {"pubkey": str(request.address), "is_signer": True, "is_writable": True},
                {"pubkey": self.market_account, "is_signer": False, "is_writable": True},
            ],
            "data": base64.b64encode(data).decode(),
        }

    def _quote_for_priority(self, micro_lamports_per_cu: float, *, estimated: bool) -> FeeQuote:
        priority = math.ceil(micro_lamports_per_cu * self.compute_unit_limit / 1_000_000)
        lamports = self.base_fee_lamports + priority
        return FeeQuote(
            amount=self.from_base_units(lamports, _LAMPORT_DECIMALS),
            currency=self.fee_currency,
            estimated=estimated,
        )

    async def _simulate_fee(self, request: TradeRequest) -> FeeQuote:
        self.build_instruction(request)
        samples = await self.rpc.call("getRecentPrioritizationFees", [[self.program_id]])
        fees = [int(s["prioritizationFee"]) for s in samples or []]
        median = statistics.median(fees) if fees else 0
        self.logger.debug(f"[Solana] {len(fees)} priority samples, median={median}")
        return self._quote_for_priority(median, estimated=True)

    def fallback_fee(self, request: TradeRequest) -> FeeQuote:
        return self._quote_for_priority(self.fallback_priority, estimated=False)

    async def _submit(self, request: TradeRequest) -> str:
        instruction = self.build_instruction(request)
        signature = await self.wallet.sign_and_send_transaction([instruction])
        self.logger.info(f"[Solana] sent {signature}; waiting for confirmation")
        await self._confirm(signature)
        return signature

    async def _confirm(self, signature: str) -> None:
        while True:
            result = await self.rpc.call(
                "getSignatureStatuses",
                [[signature], {"searchTransactionHistory": True}],
            )
            status = (result or {}).get("value", [None])[0]
            if status:
                if status.get("err") is not None:
                    raise SubmissionRejected(
                        f"Solana transaction {signature} failed: {status['err']}",
                        code=status["err"],
                        tx_id=signature,
                    )
                if status.get("confirmationStatus") in _CONFIRMED:
                    return
            await asyncio.sleep(self.confirm_poll_interval)
