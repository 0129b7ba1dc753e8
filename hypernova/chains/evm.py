"""
EVM adapter: EVM market contract called through its ABI.

    function executeTrade(string side, uint256 amount, uint256 price) returns (bool)

Amount and price are 18-decimal fixed point.  Gas is simulated with
``eth_estimateGas`` against the node; the browser wallet (MetaMask,
WalletConnect, ...) signs and broadcasts, after which the receipt is polled
until the transaction is mined.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector

from hypernova.chains.base import ChainAdapter
from hypernova.chains.rpc import JsonRpcClient
from hypernova.core.errors import SubmissionRejected
from hypernova.core.models import ChainTag, FeeQuote, TradeRequest

EXECUTE_TRADE_SIGNATURE = "executeTrade(string,uint256,uint256)"
_WEI_DECIMALS = 18


class EvmWallet(ABC):
    """Signing side of an injected EVM provider."""

    @abstractmethod
    async def send_transaction(self, tx: dict) -> str:
        """Prompt the user, sign and broadcast *tx*; returns the tx hash."""


def _to_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


class EvmAdapter(ChainAdapter):
    chain = ChainTag.EVM

    def __init__(
        self,
        config: dict,
        rpc: JsonRpcClient,
        wallet: Optional[EvmWallet] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(config, wallet=wallet, logger=logger)
        self.rpc = rpc
        self.contract: str = config.get("market_contract", "")
        self.fallback_gas: int = int(config.get("fallback_gas", 250_000))
        self.fallback_gas_price_gwei: float = float(config.get("fallback_gas_price_gwei", 30))
        self.receipt_poll_interval: float = float(config.get("receipt_poll_interval", 2.0))
        if not self.fee_currency:
            self.fee_currency = "ETH"

    def build_call_data(self, request: TradeRequest) -> str:
        selector = function_signature_to_4byte_selector(EXECUTE_TRADE_SIGNATURE)
        args = encode(
            ["string", "uint256", "uint256"],
            [
                request.side.value,
                self.to_base_units(request.amount),
                self.to_base_units(request.price),
            ],
        )
        return "0x" + (selector + args).hex()

    def build_transaction(self, request: TradeRequest) -> dict:
        tx = {
            "to": self.contract,
            "data": self.build_call_data(request),
            "value": "0x0",
        }
        if request.address:
            tx["from"] = str(request.address)
        return tx

    async def _simulate_fee(self, request: TradeRequest) -> FeeQuote:
        tx = self.build_transaction(request)
        gas = _to_int(await self.rpc.call("eth_estimateGas", [tx]))
        gas_price = _to_int(await self.rpc.call("eth_gasPrice"))
        fee = self.from_base_units(gas * gas_price, _WEI_DECIMALS)
        self.logger.debug(f"[EVM] gas={gas} gas_price={gas_price} fee={fee} {self.fee_currency}")
        return FeeQuote(amount=fee, currency=self.fee_currency)

    def fallback_fee(self, request: TradeRequest) -> FeeQuote:
        wei = int(self.fallback_gas * self.fallback_gas_price_gwei * 10**9)
        return FeeQuote(
            amount=self.from_base_units(wei, _WEI_DECIMALS),
            currency=self.fee_currency,
            estimated=False,
        )

    async def _submit(self, request: TradeRequest) -> str:
        tx = self.build_transaction(request)
        tx_hash = await self.wallet.send_transaction(tx)
        self.logger.info(f"[EVM] broadcast {tx_hash}; waiting for receipt")

        receipt = await self._wait_for_receipt(tx_hash)
        status = _to_int(receipt.get("status", 1))
        if status != 1:
            raise SubmissionRejected(
                f"EVM transaction {tx_hash} reverted", code=status, tx_id=tx_hash
            )
        return receipt.get("transactionHash") or tx_hash

    async def _wait_for_receipt(self, tx_hash: str) -> dict:
        while True:
            receipt = await self.rpc.call("eth_getTransactionReceipt", [tx_hash])
            if receipt:
                return receipt
            await asyncio.sleep(self.receipt_poll_interval)
