"""
Cosmos adapter: CosmWasm market contract on a Cosmos-SDK chain.

The trade is a ``MsgExecuteContract`` carrying::

    {"execute_trade": {"side": "buy", "amount": "1500000", "price": "30000000000"}}

Gas is simulated through the LCD ``/cosmos/tx/v1beta1/simulate`` endpoint.
The wallet (Keplr, Leap, ...) signs and broadcasts; a non-zero ``code`` in
the broadcast result means the chain rejected the transaction.
"""

from __future__ import annotations

import base64
import json
import logging
import math
from abc import ABC, abstractmethod
from typing import Optional

from hypernova.chains.base import ChainAdapter
from hypernova.chains.rpc import RestClient
from hypernova.core.errors import SubmissionRejected
from hypernova.core.models import ChainTag, FeeQuote, TradeRequest

MSG_EXECUTE_CONTRACT = "/cosmwasm.wasm.v1.MsgExecuteContract"
_SIMULATE_PATH = "/cosmos/tx/v1beta1/simulate"


class CosmosWallet(ABC):
    """Offline signer + broadcaster for the configured chain id."""

    @abstractmethod
    async def sign_and_broadcast(self, sender: str, contract: str, msg: dict) -> dict:
        """Sign and broadcast a contract execute; returns the broadcast result
        (``code``, ``txhash``/``transactionHash``, ``raw_log``)."""


class CosmosAdapter(ChainAdapter):
    chain = ChainTag.COSMOS

    def __init__(
        self,
        config: dict,
        lcd: RestClient,
        wallet: Optional[CosmosWallet] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(config, wallet=wallet, logger=logger)
        self.lcd = lcd
        self.contract: str = config.get("market_contract", "")
        self.denom: str = config.get("denom", "unova")
        self.denom_decimals: int = int(config.get("denom_decimals", 6))
        self.gas_price: float = float(config.get("gas_price", 0.025))
        self.gas_adjustment: float = float(config.get("gas_adjustment", 1.3))
        self.fallback_gas: int = int(config.get("fallback_gas", 300_000))
        if not self.fee_currency:
            self.fee_currency = self.denom.upper()

    def build_execute_msg(self, request: TradeRequest) -> dict:
        return {
            "execute_trade": {
                "side": request.side.value,
                "amount": str(self.to_base_units(request.amount)),
                "price": str(self.to_base_units(request.price)),
            }
        }

    def _simulation_body(self, request: TradeRequest) -> dict:
        msg = self.build_execute_msg(request)
        return {
            "tx": {
                "body": {
                    "messages": [{
                        "@type": MSG_EXECUTE_CONTRACT,
                        "sender": str(request.address or ""),
                        "contract": self.contract,
                        "msg": base64.b64encode(json.dumps(msg).encode()).decode(),
                        "funds": [],
                    }],
                    "memo": "",
                },
                "auth_info": {
                    "signer_infos": [],
                    "fee": {"amount": [], "gas_limit": "0"},
                },
                "signatures": [],
            }
        }

    def _quote_for_gas(self, gas: int, *, estimated: bool) -> FeeQuote:
        minimal = math.ceil(gas * self.gas_price)
        return FeeQuote(
            amount=self.from_base_units(minimal, self.denom_decimals),
            currency=self.fee_currency,
            estimated=estimated,
        )

    async def _simulate_fee(self, request: TradeRequest) -> FeeQuote:
        result = await self.lcd.post(_SIMULATE_PATH, self._simulation_body(request))
        gas_used = int(result["gas_info"]["gas_used"])
        gas = math.ceil(gas_used * self.gas_adjustment)
        self.logger.debug(f"[Cosmos] gas_used={gas_used} gas_limit={gas}")
        return self._quote_for_gas(gas, estimated=True)

    def fallback_fee(self, request: TradeRequest) -> FeeQuote:
        return self._quote_for_gas(self.fallback_gas, estimated=False)

    async def _submit(self, request: TradeRequest) -> str:
        msg = self.build_execute_msg(request)
        result = await self.wallet.sign_and_broadcast(str(request.address), self.contract, msg)

        tx_hash = result.get("transactionHash") or result.get("txhash")
        code = int(result.get("code", 0) or 0)
        if code != 0:
            raw_log = result.get("rawLog") or result.get("raw_log") or ""
            raise SubmissionRejected(
                f"Cosmos transaction failed with code {code}: {raw_log}",
                code=code,
                tx_id=tx_hash,
            )
        if not tx_hash:
            raise SubmissionRejected("Cosmos broadcast returned no transaction hash")
        return tx_hash
