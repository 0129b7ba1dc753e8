"""Tests for the EVM chain adapter.

Tests cover:
- ABI call data for executeTrade(string,uint256,uint256)
- Gas simulation and the static fallback
- Submission through the wallet and receipt polling
- Wallet and receipt failures mapped to typed errors
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from eth_abi import decode
from eth_utils import function_signature_to_4byte_selector

from hypernova.chains.evm import EXECUTE_TRADE_SIGNATURE, EvmAdapter
from hypernova.core.errors import (
    ChainUnreachable,
    SignatureDeclined,
    SubmissionRejected,
    WalletUnavailable,
)
from hypernova.core.models import ChainTag, FeeQuote, Side, TradeRequest

CONFIG = {
    "market_contract": "0x00000000000000000000000000000000000000aa",
    "fee_currency": "ETH",
    "amount_decimals": 18,
    "fallback_gas": 250_000,
    "fallback_gas_price_gwei": 30,
    "receipt_poll_interval": 0,
}


def make_request(side=Side.BUY, amount=1.5, price=30000.0, address="0xabc"):
    return TradeRequest(chain=ChainTag.EVM, address=address, side=side, amount=amount, price=price)


def make_adapter(rpc_results=None, wallet=None):
    rpc = Mock()
    rpc.call = AsyncMock(side_effect=rpc_results)
    return EvmAdapter(CONFIG, rpc=rpc, wallet=wallet), rpc


class TestCallData:
    """Test ABI encoding of the trade call."""

    def test_selector_and_arguments(self):
        """Test the call data decodes back to side, amount and price in 18 decimals."""
        adapter, _ = make_adapter()
        data = bytes.fromhex(adapter.build_call_data(make_request())[2:])

        assert data[:4] == function_signature_to_4byte_selector(EXECUTE_TRADE_SIGNATURE)
        side, amount, price = decode(["string", "uint256", "uint256"], data[4:])
        assert side == "buy"
        assert amount == 1_500_000_000_000_000_000
        assert price == 30_000 * 10**18

    def test_transaction_targets_contract(self):
        """Test the transaction is a zero-value call to the market contract."""
        adapter, _ = make_adapter()
        tx = adapter.build_transaction(make_request(side=Side.SELL))

        assert tx["to"] == CONFIG["market_contract"]
        assert tx["from"] == "0xabc"
        assert tx["value"] == "0x0"
        assert tx["data"].startswith("0x")

    def test_transaction_without_address_omits_sender(self):
        """Test a quote for a disconnected wallet leaves out ``from``."""
        adapter, _ = make_adapter()
        tx = adapter.build_transaction(make_request(address=None))

        assert "from" not in tx


class TestFeeEstimation:
    """Test gas simulation."""

    def test_simulated_fee(self):
        """Test fee = estimated gas * gas price, reported in ETH."""
        adapter, rpc = make_adapter(rpc_results=["0x5208", "0x3b9aca00"])  # 21000 gas @ 1 gwei

        quote = asyncio.run(adapter.estimate_fee(make_request()))

        assert quote.currency == "ETH"
        assert quote.estimated is True
        assert quote.amount == pytest.approx(0.000021)
        methods = [c.args[0] for c in rpc.call.await_args_list]
        assert methods == ["eth_estimateGas", "eth_gasPrice"]

    def test_simulation_failure_uses_fallback(self):
        """Test a reverted simulation yields the static fallback quote."""
        adapter, _ = make_adapter(rpc_results=ChainUnreachable("node down"))

        quote = asyncio.run(adapter.estimate_fee(make_request()))

        assert quote == FeeQuote(amount=pytest.approx(0.0075), currency="ETH", estimated=False)

    def test_unreachable_node_retried(self):
        """Test one dropped request is retried and the simulation still succeeds."""
        adapter, rpc = make_adapter(rpc_results=[ChainUnreachable("blip"), "0x5208", "0x3b9aca00"])

        quote = asyncio.run(adapter.estimate_fee(make_request(), retries=1))

        assert quote.estimated is True
        assert quote.amount == pytest.approx(0.000021)
        assert rpc.call.await_count == 3

    def test_retries_exhausted_uses_fallback(self):
        adapter, rpc = make_adapter(rpc_results=[ChainUnreachable("down"), ChainUnreachable("down")])

        quote = asyncio.run(adapter.estimate_fee(make_request(), retries=1))

        assert quote.estimated is False
        assert quote.amount == pytest.approx(0.0075)
        assert rpc.call.await_count == 2

    def test_other_failures_not_retried(self):
        adapter, rpc = make_adapter(rpc_results=[ValueError("bad hex"), "0x5208", "0x3b9aca00"])

        quote = asyncio.run(adapter.estimate_fee(make_request(), retries=3))

        assert quote.estimated is False
        assert rpc.call.await_count == 1


class TestSubmission:
    """Test trade submission."""

    def test_submit_waits_for_receipt(self):
        """Test the hash is returned once a successful receipt appears."""
        wallet = Mock()
        wallet.send_transaction = AsyncMock(return_value="0xdeadbeef")
        receipt = {"status": "0x1", "transactionHash": "0xdeadbeef"}
        adapter, rpc = make_adapter(rpc_results=[None, None, receipt], wallet=wallet)

        result = asyncio.run(adapter.submit_trade(make_request()))

        assert result.transaction_id == "0xdeadbeef"
        assert result.chain is ChainTag.EVM
        assert rpc.call.await_count == 3
        sent = wallet.send_transaction.await_args.args[0]
        assert sent["to"] == CONFIG["market_contract"]

    def test_reverted_receipt_is_rejected(self):
        """Test a status 0 receipt raises SubmissionRejected with the hash."""
        wallet = Mock()
        wallet.send_transaction = AsyncMock(return_value="0xbad")
        adapter, _ = make_adapter(rpc_results=[{"status": "0x0"}], wallet=wallet)

        with pytest.raises(SubmissionRejected) as info:
            asyncio.run(adapter.submit_trade(make_request()))
        assert info.value.tx_id == "0xbad"

    def test_no_wallet(self):
        """Test submitting without a wallet raises WalletUnavailable."""
        adapter, rpc = make_adapter()

        with pytest.raises(WalletUnavailable):
            asyncio.run(adapter.submit_trade(make_request()))
        rpc.call.assert_not_awaited()

    def test_declined_signature_is_rejected(self):
        """Test a declined prompt surfaces as SubmissionRejected."""
        wallet = Mock()
        wallet.send_transaction = AsyncMock(side_effect=SignatureDeclined("user closed popup"))
        adapter, rpc = make_adapter(wallet=wallet)

        with pytest.raises(SubmissionRejected):
            asyncio.run(adapter.submit_trade(make_request()))
        rpc.call.assert_not_awaited()

    def test_unexpected_wallet_error_is_rejected(self):
        """Test arbitrary wallet exceptions are wrapped rather than leaked."""
        wallet = Mock()
        wallet.send_transaction = AsyncMock(side_effect=RuntimeError("provider crashed"))
        adapter, _ = make_adapter(wallet=wallet)

        with pytest.raises(SubmissionRejected) as info:
            asyncio.run(adapter.submit_trade(make_request()))
        assert "provider crashed" in str(info.value)

    def test_unreachable_node_propagates(self):
        """Test ChainUnreachable while polling is not masked."""
        wallet = Mock()
        wallet.send_transaction = AsyncMock(return_value="0x1")
        adapter, _ = make_adapter(rpc_results=ChainUnreachable("timeout"), wallet=wallet)

        with pytest.raises(ChainUnreachable):
            asyncio.run(adapter.submit_trade(make_request()))
