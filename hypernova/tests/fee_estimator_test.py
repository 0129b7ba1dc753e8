"""Tests for the debounced fee estimator.

Tests cover:
- Debounce collapsing rapid edits into one estimate
- The most recently issued estimate winning over slower, older ones
- Chain switches clearing the displayed quote
- Invalid inputs never issuing estimates
- Periodic refresh of unchanged inputs
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from hypernova.core.models import ChainTag, FeeQuote, Side
from hypernova.execution.fee_estimator import FeeEstimator, FormState

VALID = dict(chain="EVM", address="0xabc", side="buy", amount="1.5", price="30000")


async def settle(rounds=5):
    for _ in range(rounds):
        await asyncio.sleep(0)


class TestFormState:
    def test_valid_state_builds_request(self):
        request = FormState(ChainTag.EVM, "0xabc", Side.SELL, "2", "10").to_request()

        assert request.amount == 2.0
        assert request.side is Side.SELL

    @pytest.mark.parametrize("amount,price", [("0", "1"), ("1", ""), (None, "1"), ("x", "1")])
    def test_invalid_state_has_no_request(self, amount, price):
        assert FormState(ChainTag.EVM, "0xabc", Side.BUY, amount, price).to_request() is None

    def test_no_chain_has_no_request(self):
        assert FormState(None, "0xabc", Side.BUY, "1", "1").to_request() is None


class TestDebounce:
    """Test debouncing of rapid edits."""

    def test_rapid_edits_issue_one_estimate(self):
        """Test 30000 then 30001 within the debounce yields one call for 30001."""
        estimate = AsyncMock(return_value=FeeQuote(0.002, "ETH"))

        async def scenario():
            est = FeeEstimator(estimate, debounce_seconds=0.1, refresh_seconds=60)
            est.update(**VALID)
            await asyncio.sleep(0.02)
            est.update(price="30001")
            await asyncio.sleep(0.3)
            await est.close()
            return est

        est = asyncio.run(scenario())

        assert estimate.await_count == 1
        assert estimate.await_args.args[0].price == 30001.0
        assert est.quote == FeeQuote(0.002, "ETH")

    def test_unchanged_update_is_noop(self):
        estimate = AsyncMock(return_value=FeeQuote(0.002, "ETH"))

        async def scenario():
            est = FeeEstimator(estimate, debounce_seconds=0.01, refresh_seconds=60)
            est.update(**VALID)
            await asyncio.sleep(0.05)
            generation = est.generation
            est.update(price="30000")
            await asyncio.sleep(0.05)
            await est.close()
            return est, generation

        est, generation = asyncio.run(scenario())

        assert estimate.await_count == 1
        assert est.generation == generation


class TestSupersession:
    """Test that only the most recently issued estimate is published."""

    def test_late_stale_result_is_discarded(self):
        """Test an older estimate resolving after a newer one never shows."""
        pending = []

        async def estimate(request):
            future = asyncio.get_running_loop().create_future()
            pending.append((request, future))
            return await future

        async def scenario():
            est = FeeEstimator(estimate, debounce_seconds=0.01, refresh_seconds=60)
            est.update(**VALID)
            await asyncio.sleep(0.05)
            est.update(price="30001")
            await asyncio.sleep(0.05)
            assert len(pending) == 2

            pending[1][1].set_result(FeeQuote(0.002, "ETH"))
            await settle()
            pending[0][1].set_result(FeeQuote(0.001, "ETH"))
            await settle()
            quote = est.quote
            await est.close()
            return quote

        assert asyncio.run(scenario()) == FeeQuote(0.002, "ETH")

    def test_early_stale_result_is_discarded(self):
        """Test an older estimate resolving first is dropped once inputs changed."""
        pending = []
        published = []

        async def estimate(request):
            future = asyncio.get_running_loop().create_future()
            pending.append((request, future))
            return await future

        async def scenario():
            est = FeeEstimator(estimate, debounce_seconds=0.05, refresh_seconds=60, on_quote=published.append)
            est.update(**VALID)
            await asyncio.sleep(0.1)
            est.update(price="30001")
            pending[0][1].set_result(FeeQuote(0.001, "ETH"))
            await settle()
            assert est.quote is None

            await asyncio.sleep(0.1)
            pending[1][1].set_result(FeeQuote(0.002, "ETH"))
            await settle()
            await est.close()

        asyncio.run(scenario())
        assert published == [FeeQuote(0.002, "ETH")]

    def test_estimate_failure_is_unknown(self):
        estimate = AsyncMock(side_effect=RuntimeError("boom"))

        async def scenario():
            est = FeeEstimator(estimate, debounce_seconds=0.01, refresh_seconds=60)
            est.update(**VALID)
            quote = await est.refresh_now()
            await est.close()
            return quote

        assert asyncio.run(scenario()) is None


class TestChainSwitch:
    """Test chain changes."""

    def test_switch_clears_quote_immediately(self):
        """Test the previous chain's fee is never shown under the new chain."""
        estimate = AsyncMock(return_value=FeeQuote(0.002, "ETH"))
        published = []

        async def scenario():
            est = FeeEstimator(estimate, debounce_seconds=0.05, refresh_seconds=60, on_quote=published.append)
            est.update(**VALID)
            await est.refresh_now()
            assert est.quote == FeeQuote(0.002, "ETH")
            assert est.can_submit

            estimate.return_value = FeeQuote(0.000007, "SOL")
            est.update(chain="Solana")
            assert est.quote is None
            assert not est.can_submit

            await asyncio.sleep(0.15)
            quote = est.quote
            await est.close()
            return quote

        assert asyncio.run(scenario()) == FeeQuote(0.000007, "SOL")
        assert published == [FeeQuote(0.002, "ETH"), None, FeeQuote(0.000007, "SOL")]
        assert estimate.await_args.args[0].chain is ChainTag.SOLANA


class TestInvalidInputs:
    """Test invalid form inputs."""

    def test_zero_amount_issues_nothing(self):
        estimate = AsyncMock(return_value=FeeQuote(0.002, "ETH"))

        async def scenario():
            est = FeeEstimator(estimate, debounce_seconds=0.01, refresh_seconds=60)
            est.update(**dict(VALID, amount="0"))
            await asyncio.sleep(0.05)
            await est.close()
            return est

        est = asyncio.run(scenario())

        estimate.assert_not_awaited()
        assert est.quote is None
        assert not est.can_submit

    def test_invalidating_edit_cancels_pending_estimate(self):
        estimate = AsyncMock(return_value=FeeQuote(0.002, "ETH"))

        async def scenario():
            est = FeeEstimator(estimate, debounce_seconds=0.05, refresh_seconds=60)
            est.update(**VALID)
            est.update(price="")
            await asyncio.sleep(0.1)
            await est.close()

        asyncio.run(scenario())
        estimate.assert_not_awaited()


class TestRefresh:
    """Test the periodic refresh."""

    def test_refresh_requotes_unchanged_inputs(self):
        estimate = AsyncMock(return_value=FeeQuote(0.002, "ETH"))

        async def scenario():
            est = FeeEstimator(estimate, debounce_seconds=0.01, refresh_seconds=0.05)
            est.start()
            est.update(**VALID)
            await asyncio.sleep(0.3)
            await est.close()

        asyncio.run(scenario())
        assert estimate.await_count >= 3

    def test_refresh_skips_invalid_inputs(self):
        estimate = AsyncMock(return_value=FeeQuote(0.002, "ETH"))

        async def scenario():
            est = FeeEstimator(estimate, debounce_seconds=0.01, refresh_seconds=0.02)
            est.start()
            est.update(**dict(VALID, price="-1"))
            await asyncio.sleep(0.1)
            await est.close()

        asyncio.run(scenario())
        estimate.assert_not_awaited()

    def test_start_after_close(self):
        async def scenario():
            est = FeeEstimator(AsyncMock(), refresh_seconds=60)
            await est.close()
            with pytest.raises(RuntimeError):
                est.start()

        asyncio.run(scenario())
