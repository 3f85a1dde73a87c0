"""Tests for net position valuation against realistic swap costs."""

from dataclasses import replace

import pytest

from models.errors import VenueError
from models.valuation import PositionValuator
from src.venues import build_sandbox

UNIT = 10**18
HOLDER = "vault"


class FailingQuoteSwap:
    """Swap venue whose quotes are unavailable."""

    def __init__(self, inner):
        self.inner = inner

    def quote(self, asset_in, asset_out, amount_in):
        raise VenueError("quote unavailable")

    def exchange(self, asset_in, asset_out, amount_in, min_out):
        return self.inner.exchange(asset_in, asset_out, amount_in, min_out)


class FixedRateQuoteSwap:
    """Swap venue quoting a flat `num / den` of the input, whatever the oracle says."""

    def __init__(self, inner, num, den):
        self.inner = inner
        self.num = num
        self.den = den

    def quote(self, asset_in, asset_out, amount_in):
        return amount_in * self.num // self.den

    def exchange(self, asset_in, asset_out, amount_in, min_out):
        return self.inner.exchange(asset_in, asset_out, amount_in, min_out)


def _open_position(sandbox, collateral, borrowed):
    """Supply collateral, borrow, and move the borrowed asset out of the vault."""
    ctx = sandbox.context
    sandbox.tokens.mint(ctx.base_asset, HOLDER, collateral)
    sandbox.tokens.approve(ctx.base_asset, HOLDER, ctx.lending_address, collateral)
    sandbox.lending.supply(ctx.base_asset, collateral)
    if borrowed:
        sandbox.lending.borrow(ctx.borrow_asset, borrowed)
        sandbox.tokens.transfer(ctx.borrow_asset, HOLDER, "elsewhere", borrowed)


class TestPositionValue:
    def test_empty_position_is_zero(self, sandbox):
        valuator = PositionValuator(sandbox.context)
        assert valuator.position_value() == 0
        assert valuator.net_value() == 0

    def test_no_debt_is_collateral_only(self, sandbox):
        _open_position(sandbox, 10 * UNIT, 0)
        valuator = PositionValuator(sandbox.context)
        assert valuator.position_value() == 10 * UNIT

    def test_idle_base_counts_toward_net_value(self, sandbox):
        _open_position(sandbox, 10 * UNIT, 0)
        sandbox.tokens.mint(sandbox.context.base_asset, HOLDER, 2 * UNIT)
        valuator = PositionValuator(sandbox.context)
        assert valuator.net_value() == 12 * UNIT

    def test_debt_priced_at_swap_cost_not_oracle(self, sandbox):
        _open_position(sandbox, 10 * UNIT, 8 * UNIT)
        valuator = PositionValuator(sandbox.context)
        value = valuator.position_value()
        # Oracle-only: 10 - 8 * 2500 / 3000
        oracle_only = 10 * UNIT - 8 * UNIT * 2_500 // 3_000
        assert value < oracle_only
        assert value > oracle_only - UNIT // 100
        assert not valuator.last_used_fallback

    def test_quote_failure_uses_premium_fallback(self, sandbox):
        _open_position(sandbox, 10 * UNIT, 8 * UNIT)
        ctx = replace(sandbox.context, swap=FailingQuoteSwap(sandbox.swap))
        valuator = PositionValuator(ctx, fallback_premium_bps=1_000)
        value = valuator.position_value()
        assert valuator.last_used_fallback
        # 10 - (8 * 2500 / 3000) * 1.10
        assert value / UNIT == pytest.approx(10 - 8 * 2_500 / 3_000 * 1.10, rel=1e-9)

    def test_value_floors_at_zero(self, sandbox):
        _open_position(sandbox, 10 * UNIT, 8 * UNIT)
        # Venue pays 0.1 WETH per wstETH: buying back 8 WETH costs 80 wstETH
        ctx = replace(sandbox.context, swap=FixedRateQuoteSwap(sandbox.swap, 1, 10))
        valuator = PositionValuator(ctx)
        assert valuator.cost_to_acquire(8 * UNIT) > 10 * UNIT
        assert valuator.position_value() == 0
        assert not valuator.last_used_fallback

    def test_idle_borrowed_is_netted_against_debt(self, sandbox):
        ctx = sandbox.context
        sandbox.tokens.mint(ctx.base_asset, HOLDER, 10 * UNIT)
        sandbox.tokens.approve(ctx.base_asset, HOLDER, ctx.lending_address, 10 * UNIT)
        sandbox.lending.supply(ctx.base_asset, 10 * UNIT)
        sandbox.lending.borrow(ctx.borrow_asset, 8 * UNIT)
        valuator = PositionValuator(ctx)
        # Borrowed asset still held: debt fully offset
        assert valuator.position_value() == 10 * UNIT

    def test_surplus_borrowed_asset_adds_sale_proceeds(self, sandbox):
        sandbox.tokens.mint(sandbox.context.borrow_asset, HOLDER, 3 * UNIT)
        valuator = PositionValuator(sandbox.context)
        value = valuator.position_value()
        # 3 WETH ~ 2.5 wstETH less fee
        assert value / UNIT == pytest.approx(2.5, rel=1e-3)
        assert value < 5 * UNIT // 2


class TestCostToAcquire:
    def test_zero_amount(self, sandbox):
        assert PositionValuator(sandbox.context).cost_to_acquire(0) == 0

    def test_buying_covers_requested_amount(self, sandbox):
        ctx = sandbox.context
        valuator = PositionValuator(ctx)
        cost = valuator.cost_to_acquire(5 * UNIT)
        assert sandbox.swap.quote(ctx.base_asset, ctx.borrow_asset, cost) >= 5 * UNIT - UNIT // 10**6

    def test_tracks_pool_when_it_drifts_from_oracle(self):
        box = build_sandbox(swap_depth=100)
        ctx = box.context
        # Oracle says 1.2 WETH per wstETH, the pool now trades near 1:1
        box.swap.rates[ctx.base_asset] = 1.0
        valuator = PositionValuator(ctx)
        cost = valuator.cost_to_acquire(8 * UNIT)
        assert cost > 8 * UNIT * 2_500 // 3_000
        assert box.swap.quote(ctx.base_asset, ctx.borrow_asset, cost) == pytest.approx(
            8 * UNIT, rel=1e-6)

    def test_fixed_rate_venue_cost_is_exact(self, sandbox):
        ctx = replace(sandbox.context, swap=FixedRateQuoteSwap(sandbox.swap, 1, 2))
        valuator = PositionValuator(ctx)
        assert valuator.cost_to_acquire(3 * UNIT) == 6 * UNIT

    def test_invalid_premium_rejected(self, sandbox):
        with pytest.raises(ValueError):
            PositionValuator(sandbox.context, fallback_premium_bps=10_000)
