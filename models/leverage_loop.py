"""
Leverage construction on deposit.

Each iteration:
1. Supply the current slice of base asset as collateral
2. Borrow target_ltv of the slice's oracle value in the borrowed asset
3. Swap the borrowed asset back to base (skipped on the final iteration)
4. The swap output is the next slice

A zero borrow, a refused borrow, or a swap that returns nothing ends the loop
early and keeps the leverage already built. The live health factor is checked
once the loop ends; below the floor the whole deposit fails with
SolvencyError and the caller's transaction discards every step.
"""

from __future__ import annotations

import logging

from config.params import BPS
from models.errors import SolvencyError, ValidationError, VenueError
from models.interfaces import StrategyContext
from models.position_model import collateral_multiple
from models.pricing import amount_for_value, value_of
from models.strategy_params import StrategyParameterStore
from models.types import LoopResult, LoopStep

LOGGER = logging.getLogger(__name__)


class LeverageLoopController:
    """Runs the supply -> borrow -> swap state machine for one deposit."""

    def __init__(self, context: StrategyContext, store: StrategyParameterStore):
        self.context = context
        self.store = store

    def borrow_amount_for(self, collateral_amount: int, target_ltv_bps: int) -> int:
        """Borrowed-asset amount worth target_ltv of `collateral_amount`."""
        ctx = self.context
        collateral_value = value_of(ctx.oracle, ctx.base_asset, collateral_amount)
        borrow_value = collateral_value * target_ltv_bps // BPS
        return amount_for_value(ctx.oracle, ctx.borrow_asset, borrow_value)

    def _supply(self, amount: int) -> None:
        ctx = self.context
        ctx.tokens.approve(ctx.base_asset, ctx.holder, ctx.lending_address, amount)
        ctx.lending.supply(ctx.base_asset, amount)

    def _swap_to_base(self, amount: int, slippage_bps: int) -> int:
        ctx = self.context
        try:
            quoted = int(ctx.swap.quote(ctx.borrow_asset, ctx.base_asset, amount))
            if quoted <= 0:
                return 0
            min_out = quoted * (BPS - slippage_bps) // BPS
            ctx.tokens.approve(ctx.borrow_asset, ctx.holder, ctx.swap_address, amount)
            return int(ctx.swap.exchange(ctx.borrow_asset, ctx.base_asset, amount, min_out))
        except VenueError as exc:
            LOGGER.warning("Loop swap of %d %s failed: %s", amount, ctx.borrow_asset.symbol, exc)
            return 0

    def execute_loops(self, initial_amount: int) -> LoopResult:
        if initial_amount < 0:
            raise ValidationError(f"initial_amount must be non-negative, got {initial_amount}")

        ctx = self.context
        config = self.store.config
        result = LoopResult(
            initial_amount=initial_amount,
            projected_leverage=float(collateral_multiple(
                config.target_ltv_bps / BPS, config.loop_count,
            )),
        )
        if initial_amount == 0:
            result.stop_reason = "nothing to loop"
            return result

        collateral_amount = initial_amount
        last_iteration = config.loop_count - 1

        for iteration in range(config.loop_count):
            self._supply(collateral_amount)
            result.total_supplied += collateral_amount

            borrow_amount = self.borrow_amount_for(collateral_amount, config.target_ltv_bps)
            if borrow_amount == 0:
                result.steps.append(LoopStep(iteration, collateral_amount, 0))
                result.stop_reason = "borrow amount rounds to zero"
                break

            try:
                ctx.lending.borrow(ctx.borrow_asset, borrow_amount)
            except VenueError as exc:
                LOGGER.warning("Loop borrow refused at iteration %d: %s", iteration, exc)
                result.steps.append(LoopStep(iteration, collateral_amount, 0))
                result.stop_reason = "borrow refused"
                break
            result.total_borrowed += borrow_amount

            if iteration == last_iteration:
                result.steps.append(LoopStep(iteration, collateral_amount, borrow_amount))
                break

            received = self._swap_to_base(borrow_amount, config.slippage_tolerance_bps)
            result.steps.append(LoopStep(iteration, collateral_amount, borrow_amount, received))
            if received == 0:
                result.stop_reason = "swap returned zero"
                break
            collateral_amount = received

        result.health_factor = ctx.lending.get_account_data().health_factor
        if result.health_factor < config.min_health_factor:
            raise SolvencyError(result.health_factor, config.min_health_factor, "leverage loop")

        if result.stopped_early:
            LOGGER.warning(
                "Loop stopped after %d/%d iterations: %s",
                result.iterations_completed, config.loop_count, result.stop_reason,
            )
        LOGGER.info(
            "Loop complete: supplied=%d borrowed=%d leverage=%.3f (projected %.3f) hf=%.4f",
            result.total_supplied, result.total_borrowed, result.realized_leverage,
            result.projected_leverage, result.health_factor / 1e18,
        )
        return result
