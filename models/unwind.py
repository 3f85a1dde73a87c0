"""
Position reduction on withdrawal.

Two paths, chosen by request size relative to net value:

Full (>= full_withdrawal_threshold_bps of net value):
    Repeat up to max_iterations: re-read live debt, withdraw a buffered
    multiple of its base cost (capped at the health-factor-safe amount),
    swap enough base to cover the debt, repay. Stop once debt value is at or
    below dust. Then sweep the remaining collateral and sell any leftover
    borrowed asset back to base.

Partial:
    Scale collateral-to-withdraw and debt-to-repay by target / position value.
    Each round withdraws at most what keeps HF above the floor, swaps only the
    pro-rata debt slice for that withdrawal, and repays it. Stop when the
    freed amount covers the target or nothing more can be withdrawn safely.

Safe withdrawal bound:
    max_withdrawable = collateral - debt * min_hf * (1 + buffer) / LT
"""

from __future__ import annotations

import logging

from config.params import BPS, MAX_UINT256, UNWIND, WAD, UnwindParams
from models.errors import UnwindFailedError, ValidationError, VenueError
from models.interfaces import StrategyContext
from models.pricing import amount_for_value, ceil_div
from models.strategy_params import StrategyParameterStore
from models.types import AccountData, Asset, UnwindResult, UnwindStep, WithdrawalRequest
from models.valuation import PositionValuator

LOGGER = logging.getLogger(__name__)


class UnwindEngine:
    """Frees base asset from the leveraged position without breaching the HF floor."""

    def __init__(self, context: StrategyContext, store: StrategyParameterStore,
                 valuator: PositionValuator, params: UnwindParams = UNWIND):
        if params.max_iterations < 1 or params.max_retry_attempts < 1:
            raise ValidationError("unwind iteration and retry budgets must be positive")
        if not 0 < params.retry_shrink_bps < BPS:
            raise ValidationError("retry_shrink_bps must be in (0, 10000)")
        if params.withdraw_buffer_bps < BPS:
            raise ValidationError("withdraw_buffer_bps must be at least 10000")
        self.context = context
        self.store = store
        self.valuator = valuator
        self.params = params

    # ------------------------------------------------------------------
    # Venue primitives
    # ------------------------------------------------------------------

    def max_withdrawable(self, account: AccountData) -> int:
        """Base collateral that can leave while HF stays above the buffered floor."""
        if account.debt_value == 0:
            return self.valuator.collateral_in_base(account)
        if account.liquidation_threshold <= 0:
            return 0
        # Buffered floor for sizing withdrawals; the post-operation check in
        # LeveragedVault._check_solvency uses the unbuffered floor instead.
        floor = self.store.min_health_factor * (BPS + self.params.health_factor_buffer_bps) // BPS
        required_value = ceil_div(
            account.debt_value * floor * BPS,
            WAD * account.liquidation_threshold,
        )
        excess_value = account.collateral_value - required_value
        if excess_value <= 0:
            return 0
        ctx = self.context
        return amount_for_value(ctx.oracle, ctx.base_asset, excess_value)

    def _withdraw_with_retry(self, amount: int) -> int:
        ctx = self.context
        for attempt in range(self.params.max_retry_attempts):
            if amount <= 0:
                return 0
            try:
                return int(ctx.lending.withdraw(ctx.base_asset, amount))
            except VenueError as exc:
                LOGGER.warning("Withdraw of %d failed (attempt %d): %s", amount, attempt + 1, exc)
                amount = amount * self.params.retry_shrink_bps // BPS
        return 0

    def _swap_with_retry(self, asset_in: Asset, asset_out: Asset, amount: int) -> int:
        ctx = self.context
        slippage_bps = self.store.slippage_tolerance_bps
        for attempt in range(self.params.max_retry_attempts):
            if amount <= 0:
                return 0
            try:
                quoted = int(ctx.swap.quote(asset_in, asset_out, amount))
                if quoted <= 0:
                    return 0
                min_out = quoted * (BPS - slippage_bps) // BPS
                ctx.tokens.approve(asset_in, ctx.holder, ctx.swap_address, amount)
                return int(ctx.swap.exchange(asset_in, asset_out, amount, min_out))
            except VenueError as exc:
                LOGGER.warning(
                    "Swap %s->%s of %d failed (attempt %d): %s",
                    asset_in.symbol, asset_out.symbol, amount, attempt + 1, exc,
                )
                amount = amount * self.params.retry_shrink_bps // BPS
        return 0

    def _repay_idle_borrowed(self) -> int:
        """Repay debt with whatever borrowed asset the strategy holds."""
        ctx = self.context
        balance = ctx.idle_balance(ctx.borrow_asset)
        if balance == 0:
            return 0
        if ctx.lending.get_account_data().debt_value == 0:
            return 0
        ctx.tokens.approve(ctx.borrow_asset, ctx.holder, ctx.lending_address, balance)
        return int(ctx.lending.repay(ctx.borrow_asset, balance))

    def _record_step(self, result: UnwindResult, iteration: int, withdrawn: int,
                     repaid: int) -> None:
        account = self.context.lending.get_account_data()
        debt_after = self.valuator.debt_in_borrowed(account) if account.debt_value else 0
        result.collateral_withdrawn += withdrawn
        result.debt_repaid += repaid
        result.steps.append(UnwindStep(
            iteration=iteration,
            withdrawn=withdrawn,
            repaid=repaid,
            collateral_after=self.valuator.collateral_in_base(account),
            debt_after=debt_after,
            health_factor_after=account.health_factor,
        ))
        LOGGER.debug(
            "Unwind round %d: withdrawn=%d repaid=%d hf=%.4f",
            iteration, withdrawn, repaid, account.health_factor / 1e18,
        )

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _partial_unwind(self, result: UnwindResult, account: AccountData,
                        idle_start: int) -> None:
        ctx = self.context
        target = result.requested
        position_value = self.valuator.position_value(account)
        if position_value == 0:
            return

        collateral_native = self.valuator.collateral_in_base(account)
        debt_native = self.valuator.debt_in_borrowed(account) if account.debt_value else 0
        if target >= position_value:
            collateral_goal, debt_goal = collateral_native, debt_native
        else:
            collateral_goal = ceil_div(collateral_native * target, position_value)
            debt_goal = ceil_div(debt_native * target, position_value)
        remaining_repay = debt_goal

        for iteration in range(self.params.max_iterations):
            need = target - (ctx.idle_balance() - idle_start)
            if need <= 0:
                break

            live = ctx.lending.get_account_data()
            safe = self.max_withdrawable(live)
            if safe == 0:
                LOGGER.warning(
                    "Partial unwind halted at health factor %.4f (floor %.4f)",
                    live.health_factor / 1e18, self.store.min_health_factor / 1e18,
                )
                break

            if remaining_repay > 0 and collateral_goal > 0:
                step = ceil_div(need * collateral_goal, target)
            else:
                step = need
            withdrawn = self._withdraw_with_retry(min(step, safe))
            if withdrawn == 0:
                break

            repaid = 0
            if remaining_repay > 0 and collateral_goal > 0:
                debt_slice = min(remaining_repay,
                                 ceil_div(debt_goal * withdrawn, collateral_goal))
                spend = min(self.valuator.cost_to_acquire(debt_slice), withdrawn)
                if self._swap_with_retry(ctx.base_asset, ctx.borrow_asset, spend) > 0:
                    repaid = self._repay_idle_borrowed()
                remaining_repay = max(0, remaining_repay - repaid)

            self._record_step(result, iteration, withdrawn, repaid)

    def _full_unwind(self, result: UnwindResult) -> None:
        ctx = self.context
        slippage_bps = self.store.slippage_tolerance_bps

        for iteration in range(self.params.max_iterations):
            account = ctx.lending.get_account_data()
            if account.debt_value <= self.params.dust_value:
                break

            shortfall = (self.valuator.debt_in_borrowed(account)
                         - ctx.idle_balance(ctx.borrow_asset))
            cost = self.valuator.cost_to_acquire(shortfall)

            buffered = cost * self.params.withdraw_buffer_bps // BPS
            withdrawn = self._withdraw_with_retry(min(buffered, self.max_withdrawable(account)))

            spend = min(ctx.idle_balance(), ceil_div(cost * (BPS + slippage_bps), BPS))
            self._swap_with_retry(ctx.base_asset, ctx.borrow_asset, spend)
            repaid = self._repay_idle_borrowed()

            self._record_step(result, iteration, withdrawn, repaid)
            if withdrawn == 0 and repaid == 0:
                LOGGER.warning("Full unwind made no progress at round %d", iteration)
                break

        self._sweep()

    def _sweep(self) -> None:
        """Best-effort: withdraw remaining collateral, sell leftover borrowed asset."""
        ctx = self.context
        account = ctx.lending.get_account_data()
        if account.debt_value == 0:
            try:
                ctx.lending.withdraw(ctx.base_asset, MAX_UINT256)
            except VenueError as exc:
                LOGGER.warning("Collateral sweep failed: %s", exc)
            leftover = ctx.idle_balance(ctx.borrow_asset)
            if leftover > 0:
                self._swap_with_retry(ctx.borrow_asset, ctx.base_asset, leftover)
        else:
            self._withdraw_with_retry(self.max_withdrawable(account))

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def unwind(self, target_withdraw_amount: int) -> UnwindResult:
        """
        Free up to `target_withdraw_amount` of base asset into the strategy's
        idle balance. The returned `freed` may be smaller (liquidity, HF floor)
        or larger (full unwind sweeps everything); callers must use it.
        """
        if target_withdraw_amount < 0:
            raise ValidationError(
                f"target_withdraw_amount must be non-negative, got {target_withdraw_amount}"
            )
        ctx = self.context
        if target_withdraw_amount == 0:
            account = ctx.lending.get_account_data()
            return UnwindResult(
                requested=0, full=False,
                remaining_debt_value=account.debt_value,
                health_factor=account.health_factor,
            )

        idle_start = ctx.idle_balance()
        self._repay_idle_borrowed()
        account = ctx.lending.get_account_data()
        had_collateral = account.collateral_value > 0
        request = WithdrawalRequest(
            target_assets=target_withdraw_amount,
            total_value=self.valuator.net_value(account),
            full_threshold_bps=self.params.full_withdrawal_threshold_bps,
        )
        result = UnwindResult(requested=target_withdraw_amount, full=request.is_full_withdrawal)

        if result.full:
            self._full_unwind(result)
        else:
            self._partial_unwind(result, account, idle_start)

        final = ctx.lending.get_account_data()
        result.freed = max(0, ctx.idle_balance() - idle_start)
        result.remaining_debt_value = final.debt_value
        result.health_factor = final.health_factor

        if result.full:
            if result.freed == 0 and had_collateral:
                raise UnwindFailedError("Full unwind could not free any collateral")
            if final.debt_value > self.params.dust_value:
                result.liquidity_starved = True
                LOGGER.warning(
                    "Full unwind left debt of %d quote units after %d rounds (liquidity starved)",
                    final.debt_value, result.iterations,
                )

        LOGGER.info(
            "Unwind (%s) requested=%d freed=%d withdrawn=%d repaid=%d hf=%.4f",
            "full" if result.full else "partial", result.requested, result.freed,
            result.collateral_withdrawn, result.debt_repaid, result.health_factor / 1e18,
        )
        return result
