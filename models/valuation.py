"""
Net value of the managed position in base-asset units.

net = idle_base + max(0, collateral_in_base - unwind_cost)

The unwind cost is what the swap venue actually charges to reacquire the
outstanding debt, not the oracle ratio. Oracle-only valuation overstates the
position whenever the venue trades away from the oracle, which would let a
depositor mint shares against value that cannot be realised on exit.
When the venue cannot quote, a fixed premium over the oracle cost is used so
valuation always produces a number.
"""

from __future__ import annotations

import logging

from config.params import BPS, UNWIND
from models.errors import VenueError
from models.interfaces import StrategyContext
from models.pricing import amount_for_value, ceil_div, convert
from models.types import AccountData, Asset

LOGGER = logging.getLogger(__name__)


class PositionValuator:
    """Values the vault's idle balance plus its net leveraged position."""

    def __init__(self, context: StrategyContext,
                 fallback_premium_bps: int = UNWIND.fallback_premium_bps):
        if not 0 <= fallback_premium_bps < BPS:
            raise ValueError("fallback_premium_bps must be in [0, 10000)")
        self.context = context
        self.fallback_premium_bps = fallback_premium_bps
        self.last_used_fallback = False

    def _safe_quote(self, asset_in: Asset, asset_out: Asset, amount_in: int) -> int:
        try:
            return max(int(self.context.swap.quote(asset_in, asset_out, amount_in)), 0)
        except VenueError as exc:
            LOGGER.warning(
                "Swap quote %s->%s failed (%s); using oracle fallback",
                asset_in.symbol, asset_out.symbol, exc,
            )
            return 0

    def collateral_in_base(self, account: AccountData) -> int:
        ctx = self.context
        return amount_for_value(ctx.oracle, ctx.base_asset, account.collateral_value)

    def debt_in_borrowed(self, account: AccountData) -> int:
        ctx = self.context
        return amount_for_value(ctx.oracle, ctx.borrow_asset, account.debt_value, round_up=True)

    def cost_to_acquire(self, amount_out: int) -> int:
        """Base asset needed to buy `amount_out` of the borrowed asset."""
        if amount_out <= 0:
            return 0
        ctx = self.context
        probe = convert(ctx.oracle, ctx.borrow_asset, ctx.base_asset, amount_out, round_up=True)
        if probe == 0:
            return 0
        quoted = self._safe_quote(ctx.base_asset, ctx.borrow_asset, probe)
        if quoted <= 0:
            self.last_used_fallback = True
            return ceil_div(probe * (BPS + self.fallback_premium_bps), BPS)
        estimate = ceil_div(probe * amount_out, quoted)
        # One correction step at the estimated trade size
        requoted = self._safe_quote(ctx.base_asset, ctx.borrow_asset, estimate)
        if requoted <= 0:
            return estimate
        return ceil_div(estimate * amount_out, requoted)

    def proceeds_of(self, amount_in: int) -> int:
        """Base asset realised by selling `amount_in` of the borrowed asset."""
        if amount_in <= 0:
            return 0
        ctx = self.context
        quoted = self._safe_quote(ctx.borrow_asset, ctx.base_asset, amount_in)
        if quoted > 0:
            return quoted
        self.last_used_fallback = True
        oracle_out = convert(ctx.oracle, ctx.borrow_asset, ctx.base_asset, amount_in)
        return oracle_out * (BPS - self.fallback_premium_bps) // BPS

    def position_value(self, account: AccountData | None = None) -> int:
        """Net value of collateral minus realistic debt unwind cost."""
        ctx = self.context
        if account is None:
            account = ctx.lending.get_account_data()
        self.last_used_fallback = False

        collateral = self.collateral_in_base(account)
        idle_borrowed = ctx.idle_balance(ctx.borrow_asset)
        if account.debt_value == 0 and idle_borrowed == 0:
            return collateral

        net_debt = self.debt_in_borrowed(account) - idle_borrowed
        if net_debt > 0:
            return max(0, collateral - self.cost_to_acquire(net_debt))
        return collateral + self.proceeds_of(-net_debt)

    def net_value(self, account: AccountData | None = None) -> int:
        """Idle base balance plus position_value()."""
        return self.context.idle_balance() + self.position_value(account)
