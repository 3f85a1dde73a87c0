"""
Share-accounting vault over the leveraged loop position.

deposit / mint:   price shares against net value, pull base asset, run the loop
withdraw / redeem: price assets, unwind the shortfall, burn shares, pay out

Every state-changing call is serialised by a per-vault lock, refuses nested
entry from the same thread, and runs inside a Transaction over the vault's
share ledger plus every snapshottable collaborator. A failure at any step
leaves shares, balances and the venue position exactly as they were.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from config.params import BPS, FEES, MAX_UINT256, UNWIND, FeeParams, StrategyConfig, UnwindParams
from models.conversion import ConversionEngine
from models.errors import LiquidityError, ReentrancyError, SolvencyError, ValidationError
from models.interfaces import StrategyContext
from models.leverage_loop import LeverageLoopController
from models.strategy_params import StrategyParameterStore
from models.transaction import Transaction
from models.types import LoopResult, PositionMetrics, UnwindResult
from models.unwind import UnwindEngine
from models.valuation import PositionValuator

LOGGER = logging.getLogger(__name__)


def _require_positive(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")


def _require_account(name: str, account: str) -> None:
    if not account:
        raise ValidationError(f"{name} must be a non-empty account id")


class LeveragedVault:
    """ERC-4626-style vault whose assets sit in a looped lending position."""

    def __init__(self, context: StrategyContext,
                 store: StrategyParameterStore | None = None,
                 conversion: ConversionEngine | None = None,
                 unwind_params: UnwindParams = UNWIND,
                 fees: FeeParams = FEES):
        if not 0 <= fees.performance_fee_bps <= fees.max_performance_fee_bps:
            raise ValidationError(
                f"performance_fee_bps must be in [0, {fees.max_performance_fee_bps}]"
            )
        if fees.performance_fee_bps > 0 and not fees.fee_recipient:
            raise ValidationError("fee_recipient is required when a performance fee is set")

        self.context = context
        self.store = store or StrategyParameterStore()
        self.conversion = conversion or ConversionEngine()
        self.fees = fees
        self.valuator = PositionValuator(context, unwind_params.fallback_premium_bps)
        self.loop = LeverageLoopController(context, self.store)
        self.unwinder = UnwindEngine(context, self.store, self.valuator, unwind_params)

        self.total_shares = 0
        self._balances: dict[str, int] = {}
        self._metrics = PositionMetrics(collateral=0, debt=0, health_factor=MAX_UINT256)
        self._high_water_mark: int | None = None
        self.last_loop: LoopResult | None = None
        self.last_unwind: UnwindResult | None = None

        self._lock = threading.RLock()
        self._entered = False

    # ------------------------------------------------------------------
    # Snapshottable
    # ------------------------------------------------------------------

    def snapshot(self):
        return (self.total_shares, dict(self._balances), self._metrics, self._high_water_mark)

    def restore(self, state) -> None:
        self.total_shares, balances, self._metrics, self._high_water_mark = state
        self._balances = dict(balances)

    @contextmanager
    def _operation(self, label: str) -> Iterator[None]:
        with self._lock:
            if self._entered:
                raise ReentrancyError(f"{label} entered while another vault operation is running")
            self._entered = True
            try:
                with Transaction([self, *self.context.participants()], label):
                    yield
            finally:
                self._entered = False

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def total_assets(self) -> int:
        """Idle base asset plus net value of the leveraged position."""
        return self.valuator.net_value()

    def balance_of(self, owner: str) -> int:
        return self._balances.get(owner, 0)

    def convert_to_shares(self, assets: int) -> int:
        return self.conversion.to_shares(assets, self.total_shares, self.total_assets())

    def convert_to_assets(self, shares: int) -> int:
        return self.conversion.to_assets(shares, self.total_shares, self.total_assets())

    def share_price(self) -> int:
        return self.conversion.share_price(self.total_shares, self.total_assets())

    def preview_deposit(self, assets: int) -> int:
        return self.conversion.to_shares(assets, self.total_shares, self.total_assets())

    def preview_mint(self, shares: int) -> int:
        return self.conversion.to_assets(shares, self.total_shares, self.total_assets(),
                                         round_up=True)

    def preview_withdraw(self, assets: int) -> int:
        return self.conversion.to_shares(assets, self.total_shares, self.total_assets(),
                                         round_up=True)

    def preview_redeem(self, shares: int) -> int:
        return self.conversion.to_assets(shares, self.total_shares, self.total_assets())

    def max_deposit(self, receiver: str) -> int:
        return MAX_UINT256

    def max_redeem(self, owner: str) -> int:
        return self.balance_of(owner)

    def max_withdraw(self, owner: str) -> int:
        return self.convert_to_assets(self.balance_of(owner))

    @property
    def position_metrics(self) -> PositionMetrics:
        """Totals cached at the end of the last operation (quote units, WAD HF)."""
        return self._metrics

    def get_position_metrics(self) -> PositionMetrics:
        """Re-query the lending venue and refresh the cached totals."""
        return self._refresh_metrics()

    def get_parameters(self) -> StrategyConfig:
        return self.store.config

    # ------------------------------------------------------------------
    # Internal bookkeeping
    # ------------------------------------------------------------------

    def _refresh_metrics(self) -> PositionMetrics:
        account = self.context.lending.get_account_data()
        self._metrics = PositionMetrics(
            collateral=account.collateral_value,
            debt=account.debt_value,
            health_factor=account.health_factor,
        )
        return self._metrics

    def _mint_shares(self, receiver: str, shares: int) -> None:
        self._balances[receiver] = self._balances.get(receiver, 0) + shares
        self.total_shares += shares

    def _burn_shares(self, owner: str, shares: int) -> None:
        balance = self.balance_of(owner)
        if shares > balance:
            raise ValidationError(f"{owner} holds {balance} shares, cannot burn {shares}")
        remaining = balance - shares
        if remaining:
            self._balances[owner] = remaining
        else:
            self._balances.pop(owner, None)
        self.total_shares -= shares
        if self.total_shares == 0:
            self._high_water_mark = None

    def _free_liquidity(self, amount: int) -> int:
        """Unwind until idle base covers `amount` (best effort); return idle balance."""
        idle = self.context.idle_balance()
        if idle >= amount:
            return idle
        self.last_unwind = self.unwinder.unwind(amount - idle)
        return self.context.idle_balance()

    def _check_solvency(self, health_factor_before: int, label: str) -> None:
        """HF may not end below the floor unless it was already lower going in."""
        account = self.context.lending.get_account_data()
        floor = self.store.min_health_factor
        if account.debt_value and account.health_factor < floor \
                and account.health_factor < health_factor_before:
            raise SolvencyError(account.health_factor, floor, label)

    def _accrue_fees(self) -> int:
        if self.fees.performance_fee_bps == 0 or self.total_shares == 0:
            return 0
        total_assets = self.total_assets()
        price = self.conversion.share_price(self.total_shares, total_assets)
        if self._high_water_mark is None:
            self._high_water_mark = price
            return 0
        if price <= self._high_water_mark:
            return 0

        gain = (price - self._high_water_mark) * self.total_shares // self.conversion.scale
        fee_assets = gain * self.fees.performance_fee_bps // BPS
        fee_shares = self.conversion.to_shares(
            fee_assets, self.total_shares, max(total_assets - fee_assets, 0),
        )
        if fee_shares > 0:
            self._mint_shares(self.fees.fee_recipient, fee_shares)
            LOGGER.info(
                "Performance fee: %d shares (%d assets) to %s",
                fee_shares, fee_assets, self.fees.fee_recipient,
            )
        self._high_water_mark = self.conversion.share_price(self.total_shares, total_assets)
        return fee_shares

    def _enter_position(self, assets: int, shares: int, receiver: str, payer: str) -> None:
        ctx = self.context
        ctx.tokens.transfer_from(ctx.base_asset, ctx.holder, payer, ctx.holder, assets)
        self.last_loop = self.loop.execute_loops(assets)
        self._mint_shares(receiver, shares)
        if self._high_water_mark is None and self.fees.performance_fee_bps > 0:
            self._high_water_mark = self.share_price()
        self._refresh_metrics()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def deposit(self, assets: int, receiver: str, caller: str | None = None) -> int:
        """Pull `assets` from `caller` (default: receiver), loop them, mint shares."""
        _require_positive("assets", assets)
        _require_account("receiver", receiver)
        payer = caller or receiver

        with self._operation("deposit"):
            self._accrue_fees()
            shares = self.conversion.to_shares(assets, self.total_shares, self.total_assets())
            if shares == 0:
                raise ValidationError(f"deposit of {assets} is too small to mint any shares")
            self._enter_position(assets, shares, receiver, payer)

        LOGGER.info("Deposit: %s paid %d, %s received %d shares", payer, assets, receiver, shares)
        return shares

    def mint(self, shares: int, receiver: str, caller: str | None = None) -> int:
        """Mint exactly `shares`, pulling the (rounded-up) asset cost from `caller`."""
        _require_positive("shares", shares)
        _require_account("receiver", receiver)
        payer = caller or receiver

        with self._operation("mint"):
            self._accrue_fees()
            assets = self.conversion.to_assets(shares, self.total_shares, self.total_assets(),
                                               round_up=True)
            if assets == 0:
                raise ValidationError(f"mint of {shares} shares costs nothing")
            self._enter_position(assets, shares, receiver, payer)

        LOGGER.info("Mint: %s paid %d, %s received %d shares", payer, assets, receiver, shares)
        return assets

    def withdraw(self, assets: int, receiver: str, owner: str) -> int:
        """Pay exactly `assets` to `receiver`, burning the (rounded-up) shares of `owner`."""
        _require_positive("assets", assets)
        _require_account("receiver", receiver)
        _require_account("owner", owner)
        ctx = self.context

        with self._operation("withdraw"):
            self._accrue_fees()
            shares = self.conversion.to_shares(assets, self.total_shares, self.total_assets(),
                                               round_up=True)
            if shares > self.balance_of(owner):
                raise ValidationError(
                    f"withdraw of {assets} needs {shares} shares; {owner} holds "
                    f"{self.balance_of(owner)}"
                )
            hf_before = ctx.lending.get_account_data().health_factor
            available = self._free_liquidity(assets)
            if available < assets:
                raise LiquidityError(
                    f"could only free {available} of {assets} requested; withdraw reverted"
                )
            self._check_solvency(hf_before, "withdraw")
            self._burn_shares(owner, shares)
            ctx.tokens.transfer(ctx.base_asset, ctx.holder, receiver, assets)
            self._refresh_metrics()

        LOGGER.info("Withdraw: %s burned %d shares, %s received %d", owner, shares, receiver, assets)
        return shares

    def redeem(self, shares: int, receiver: str, owner: str) -> int:
        """
        Redeem `shares` of `owner` for base asset paid to `receiver`.

        When the unwind frees less than the shares are worth, only the shares
        covering the amount paid are burned (rounded up); the owner keeps the rest.
        """
        _require_positive("shares", shares)
        _require_account("receiver", receiver)
        _require_account("owner", owner)
        ctx = self.context

        with self._operation("redeem"):
            self._accrue_fees()
            if shares > self.balance_of(owner):
                raise ValidationError(
                    f"{owner} holds {self.balance_of(owner)} shares, cannot redeem {shares}"
                )
            total_assets = self.total_assets()
            assets = self.conversion.to_assets(shares, self.total_shares, total_assets)
            if assets == 0:
                raise ValidationError(f"redeeming {shares} shares yields no assets")
            hf_before = ctx.lending.get_account_data().health_factor
            paid = min(assets, self._free_liquidity(assets))
            if paid == 0:
                raise LiquidityError(f"no liquidity could be freed to redeem {shares} shares")
            self._check_solvency(hf_before, "redeem")
            burned = shares
            if paid < assets:
                burned = min(shares, self.conversion.to_shares(
                    paid, self.total_shares, total_assets, round_up=True))
            self._burn_shares(owner, burned)
            ctx.tokens.transfer(ctx.base_asset, ctx.holder, receiver, paid)
            self._refresh_metrics()

        if paid < assets:
            LOGGER.warning(
                "Redeem paid %d of %d owed (liquidity constrained); %s keeps %d of %d shares",
                paid, assets, owner, shares - burned, shares,
            )
        LOGGER.info("Redeem: %s burned %d shares, %s received %d", owner, burned, receiver, paid)
        return paid

    def accrue_fees(self) -> int:
        """Mint performance-fee shares for gains above the high-water mark."""
        with self._operation("accrue_fees"):
            return self._accrue_fees()

    def set_parameters(self, target_ltv_bps: int, loop_count: int,
                       slippage_tolerance_bps: int) -> StrategyConfig:
        """Swap in new loop parameters; applies to subsequent deposits."""
        with self._lock:
            if self._entered:
                raise ReentrancyError("set_parameters entered during a vault operation")
            return self.store.set_parameters(target_ltv_bps, loop_count, slippage_tolerance_bps)

    def emergency_unwind(self) -> UnwindResult:
        """Fully unwind the position into idle base asset; shares are untouched."""
        with self._operation("emergency_unwind"):
            account = self.context.lending.get_account_data()
            if account.collateral_value == 0 and account.debt_value == 0:
                result = UnwindResult(requested=0, full=True, health_factor=account.health_factor)
            else:
                result = self.unwinder.unwind(max(self.total_assets(), 1))
            self.last_unwind = result
            self._refresh_metrics()

        LOGGER.warning(
            "Emergency unwind freed %d; remaining debt value %d", result.freed,
            result.remaining_debt_value,
        )
        return result
