"""
Single-account simulated lending pool with Aave V3 style risk checks.

Account data (all values in quote units, 8 decimals):
    collateral_value = sum(amount_i * price_i)
    ltv, LT          = collateral-value-weighted reserve parameters (bps)
    health_factor    = sum(collateral_value_i * LT_i) / debt_value   (WAD)

Borrow is refused above LTV or beyond pool reserves; withdraw is refused when
it would leave HF below 1. Variable debt accrues on the two-slope rate curve.
"""

from __future__ import annotations

import logging
from copy import deepcopy

import numpy as np

from config.params import BPS, MAX_UINT256, RATES, RESERVE, WAD, InterestRateParams, ReserveConfig
from models.errors import InsufficientLiquidityError, ValidationError, VenueError
from models.interfaces import PriceOracle
from models.pricing import value_of
from models.types import AccountData, Asset
from .token_ledger import TokenLedger

LOGGER = logging.getLogger(__name__)


class InterestRateModel:
    """
    Two-slope variable rate, written as a kinked line:

        R(U) = R_base + slope1 * min(U, U_opt) / U_opt
                      + slope2 * max(U - U_opt, 0) / (1 - U_opt)
    """

    def __init__(self, params: InterestRateParams = RATES):
        if not 0.0 < params.optimal_utilization < 1.0:
            raise ValidationError("optimal_utilization must be in (0, 1)")
        self.params = params

    def borrow_rate(self, utilization: float | np.ndarray) -> float | np.ndarray:
        """Annualized variable borrow rate; utilization is clipped to [0, 1]."""
        p = self.params
        u = np.clip(np.asarray(utilization, dtype=np.float64), 0.0, 1.0)
        kink = p.optimal_utilization
        return (p.base_rate
                + p.slope1 * np.minimum(u, kink) / kink
                + p.slope2 * np.maximum(u - kink, 0.0) / (1.0 - kink))


class SimulatedLendingPool:
    """Collateral/debt book for one strategy account backed by a TokenLedger."""

    def __init__(self, tokens: TokenLedger, oracle: PriceOracle, account: str,
                 reserves: dict[Asset, ReserveConfig] | None = None,
                 address: str = "lending-pool",
                 rates: InterestRateModel | None = None):
        self.tokens = tokens
        self.oracle = oracle
        self.account = account
        self.address = address
        self.reserves: dict[Asset, ReserveConfig] = dict(reserves or {})
        self.rates = rates or InterestRateModel()
        self._collateral: dict[Asset, int] = {}
        self._debt: dict[Asset, int] = {}

    def _reserve(self, asset: Asset) -> ReserveConfig:
        if asset not in self.reserves:
            self.reserves[asset] = RESERVE
        return self.reserves[asset]

    def available_liquidity(self, asset: Asset) -> int:
        return self.tokens.balance_of(asset, self.address)

    def collateral_of(self, asset: Asset) -> int:
        return self._collateral.get(asset, 0)

    def debt_of(self, asset: Asset) -> int:
        return self._debt.get(asset, 0)

    # ------------------------------------------------------------------
    # Account data
    # ------------------------------------------------------------------

    def _account_data(self, collateral: dict[Asset, int], debt: dict[Asset, int]) -> AccountData:
        collateral_value = 0
        weighted_ltv = 0
        weighted_lt = 0
        for asset, amount in collateral.items():
            value = value_of(self.oracle, asset, amount)
            reserve = self._reserve(asset)
            collateral_value += value
            weighted_ltv += value * reserve.ltv_bps
            weighted_lt += value * reserve.liquidation_threshold_bps

        debt_value = sum(
            value_of(self.oracle, asset, amount, round_up=True)
            for asset, amount in debt.items()
        )

        if collateral_value:
            ltv = weighted_ltv // collateral_value
            lt = weighted_lt // collateral_value
        else:
            ltv = lt = 0
        available = max(0, weighted_ltv // BPS - debt_value)
        if debt_value == 0:
            hf = MAX_UINT256
        else:
            hf = weighted_lt * WAD // (BPS * debt_value)
        return AccountData(
            collateral_value=collateral_value,
            debt_value=debt_value,
            available_borrow=available,
            liquidation_threshold=lt,
            ltv=ltv,
            health_factor=hf,
        )

    def get_account_data(self) -> AccountData:
        return self._account_data(self._collateral, self._debt)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def supply(self, asset: Asset, amount: int) -> None:
        if amount <= 0:
            raise ValidationError(f"supply amount must be positive, got {amount}")
        self._reserve(asset)
        self.tokens.transfer_from(asset, self.address, self.account, self.address, amount)
        self._collateral[asset] = self.collateral_of(asset) + amount

    def withdraw(self, asset: Asset, amount: int) -> int:
        held = self.collateral_of(asset)
        if amount == MAX_UINT256:
            amount = held
        if amount <= 0:
            return 0
        if amount > held:
            raise VenueError(f"withdraw of {amount} {asset.symbol} exceeds collateral {held}")
        if amount > self.available_liquidity(asset):
            raise InsufficientLiquidityError(
                f"pool holds {self.available_liquidity(asset)} {asset.symbol}, "
                f"cannot withdraw {amount}"
            )

        remaining = dict(self._collateral)
        remaining[asset] = held - amount
        after = self._account_data(remaining, self._debt)
        if after.debt_value and after.health_factor < WAD:
            raise VenueError(
                f"withdraw would leave health factor at {after.health_factor / 1e18:.4f}"
            )

        self.tokens.transfer(asset, self.address, self.account, amount)
        if remaining[asset]:
            self._collateral[asset] = remaining[asset]
        else:
            self._collateral.pop(asset, None)
        return amount

    def borrow(self, asset: Asset, amount: int) -> None:
        if amount <= 0:
            raise ValidationError(f"borrow amount must be positive, got {amount}")
        if amount > self.available_liquidity(asset):
            raise InsufficientLiquidityError(
                f"pool holds {self.available_liquidity(asset)} {asset.symbol}, "
                f"cannot lend {amount}"
            )
        debt = dict(self._debt)
        debt[asset] = self.debt_of(asset) + amount
        after = self._account_data(self._collateral, debt)
        borrow_power = after.collateral_value * after.ltv // BPS
        if after.debt_value > borrow_power:
            raise VenueError(
                f"borrow of {amount} {asset.symbol} exceeds LTV "
                f"(debt {after.debt_value} > limit {borrow_power})"
            )
        self.tokens.transfer(asset, self.address, self.account, amount)
        self._debt = debt

    def repay(self, asset: Asset, amount: int) -> int:
        owed = self.debt_of(asset)
        paid = min(amount, owed)
        if paid <= 0:
            return 0
        self.tokens.transfer_from(asset, self.address, self.account, self.address, paid)
        if owed - paid:
            self._debt[asset] = owed - paid
        else:
            self._debt.pop(asset, None)
        return paid

    def accrue_interest(self, years: float) -> dict[Asset, int]:
        """Compound variable debt over `years` at the current utilization; returns interest."""
        if years < 0:
            raise ValidationError("years must be non-negative")
        accrued: dict[Asset, int] = {}
        for asset, owed in list(self._debt.items()):
            liquidity = self.available_liquidity(asset)
            utilization = owed / (owed + liquidity) if owed + liquidity else 0.0
            rate = float(self.rates.borrow_rate(utilization))
            interest = int(owed * float(np.expm1(rate * years)))
            self._debt[asset] = owed + interest
            accrued[asset] = interest
            LOGGER.debug(
                "Accrued %d %s interest (utilization %.2f%%, rate %.2f%%)",
                interest, asset.symbol, utilization * 100, rate * 100,
            )
        return accrued

    def snapshot(self):
        return deepcopy((self._collateral, self._debt))

    def restore(self, state) -> None:
        collateral, debt = deepcopy(state)
        self._collateral = collateral
        self._debt = debt
