"""
Strategy, conversion, unwind and fee parameters for the leveraged loop vault.

All ratios are integers: basis points (BPS) or WAD (1e18) fixed point.
Token amounts are integers in the asset's smallest unit; oracle prices and
lending-venue values are integers in quote units with 8 decimals (1e8 = $1).

Environment overrides are read by load_params() (see .env.example).
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path

from dotenv import load_dotenv

WAD = 10**18
BPS = 10_000
MAX_UINT256 = 2**256 - 1

QUOTE_DECIMALS = 8
QUOTE_UNIT = 10**QUOTE_DECIMALS

MAX_LOOP_COUNT = 10
# Hard cap on supply/borrow/swap iterations per deposit
MAX_SLIPPAGE_BPS = 5_000
# Hard cap on swap slippage tolerance (50%)


@dataclass(frozen=True)
class StrategyConfig:
    """Loop sizing and solvency floor."""
    target_ltv_bps: int = 7_000
    # Borrow sizing per loop iteration (70% of the supplied slice)
    max_ltv_bps: int = 8_000
    # Hard ceiling; target_ltv_bps must stay strictly below it
    loop_count: int = 3
    # Conservative default; bounded by MAX_LOOP_COUNT
    slippage_tolerance_bps: int = 100
    # min_out = quote * (1 - 1%)
    min_health_factor: int = 105 * WAD // 100
    # 1.05x floor enforced after every loop / unwind step


@dataclass(frozen=True)
class ConversionParams:
    """Virtual offsets for share/asset conversion (inflation-attack resistance)."""
    share_offset: int = 10**8
    # Large virtual share supply; dilutes donations to the pool
    asset_offset: int = 1
    # Small virtual asset balance; keeps the denominator non-zero
    scale: int = WAD
    # Fixed-point scale of share_price()


@dataclass(frozen=True)
class UnwindParams:
    """Unwind buffers, budgets and dust thresholds (empirically tuned)."""
    full_withdrawal_threshold_bps: int = 9_500
    # Requests >= 95% of net value take the full-unwind path
    max_iterations: int = 30
    # Withdraw/swap/repay rounds before giving up
    max_retry_attempts: int = 4
    # Shrinking retries per failed withdraw/swap step
    retry_shrink_bps: int = 5_000
    # Each retry halves the step size
    withdraw_buffer_bps: int = 11_000
    # Full unwind withdraws 110% of the base cost of live debt per round
    health_factor_buffer_bps: int = 100
    # Safe withdrawals keep HF 1% above the configured floor
    dust_value: int = QUOTE_UNIT
    # Debt below $1 of quote value is treated as cleared
    fallback_premium_bps: int = 1_000
    # Unwind cost premium (10%) when the swap venue cannot quote


@dataclass(frozen=True)
class FeeParams:
    """Performance fee charged on share-price gains above the high-water mark."""
    performance_fee_bps: int = 0
    fee_recipient: str = ""
    max_performance_fee_bps: int = 5_000


@dataclass(frozen=True)
class ReserveConfig:
    """Per-asset risk parameters of the simulated lending pool."""
    ltv_bps: int = 8_000
    # Max borrow power per unit of collateral value
    liquidation_threshold_bps: int = 8_500
    # HF = sum(collateral_value * LT) / debt_value


@dataclass(frozen=True)
class InterestRateParams:
    """Two-slope variable borrow rate of the simulated lending pool."""
    base_rate: float = 0.0
    # Source: Aave V3 DefaultReserveInterestRateStrategyV2
    slope1: float = 0.027
    # Below the kink
    slope2: float = 0.80
    # Above the kink
    optimal_utilization: float = 0.90
    # Utilization at the kink


def _env_int(name: str, default: int) -> int:
    """Read an integer override, keeping the default when unset or blank."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw.replace("_", ""))
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_wad(name: str, default: int) -> int:
    """Read a decimal override (e.g. '1.1') into WAD fixed point."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        whole, _, frac = raw.partition(".")
        frac = (frac + "0" * 18)[:18]
        return int(whole or "0") * WAD + int(frac or "0")
    except ValueError as exc:
        raise ValueError(f"{name} must be a decimal number, got {raw!r}") from exc


def load_params(env_file: str | Path | None = None) -> dict:
    """
    Load parameter sets with environment overrides.

    Reads `.env` (or `env_file`) via python-dotenv, then applies LOOP_*
    variables on top of the module defaults. Validation of strategy bounds is
    left to StrategyParameterStore so a bad override fails at construction.
    """
    load_dotenv(env_file)

    strategy = replace(
        STRATEGY,
        target_ltv_bps=_env_int("LOOP_TARGET_LTV_BPS", STRATEGY.target_ltv_bps),
        max_ltv_bps=_env_int("LOOP_MAX_LTV_BPS", STRATEGY.max_ltv_bps),
        loop_count=_env_int("LOOP_COUNT", STRATEGY.loop_count),
        slippage_tolerance_bps=_env_int("LOOP_SLIPPAGE_BPS", STRATEGY.slippage_tolerance_bps),
        min_health_factor=_env_wad("LOOP_MIN_HEALTH_FACTOR", STRATEGY.min_health_factor),
    )
    unwind = replace(
        UNWIND,
        max_iterations=_env_int("LOOP_UNWIND_MAX_ITERATIONS", UNWIND.max_iterations),
        withdraw_buffer_bps=_env_int("LOOP_UNWIND_BUFFER_BPS", UNWIND.withdraw_buffer_bps),
        dust_value=_env_int("LOOP_DUST_VALUE", UNWIND.dust_value),
        fallback_premium_bps=_env_int("LOOP_FALLBACK_PREMIUM_BPS", UNWIND.fallback_premium_bps),
    )
    fees = replace(
        FEES,
        performance_fee_bps=_env_int("LOOP_PERFORMANCE_FEE_BPS", FEES.performance_fee_bps),
        fee_recipient=(os.getenv("LOOP_FEE_RECIPIENT") or FEES.fee_recipient).strip(),
    )

    return {
        "strategy": strategy,
        "conversion": CONVERSION,
        "unwind": unwind,
        "fees": fees,
    }


# Convenient default instances (used throughout codebase)
STRATEGY = StrategyConfig()
CONVERSION = ConversionParams()
UNWIND = UnwindParams()
FEES = FeeParams()
RESERVE = ReserveConfig()
RATES = InterestRateParams()
