"""
Closed-form projections for the supply -> borrow -> swap loop.

With N iterations at loan-to-value r, and the final borrow left unswapped:

    collateral multiple  C/x = (1 - r^N) / (1 - r)
    debt multiple        D/x = r * (1 - r^N) / (1 - r)
    health factor        HF  = LT * C / D = LT / r

HF does not depend on N: every iteration adds collateral and debt in the same
ratio. These ignore swap fees and slippage, so realised leverage is slightly
below the projection.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from config.params import BPS


@dataclass(frozen=True)
class LoopProjection:
    """Projected position for a single deposit."""
    initial_amount: float
    target_ltv: float
    loop_count: int
    collateral: float
    debt: float
    leverage: float
    health_factor: float


def collateral_multiple(target_ltv: float | np.ndarray,
                        loop_count: int | np.ndarray) -> float | np.ndarray:
    """(1 - r^N) / (1 - r) for r in [0, 1)."""
    r = np.asarray(target_ltv, dtype=np.float64)
    n = np.asarray(loop_count, dtype=np.float64)
    if np.any((r < 0.0) | (r >= 1.0)):
        raise ValueError("target_ltv must be in [0, 1)")
    if np.any(n < 1):
        raise ValueError("loop_count must be at least 1")
    return (1.0 - r ** n) / (1.0 - r)


def debt_multiple(target_ltv: float | np.ndarray,
                  loop_count: int | np.ndarray) -> float | np.ndarray:
    """r * (1 - r^N) / (1 - r), in base-asset-equivalent terms."""
    r = np.asarray(target_ltv, dtype=np.float64)
    return r * collateral_multiple(r, loop_count)


def projected_health_factor(target_ltv: float | np.ndarray,
                            liquidation_threshold: float | np.ndarray) -> float | np.ndarray:
    """LT / r; infinite when nothing is borrowed."""
    r = np.asarray(target_ltv, dtype=np.float64)
    lt = np.asarray(liquidation_threshold, dtype=np.float64)
    with np.errstate(divide='ignore', invalid='ignore'):
        hf = lt / r
    return np.where(r <= 0.0, np.inf, hf)


def project_loops(initial_amount: float, target_ltv_bps: int, loop_count: int,
                  liquidation_threshold_bps: int) -> LoopProjection:
    """Project one deposit through the loop at basis-point parameters."""
    r = target_ltv_bps / BPS
    lt = liquidation_threshold_bps / BPS
    mult = float(collateral_multiple(r, loop_count))
    return LoopProjection(
        initial_amount=float(initial_amount),
        target_ltv=r,
        loop_count=int(loop_count),
        collateral=float(initial_amount) * mult,
        debt=float(initial_amount) * float(debt_multiple(r, loop_count)),
        leverage=mult,
        health_factor=float(projected_health_factor(r, lt)),
    )


def leverage_grid(target_ltvs: np.ndarray, loop_counts: np.ndarray) -> np.ndarray:
    """Collateral multiples for every (ltv, loop_count) pair: shape (n_ltv, n_loops)."""
    r = np.asarray(target_ltvs, dtype=np.float64)[:, None]
    n = np.asarray(loop_counts, dtype=np.float64)[None, :]
    return collateral_multiple(r, n)
