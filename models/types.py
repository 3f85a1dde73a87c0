"""Typed dataclasses for assets, venue account data, and loop/unwind outputs."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Asset:
    """Token identity; hashable so it can key venue bookkeeping."""

    symbol: str
    decimals: int = 18

    @property
    def unit(self) -> int:
        return 10**self.decimals


@dataclass(frozen=True)
class AccountData:
    """
    Lending-venue account summary.

    Values are in quote units (8 decimals); ltv and liquidation_threshold are
    value-weighted basis points; health_factor is WAD-scaled.
    """

    collateral_value: int
    debt_value: int
    available_borrow: int
    liquidation_threshold: int
    ltv: int
    health_factor: int


@dataclass(frozen=True)
class PositionMetrics:
    """Cached position totals exposed to vault callers."""

    collateral: int
    debt: int
    health_factor: int


@dataclass(frozen=True)
class WithdrawalRequest:
    """Ephemeral unwind request; not persisted."""

    target_assets: int
    total_value: int
    full_threshold_bps: int = 9_500

    @property
    def is_full_withdrawal(self) -> bool:
        if self.total_value <= 0:
            return self.target_assets > 0
        return self.target_assets * 10_000 >= self.total_value * self.full_threshold_bps


@dataclass(frozen=True)
class LoopStep:
    """One supply -> borrow -> swap iteration."""

    iteration: int
    supplied: int
    borrowed: int
    swapped_out: int = 0


@dataclass
class LoopResult:
    """Outcome of LeverageLoopController.execute_loops()."""

    initial_amount: int
    total_supplied: int = 0
    total_borrowed: int = 0
    health_factor: int = 0
    projected_leverage: float = 1.0
    stop_reason: str = "completed"
    steps: list[LoopStep] = field(default_factory=list)

    @property
    def iterations_completed(self) -> int:
        return len(self.steps)

    @property
    def realized_leverage(self) -> float:
        if self.initial_amount <= 0:
            return 0.0
        return self.total_supplied / self.initial_amount

    @property
    def stopped_early(self) -> bool:
        return self.stop_reason != "completed"


@dataclass(frozen=True)
class UnwindStep:
    """Position state after one unwind round (collateral/debt in native units)."""

    iteration: int
    withdrawn: int
    repaid: int
    collateral_after: int
    debt_after: int
    health_factor_after: int


@dataclass
class UnwindResult:
    """Outcome of UnwindEngine.unwind(); `freed` is authoritative."""

    requested: int
    full: bool
    freed: int = 0
    collateral_withdrawn: int = 0
    debt_repaid: int = 0
    remaining_debt_value: int = 0
    health_factor: int = 0
    liquidity_starved: bool = False
    steps: list[UnwindStep] = field(default_factory=list)

    @property
    def iterations(self) -> int:
        return len(self.steps)
