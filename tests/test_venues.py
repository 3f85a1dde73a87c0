"""Tests for the in-memory token, oracle, lending and swap venues."""

import numpy as np
import pytest

from config.params import MAX_UINT256, WAD, InterestRateParams, ReserveConfig
from models.errors import (
    InsufficientLiquidityError,
    SlippageExceededError,
    ValidationError,
    VenueError,
)
from models.types import Asset
from src.venues import (
    InterestRateModel,
    SimulatedLendingPool,
    StableSwapPool,
    StaticPriceOracle,
    TokenLedger,
    WETH,
    WSTETH,
)
from src.venues.stableswap import _solve_d, _solve_y

UNIT = 10**18


class TestTokenLedger:
    def setup_method(self):
        self.tokens = TokenLedger()
        self.tokens.mint(WETH, "alice", 10 * UNIT)

    def test_transfer(self):
        self.tokens.transfer(WETH, "alice", "bob", 4 * UNIT)
        assert self.tokens.balance_of(WETH, "alice") == 6 * UNIT
        assert self.tokens.balance_of(WETH, "bob") == 4 * UNIT

    def test_overdraft_refused(self):
        with pytest.raises(VenueError):
            self.tokens.transfer(WETH, "alice", "bob", 11 * UNIT)

    def test_transfer_from_spends_allowance(self):
        self.tokens.approve(WETH, "alice", "pool", 5 * UNIT)
        self.tokens.transfer_from(WETH, "pool", "alice", "pool", 3 * UNIT)
        assert self.tokens.allowance(WETH, "alice", "pool") == 2 * UNIT
        with pytest.raises(VenueError):
            self.tokens.transfer_from(WETH, "pool", "alice", "pool", 3 * UNIT)

    def test_infinite_allowance_not_decremented(self):
        self.tokens.approve(WETH, "alice", "pool", MAX_UINT256)
        self.tokens.transfer_from(WETH, "pool", "alice", "pool", UNIT)
        assert self.tokens.allowance(WETH, "alice", "pool") == MAX_UINT256

    def test_snapshot_restore(self):
        state = self.tokens.snapshot()
        self.tokens.transfer(WETH, "alice", "bob", UNIT)
        self.tokens.restore(state)
        assert self.tokens.balance_of(WETH, "alice") == 10 * UNIT
        assert self.tokens.balance_of(WETH, "bob") == 0

    def test_negative_amounts_rejected(self):
        with pytest.raises(ValidationError):
            self.tokens.mint(WETH, "alice", -1)
        with pytest.raises(ValidationError):
            self.tokens.approve(WETH, "alice", "pool", -1)


class TestStaticPriceOracle:
    def test_unknown_asset(self):
        with pytest.raises(VenueError):
            StaticPriceOracle().get_price(Asset("DAI"))

    def test_shock(self):
        oracle = StaticPriceOracle({WSTETH: 3_000 * 10**8})
        assert oracle.shock(WSTETH, -1_000) == 2_700 * 10**8
        assert oracle.get_price(WSTETH) == 2_700 * 10**8


class TestSimulatedLendingPool:
    def setup_method(self):
        self.tokens = TokenLedger()
        self.oracle = StaticPriceOracle({WSTETH: 3_000 * 10**8, WETH: 2_500 * 10**8})
        self.pool = SimulatedLendingPool(
            self.tokens, self.oracle, account="vault",
            reserves={WSTETH: ReserveConfig(ltv_bps=8_000, liquidation_threshold_bps=8_500)},
        )
        self.tokens.mint(WETH, self.pool.address, 1_000 * UNIT)
        self.tokens.mint(WSTETH, "vault", 10 * UNIT)
        self.tokens.approve(WSTETH, "vault", self.pool.address, MAX_UINT256)
        self.tokens.approve(WETH, "vault", self.pool.address, MAX_UINT256)
        self.pool.supply(WSTETH, 10 * UNIT)

    def test_account_data_without_debt(self):
        data = self.pool.get_account_data()
        assert data.collateral_value == 30_000 * 10**8
        assert data.debt_value == 0
        assert data.ltv == 8_000
        assert data.liquidation_threshold == 8_500
        assert data.available_borrow == 24_000 * 10**8
        assert data.health_factor == MAX_UINT256

    def test_health_factor_after_borrow(self):
        self.pool.borrow(WETH, 8 * UNIT)
        data = self.pool.get_account_data()
        # 30000 * 0.85 / 20000
        assert data.health_factor == 30_000 * 8_500 * WAD // (10_000 * 20_000)
        assert self.tokens.balance_of(WETH, "vault") == 8 * UNIT

    def test_borrow_above_ltv_refused(self):
        with pytest.raises(VenueError):
            self.pool.borrow(WETH, 10 * UNIT)

    def test_borrow_beyond_reserves_refused(self):
        with pytest.raises(InsufficientLiquidityError):
            self.pool.borrow(WETH, 2_000 * UNIT)

    def test_withdraw_below_hf_one_refused(self):
        self.pool.borrow(WETH, 9 * UNIT)
        with pytest.raises(VenueError):
            self.pool.withdraw(WSTETH, 2 * UNIT)

    def test_withdraw_max_without_debt(self):
        assert self.pool.withdraw(WSTETH, MAX_UINT256) == 10 * UNIT
        assert self.pool.collateral_of(WSTETH) == 0

    def test_repay_caps_at_debt(self):
        self.pool.borrow(WETH, 5 * UNIT)
        self.tokens.mint(WETH, "vault", 5 * UNIT)
        assert self.pool.repay(WETH, 10 * UNIT) == 5 * UNIT
        assert self.pool.debt_of(WETH) == 0
        assert self.pool.repay(WETH, UNIT) == 0

    def test_interest_accrues_on_debt(self):
        self.pool.borrow(WETH, 8 * UNIT)
        accrued = self.pool.accrue_interest(1.0)
        assert accrued[WETH] > 0
        assert self.pool.debt_of(WETH) == 8 * UNIT + accrued[WETH]

    def test_snapshot_restore(self):
        state = self.pool.snapshot()
        self.pool.borrow(WETH, UNIT)
        self.pool.restore(state)
        assert self.pool.debt_of(WETH) == 0


class TestInterestRateModel:
    def setup_method(self):
        self.model = InterestRateModel()

    def test_at_kink(self):
        assert float(self.model.borrow_rate(0.90)) == pytest.approx(0.027, rel=1e-6)

    def test_above_kink(self):
        # 0.027 + 0.80 * (0.95 - 0.90) / 0.10
        assert float(self.model.borrow_rate(0.95)) == pytest.approx(0.427, rel=1e-6)

    def test_vectorized_monotonic(self):
        rates = self.model.borrow_rate(np.linspace(0, 1, 50))
        assert np.all(np.diff(rates) >= 0)

    def test_below_kink_is_linear(self):
        assert float(self.model.borrow_rate(0.45)) == pytest.approx(0.0135, rel=1e-9)
        assert float(self.model.borrow_rate(0.0)) == 0.0

    def test_utilization_clipped(self):
        assert float(self.model.borrow_rate(1.5)) == pytest.approx(0.827, rel=1e-9)
        assert float(self.model.borrow_rate(-0.2)) == 0.0

    def test_kink_must_be_inside_unit_interval(self):
        with pytest.raises(ValidationError):
            InterestRateModel(InterestRateParams(optimal_utilization=1.0))


class TestStableSwapPool:
    def setup_method(self):
        self.tokens = TokenLedger()
        self.pool = StableSwapPool(
            self.tokens, WSTETH, WETH, rates={WSTETH: 1.2, WETH: 1.0},
            amplification=100, fee_bps=4, account="vault",
        )
        self.tokens.mint(WSTETH, self.pool.address, 100_000 * UNIT)
        self.tokens.mint(WETH, self.pool.address, 120_000 * UNIT)
        self.tokens.mint(WSTETH, "vault", 1_000 * UNIT)
        self.tokens.approve(WSTETH, "vault", self.pool.address, MAX_UINT256)

    def test_small_trade_clears_at_rate_less_fee(self):
        out = self.pool.quote(WSTETH, WETH, UNIT)
        assert out / UNIT == pytest.approx(1.2 * (1 - 0.0004), rel=1e-6)

    def test_exchange_moves_balances(self):
        out = self.pool.exchange(WSTETH, WETH, UNIT, 0)
        assert self.tokens.balance_of(WETH, "vault") == out
        assert self.tokens.balance_of(WSTETH, self.pool.address) == 100_001 * UNIT

    def test_min_out_enforced(self):
        quoted = self.pool.quote(WSTETH, WETH, UNIT)
        with pytest.raises(SlippageExceededError):
            self.pool.exchange(WSTETH, WETH, UNIT, quoted + 1)

    def test_drained_side_quotes_zero(self):
        self.tokens.burn(WETH, self.pool.address, 120_000 * UNIT)
        assert self.pool.quote(WSTETH, WETH, UNIT) == 0
        with pytest.raises(InsufficientLiquidityError):
            self.pool.exchange(WSTETH, WETH, UNIT, 0)

    def test_unknown_pair_refused(self):
        with pytest.raises(VenueError):
            self.pool.quote(WSTETH, Asset("DAI"), UNIT)

    def test_price_impact_grows_with_size(self):
        sizes = [n * UNIT for n in (1, 1_000, 20_000, 80_000)]
        impact = self.pool.price_impact(WSTETH, WETH, sizes)
        assert impact.shape == (4,)
        assert np.all(np.diff(impact) > 0)
        assert impact[0] == pytest.approx(0.0004, abs=1e-5)


class TestInvariantSolvers:
    def test_balanced_pool_invariant_is_sum(self):
        assert _solve_d(50_000.0, 50_000.0, 400.0) == pytest.approx(100_000.0, rel=1e-12)

    def test_imbalanced_invariant_below_sum(self):
        assert _solve_d(20_000.0, 120_000.0, 400.0) < 140_000.0

    def test_solved_balance_keeps_invariant(self):
        d = _solve_d(100_000.0, 120_000.0, 400.0)
        for x_new in (100_001.0, 130_000.0, 400_000.0):
            y_new = _solve_y(x_new, d, 400.0)
            assert 0 < y_new < 120_000.0
            assert _solve_d(x_new, y_new, 400.0) == pytest.approx(d, rel=1e-9)
