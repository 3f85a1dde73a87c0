"""Tests for strategy configuration validation and atomic updates."""

from dataclasses import replace

import pytest

from config.params import STRATEGY, WAD, StrategyConfig
from models.errors import ValidationError
from models.strategy_params import StrategyParameterStore, validate_config


class TestValidateConfig:
    def test_defaults_are_valid(self):
        validate_config(STRATEGY)

    @pytest.mark.parametrize("overrides", [
        {"target_ltv_bps": 8_000},                  # equal to max
        {"target_ltv_bps": 9_000},                  # above max
        {"target_ltv_bps": -1},
        {"max_ltv_bps": 10_000},
        {"max_ltv_bps": 0},
        {"loop_count": 0},
        {"loop_count": 11},
        {"slippage_tolerance_bps": 5_001},
        {"slippage_tolerance_bps": -1},
        {"min_health_factor": WAD - 1},
        {"loop_count": 2.5},
        {"loop_count": True},
    ])
    def test_out_of_bounds_rejected(self, overrides):
        with pytest.raises(ValidationError):
            validate_config(replace(STRATEGY, **overrides))

    def test_boundaries_accepted(self):
        validate_config(StrategyConfig(target_ltv_bps=0, loop_count=1, slippage_tolerance_bps=0))
        validate_config(StrategyConfig(target_ltv_bps=7_999, loop_count=10,
                                       slippage_tolerance_bps=5_000))


class TestParameterStore:
    def setup_method(self):
        self.store = StrategyParameterStore()

    def test_getters(self):
        assert self.store.target_ltv_bps == STRATEGY.target_ltv_bps
        assert self.store.max_ltv_bps == STRATEGY.max_ltv_bps
        assert self.store.loop_count == STRATEGY.loop_count
        assert self.store.slippage_tolerance_bps == STRATEGY.slippage_tolerance_bps
        assert self.store.min_health_factor == STRATEGY.min_health_factor

    def test_set_parameters_applies_all_three(self):
        updated = self.store.set_parameters(6_000, 5, 50)
        assert updated is self.store.config
        assert (self.store.target_ltv_bps, self.store.loop_count,
                self.store.slippage_tolerance_bps) == (6_000, 5, 50)
        assert self.store.max_ltv_bps == STRATEGY.max_ltv_bps

    def test_rejected_update_leaves_config_untouched(self):
        before = self.store.config
        with pytest.raises(ValidationError):
            # Valid ltv and slippage, invalid loop count
            self.store.set_parameters(6_000, 11, 50)
        assert self.store.config is before

    def test_target_must_stay_below_max(self):
        with pytest.raises(ValidationError):
            self.store.set_parameters(self.store.max_ltv_bps, 3, 100)

    def test_invalid_initial_config_rejected(self):
        with pytest.raises(ValueError):
            StrategyParameterStore(StrategyConfig(loop_count=0))
