"""Validated, atomically-updated strategy configuration."""

from __future__ import annotations

import logging
from dataclasses import replace

from config.params import BPS, MAX_LOOP_COUNT, MAX_SLIPPAGE_BPS, STRATEGY, WAD, StrategyConfig
from models.errors import ValidationError

LOGGER = logging.getLogger(__name__)


def _require_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    return value


def validate_config(config: StrategyConfig) -> None:
    """Raise ValidationError unless every bound holds."""
    target = _require_int("target_ltv_bps", config.target_ltv_bps)
    max_ltv = _require_int("max_ltv_bps", config.max_ltv_bps)
    loops = _require_int("loop_count", config.loop_count)
    slippage = _require_int("slippage_tolerance_bps", config.slippage_tolerance_bps)
    min_hf = _require_int("min_health_factor", config.min_health_factor)

    if not 0 < max_ltv < BPS:
        raise ValidationError(f"max_ltv_bps must be in (0, {BPS}), got {max_ltv}")
    if target < 0:
        raise ValidationError(f"target_ltv_bps must be non-negative, got {target}")
    if target >= max_ltv:
        raise ValidationError(
            f"target_ltv_bps ({target}) must be below max_ltv_bps ({max_ltv})"
        )
    if loops < 1 or loops > MAX_LOOP_COUNT:
        raise ValidationError(f"loop_count must be in [1, {MAX_LOOP_COUNT}], got {loops}")
    if slippage < 0 or slippage > MAX_SLIPPAGE_BPS:
        raise ValidationError(
            f"slippage_tolerance_bps must be in [0, {MAX_SLIPPAGE_BPS}], got {slippage}"
        )
    if min_hf < WAD:
        raise ValidationError("min_health_factor must be at least 1.0 (WAD)")


class StrategyParameterStore:
    """
    Holds the current StrategyConfig.

    The config is frozen; set_parameters() validates a replacement and swaps
    it in whole, so a rejected update leaves every field untouched.
    """

    def __init__(self, config: StrategyConfig = STRATEGY):
        validate_config(config)
        self._config = config

    @property
    def config(self) -> StrategyConfig:
        return self._config

    @property
    def target_ltv_bps(self) -> int:
        return self._config.target_ltv_bps

    @property
    def max_ltv_bps(self) -> int:
        return self._config.max_ltv_bps

    @property
    def loop_count(self) -> int:
        return self._config.loop_count

    @property
    def slippage_tolerance_bps(self) -> int:
        return self._config.slippage_tolerance_bps

    @property
    def min_health_factor(self) -> int:
        return self._config.min_health_factor

    def set_parameters(self, target_ltv_bps: int, loop_count: int,
                       slippage_tolerance_bps: int) -> StrategyConfig:
        candidate = replace(
            self._config,
            target_ltv_bps=target_ltv_bps,
            loop_count=loop_count,
            slippage_tolerance_bps=slippage_tolerance_bps,
        )
        validate_config(candidate)
        self._config = candidate
        LOGGER.info(
            "Strategy parameters updated: target_ltv=%dbps loops=%d slippage=%dbps",
            target_ltv_bps, loop_count, slippage_tolerance_bps,
        )
        return candidate
