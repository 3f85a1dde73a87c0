"""Shared fixtures: a funded sandbox and a vault running five loops at 70% LTV."""

import pytest

from config.params import WAD, StrategyConfig
from models.strategy_params import StrategyParameterStore
from models.vault import LeveragedVault
from src.venues import build_sandbox

UNIT = 10**18
ALICE = "alice"
BOB = "bob"

TEST_CONFIG = StrategyConfig(
    target_ltv_bps=7_000,
    max_ltv_bps=8_000,
    loop_count=5,
    slippage_tolerance_bps=100,
    min_health_factor=105 * WAD // 100,
)


@pytest.fixture
def sandbox():
    box = build_sandbox()
    box.fund(ALICE, 1_000 * UNIT)
    box.fund(BOB, 1_000 * UNIT)
    return box


@pytest.fixture
def store():
    return StrategyParameterStore(TEST_CONFIG)


@pytest.fixture
def vault(sandbox, store):
    return LeveragedVault(sandbox.context, store)
