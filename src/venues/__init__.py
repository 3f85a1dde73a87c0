"""In-memory lending, swap, oracle and token collaborators."""

from .lending_pool import InterestRateModel, SimulatedLendingPool
from .oracle import StaticPriceOracle
from .sandbox import WETH, WSTETH, Sandbox, build_sandbox
from .stableswap import StableSwapPool
from .token_ledger import TokenLedger

__all__ = [
    "InterestRateModel",
    "Sandbox",
    "SimulatedLendingPool",
    "StableSwapPool",
    "StaticPriceOracle",
    "TokenLedger",
    "WETH",
    "WSTETH",
    "build_sandbox",
]
