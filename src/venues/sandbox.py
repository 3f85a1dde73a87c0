"""
Wire the in-memory venues into a StrategyContext for offline what-if runs.

The swap pool is seeded balanced in value, with its rate set from the oracle
ratio so that small trades clear at the oracle price less the fee.
"""

from __future__ import annotations

from dataclasses import dataclass

from config.params import MAX_UINT256, QUOTE_UNIT, RESERVE, ReserveConfig
from models.interfaces import StrategyContext
from models.types import Asset

from .lending_pool import SimulatedLendingPool
from .oracle import StaticPriceOracle
from .stableswap import StableSwapPool
from .token_ledger import TokenLedger

WSTETH = Asset("wstETH", 18)
WETH = Asset("WETH", 18)


@dataclass
class Sandbox:
    tokens: TokenLedger
    oracle: StaticPriceOracle
    lending: SimulatedLendingPool
    swap: StableSwapPool
    context: StrategyContext

    def fund(self, account: str, amount: int, asset: Asset | None = None) -> None:
        """Mint `amount` to `account` and approve the strategy holder to pull it."""
        asset = asset or self.context.base_asset
        self.tokens.mint(asset, account, amount)
        self.tokens.approve(asset, account, self.context.holder, MAX_UINT256)

    def drain_swap(self, asset: Asset) -> int:
        """Remove every unit of `asset` from the swap pool; returns the amount removed."""
        held = self.tokens.balance_of(asset, self.swap.address)
        self.tokens.burn(asset, self.swap.address, held)
        return held


def build_sandbox(base_asset: Asset = WSTETH, borrow_asset: Asset = WETH,
                  base_price: int = 3_000 * QUOTE_UNIT,
                  borrow_price: int = 2_500 * QUOTE_UNIT,
                  lending_liquidity: int = 1_000_000,
                  swap_depth: int = 100_000,
                  amplification: float = 100.0,
                  fee_bps: int = 4,
                  reserve: ReserveConfig = RESERVE,
                  holder: str = "vault") -> Sandbox:
    """
    `lending_liquidity` (borrow asset) and `swap_depth` (base asset) are in
    whole tokens.
    """
    tokens = TokenLedger()
    oracle = StaticPriceOracle({base_asset: base_price, borrow_asset: borrow_price})
    lending = SimulatedLendingPool(tokens, oracle, account=holder,
                                   reserves={base_asset: reserve})
    tokens.mint(borrow_asset, lending.address, lending_liquidity * borrow_asset.unit)

    swap = StableSwapPool(
        tokens, base_asset, borrow_asset,
        rates={base_asset: base_price / borrow_price, borrow_asset: 1.0},
        amplification=amplification, fee_bps=fee_bps, account=holder,
    )
    tokens.mint(base_asset, swap.address, swap_depth * base_asset.unit)
    tokens.mint(borrow_asset, swap.address,
                swap_depth * borrow_asset.unit * base_price // borrow_price)

    context = StrategyContext(
        lending=lending, oracle=oracle, swap=swap, tokens=tokens, holder=holder,
        base_asset=base_asset, borrow_asset=borrow_asset,
        lending_address=lending.address, swap_address=swap.address,
    )
    return Sandbox(tokens=tokens, oracle=oracle, lending=lending, swap=swap, context=context)
