"""
Two-asset Curve StableSwap pool with rate scaling.

Balances are normalised by a per-asset rate (x_i = balance_i * rate_i / unit_i)
so a wrapped asset trading at a fixed ratio to its pair behaves like a pegged
pair. Output is solved on the invariant

    A*n²*(x+y) + D = A*n²*D + D³/(n²*x*y)        n = 2

and the fee is taken from the output side before de-normalising.
"""

from __future__ import annotations

import logging

import numpy as np

from config.params import BPS
from models.errors import InsufficientLiquidityError, SlippageExceededError, ValidationError, VenueError
from models.types import Asset
from .token_ledger import TokenLedger

LOGGER = logging.getLogger(__name__)


def _solve_d(x: float, y: float, ann: float) -> float:
    """Newton on f(D) = Ann*S + D - Ann*D - D³/(4xy), starting from D = S."""
    s = x + y
    xy4 = 4.0 * x * y
    d = s
    for _ in range(64):
        f = ann * s + d - ann * d - d ** 3 / xy4
        df = 1.0 - ann - 3.0 * d * d / xy4
        step = f / df
        d -= step
        if abs(step) <= 1e-12 * d:
            break
    return d


def _solve_y(x_new: float, d: float, ann: float) -> float:
    """Positive root of y² + (x_new + D/Ann - D)*y - D³/(4*x_new*Ann) = 0."""
    b = x_new + d / ann - d
    c = d ** 3 / (4.0 * x_new * ann)
    root = (b * b + 4.0 * c) ** 0.5
    # Pick the form without cancellation
    if b <= 0:
        return (root - b) / 2.0
    return 2.0 * c / (b + root)


class StableSwapPool:
    """Swap venue over a TokenLedger; pool reserves are the ledger balances of `address`."""

    def __init__(self, tokens: TokenLedger, asset_a: Asset, asset_b: Asset,
                 rates: dict[Asset, float] | None = None,
                 amplification: float = 100.0, fee_bps: int = 4,
                 account: str = "vault", address: str = "swap-pool"):
        if amplification <= 1:
            raise ValidationError("amplification must be greater than 1")
        if not 0 <= fee_bps < BPS:
            raise ValidationError("fee_bps must be in [0, 10000)")
        self.tokens = tokens
        self.assets = (asset_a, asset_b)
        self.rates = {asset_a: 1.0, asset_b: 1.0}
        self.rates.update(rates or {})
        self.A = float(amplification)
        self.fee_bps = fee_bps
        self.account = account
        self.address = address

    def _check_pair(self, asset_in: Asset, asset_out: Asset) -> None:
        if asset_in == asset_out or {asset_in, asset_out} != set(self.assets):
            raise VenueError(f"pool does not trade {asset_in.symbol}->{asset_out.symbol}")

    def _normalised(self, asset: Asset, amount: int) -> float:
        return amount * self.rates[asset] / asset.unit

    def reserves(self) -> dict[Asset, int]:
        return {asset: self.tokens.balance_of(asset, self.address) for asset in self.assets}

    def _output(self, asset_in: Asset, asset_out: Asset, amount_in: int) -> int:
        x = self._normalised(asset_in, self.tokens.balance_of(asset_in, self.address))
        y = self._normalised(asset_out, self.tokens.balance_of(asset_out, self.address))
        if amount_in <= 0 or x <= 0 or y <= 0:
            return 0

        ann = 4.0 * self.A
        y_new = _solve_y(x + self._normalised(asset_in, amount_in), _solve_d(x, y, ann), ann)
        dy = y - y_new
        if dy <= 0:
            return 0
        dy -= dy * self.fee_bps / BPS
        out = int(dy * asset_out.unit / self.rates[asset_out])
        return max(0, min(out, self.tokens.balance_of(asset_out, self.address) - 1))

    def quote(self, asset_in: Asset, asset_out: Asset, amount_in: int) -> int:
        self._check_pair(asset_in, asset_out)
        return self._output(asset_in, asset_out, amount_in)

    def exchange(self, asset_in: Asset, asset_out: Asset, amount_in: int, min_out: int) -> int:
        self._check_pair(asset_in, asset_out)
        if amount_in <= 0:
            raise ValidationError(f"amount_in must be positive, got {amount_in}")
        out = self._output(asset_in, asset_out, amount_in)
        if out <= 0:
            raise InsufficientLiquidityError(
                f"pool cannot pay out any {asset_out.symbol} for {amount_in} {asset_in.symbol}"
            )
        if out < min_out:
            raise SlippageExceededError(
                f"{asset_in.symbol}->{asset_out.symbol} output {out} below minimum {min_out}"
            )
        self.tokens.transfer_from(asset_in, self.address, self.account, self.address, amount_in)
        self.tokens.transfer(asset_out, self.address, self.account, out)
        LOGGER.debug("Swapped %d %s for %d %s", amount_in, asset_in.symbol, out, asset_out.symbol)
        return out

    def price_impact(self, asset_in: Asset, asset_out: Asset,
                     sizes: np.ndarray) -> np.ndarray:
        """
        Fractional shortfall against the rate-implied output for each trade
        size (independent trades against current reserves, fee included).
        """
        self._check_pair(asset_in, asset_out)
        impacts = np.zeros(len(sizes))
        for i, size in enumerate(sizes):
            size = int(size)
            if size <= 0:
                continue
            fair = self._normalised(asset_in, size) / self.rates[asset_out] * asset_out.unit
            out = self._output(asset_in, asset_out, size)
            impacts[i] = max(0.0, 1.0 - out / fair)
        return impacts

    def snapshot(self):
        return (self.A, self.fee_bps, dict(self.rates))

    def restore(self, state) -> None:
        self.A, self.fee_bps, rates = state
        self.rates = dict(rates)
