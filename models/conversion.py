"""
Share/asset conversion with virtual offsets.

shares = assets * (total_shares + share_offset) / (total_assets + asset_offset)
assets = shares * (total_assets + asset_offset) / (total_shares + share_offset)

The large virtual share offset means a donation to an empty pool is mostly
captured by virtual shares, so an attacker cannot inflate the share price
enough to round an honest depositor down to zero. Truncation favours the
pool; round_up adds one unit when the division left a remainder.
"""

from config.params import CONVERSION, ConversionParams
from models.errors import ValidationError


def _check_non_negative(**values: int) -> None:
    for name, value in values.items():
        if value < 0:
            raise ValidationError(f"{name} must be non-negative, got {value}")


class ConversionEngine:
    """Pure integer conversion math; no external calls."""

    def __init__(self, params: ConversionParams = CONVERSION):
        if params.share_offset <= 0 or params.asset_offset <= 0:
            raise ValidationError("virtual offsets must be positive")
        if params.scale <= 0:
            raise ValidationError("scale must be positive")
        self.share_offset = params.share_offset
        self.asset_offset = params.asset_offset
        self.scale = params.scale

    def to_shares(self, assets: int, total_shares: int, total_assets: int,
                  round_up: bool = False) -> int:
        """Shares worth `assets` at the current totals."""
        _check_non_negative(assets=assets, total_shares=total_shares,
                            total_assets=total_assets)
        if assets == 0:
            return 0
        shares, remainder = divmod(
            assets * (total_shares + self.share_offset),
            total_assets + self.asset_offset,
        )
        if round_up and remainder:
            shares += 1
        return shares

    def to_assets(self, shares: int, total_shares: int, total_assets: int,
                  round_up: bool = False) -> int:
        """Assets backing `shares` at the current totals."""
        _check_non_negative(shares=shares, total_shares=total_shares,
                            total_assets=total_assets)
        if shares == 0:
            return 0
        assets, remainder = divmod(
            shares * (total_assets + self.asset_offset),
            total_shares + self.share_offset,
        )
        if round_up and remainder:
            assets += 1
        return assets

    def share_price(self, total_shares: int, total_assets: int) -> int:
        """Assets per share scaled by `scale`; exactly `scale` for an empty pool."""
        _check_non_negative(total_shares=total_shares, total_assets=total_assets)
        if total_shares == 0:
            return self.scale
        return ((total_assets + self.asset_offset) * self.scale
                // (total_shares + self.share_offset))

    def is_bootstrap_phase(self, total_shares: int) -> bool:
        """True until real shares outnumber the virtual share offset."""
        return total_shares < self.share_offset

    def estimate_attack_cost(self, target_ratio: int, total_shares: int,
                             total_assets: int) -> int:
        """
        Minimum donation that pushes share_price() to `target_ratio`.

        Monitoring aid only; never used to block operations.
        """
        _check_non_negative(target_ratio=target_ratio, total_shares=total_shares,
                            total_assets=total_assets)
        required = target_ratio * (total_shares + self.share_offset) // self.scale
        return max(0, required - (total_assets + self.asset_offset))
