"""Settable price oracle for offline runs and tests."""

from __future__ import annotations

from models.errors import VenueError
from models.types import Asset


class StaticPriceOracle:
    """Quote-unit (8 decimal) price per whole token; prices move only via set_price()."""

    def __init__(self, prices: dict[Asset, int] | None = None):
        self._prices: dict[Asset, int] = dict(prices or {})

    def set_price(self, asset: Asset, price: int) -> None:
        self._prices[asset] = int(price)

    def shock(self, asset: Asset, change_bps: int) -> int:
        """Move a price by `change_bps` (negative for a drop); returns the new price."""
        new_price = self.get_price(asset) * (10_000 + change_bps) // 10_000
        self.set_price(asset, new_price)
        return new_price

    def get_price(self, asset: Asset) -> int:
        try:
            return self._prices[asset]
        except KeyError:
            raise VenueError(f"no price for {asset.symbol}") from None

    def snapshot(self):
        return dict(self._prices)

    def restore(self, state) -> None:
        self._prices = dict(state)
