"""
Oracle conversions between token amounts and quote-unit values.

value  = amount * price / 10**decimals
amount = value * 10**decimals / price
"""

from models.errors import VenueError
from models.interfaces import PriceOracle
from models.types import Asset


def ceil_div(num: int, den: int) -> int:
    return -(-num // den)


def _price(oracle: PriceOracle, asset: Asset) -> int:
    price = int(oracle.get_price(asset))
    if price <= 0:
        raise VenueError(f"Oracle returned non-positive price for {asset.symbol}: {price}")
    return price


def value_of(oracle: PriceOracle, asset: Asset, amount: int, round_up: bool = False) -> int:
    """Quote-unit value of `amount` of `asset`."""
    if amount <= 0:
        return 0
    num = amount * _price(oracle, asset)
    return ceil_div(num, asset.unit) if round_up else num // asset.unit


def amount_for_value(oracle: PriceOracle, asset: Asset, value: int,
                     round_up: bool = False) -> int:
    """Amount of `asset` worth `value` quote units."""
    if value <= 0:
        return 0
    num = value * asset.unit
    price = _price(oracle, asset)
    return ceil_div(num, price) if round_up else num // price


def convert(oracle: PriceOracle, asset_in: Asset, asset_out: Asset, amount: int,
            round_up: bool = False) -> int:
    """Oracle-equivalent amount of `asset_out` for `amount` of `asset_in`."""
    if amount <= 0:
        return 0
    num = amount * _price(oracle, asset_in) * asset_out.unit
    den = asset_in.unit * _price(oracle, asset_out)
    return ceil_div(num, den) if round_up else num // den
