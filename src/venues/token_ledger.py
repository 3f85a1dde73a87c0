"""In-memory multi-asset token balances with ERC20-style allowances."""

from __future__ import annotations

import logging
from copy import deepcopy

from config.params import MAX_UINT256
from models.errors import ValidationError, VenueError
from models.types import Asset

LOGGER = logging.getLogger(__name__)


class TokenLedger:
    """
    Balances keyed by (asset, holder) and allowances keyed by
    (asset, owner, spender). An allowance of MAX_UINT256 is never decremented.
    """

    def __init__(self):
        self._balances: dict[tuple[Asset, str], int] = {}
        self._allowances: dict[tuple[Asset, str, str], int] = {}

    def mint(self, asset: Asset, holder: str, amount: int) -> None:
        if amount < 0:
            raise ValidationError(f"mint amount must be non-negative, got {amount}")
        key = (asset, holder)
        self._balances[key] = self._balances.get(key, 0) + amount

    def burn(self, asset: Asset, holder: str, amount: int) -> None:
        self._debit(asset, holder, amount)

    def balance_of(self, asset: Asset, holder: str) -> int:
        return self._balances.get((asset, holder), 0)

    def allowance(self, asset: Asset, owner: str, spender: str) -> int:
        return self._allowances.get((asset, owner, spender), 0)

    def approve(self, asset: Asset, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise ValidationError(f"allowance must be non-negative, got {amount}")
        self._allowances[(asset, owner, spender)] = amount

    def _debit(self, asset: Asset, holder: str, amount: int) -> None:
        balance = self.balance_of(asset, holder)
        if amount > balance:
            raise VenueError(
                f"{holder} holds {balance} {asset.symbol}, cannot move {amount}"
            )
        self._balances[(asset, holder)] = balance - amount

    def transfer(self, asset: Asset, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValidationError(f"transfer amount must be non-negative, got {amount}")
        self._debit(asset, sender, amount)
        self.mint(asset, recipient, amount)

    def transfer_from(self, asset: Asset, spender: str, owner: str,
                      recipient: str, amount: int) -> None:
        if spender != owner:
            allowed = self.allowance(asset, owner, spender)
            if amount > allowed:
                raise VenueError(
                    f"{spender} allowance over {owner}'s {asset.symbol} is {allowed}, "
                    f"needs {amount}"
                )
            if allowed != MAX_UINT256:
                self._allowances[(asset, owner, spender)] = allowed - amount
        self.transfer(asset, owner, recipient, amount)

    def snapshot(self):
        return deepcopy((self._balances, self._allowances))

    def restore(self, state) -> None:
        balances, allowances = deepcopy(state)
        self._balances = balances
        self._allowances = allowances
