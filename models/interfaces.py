"""
Collaborator interfaces consumed by the loop/unwind core.

Lending venue, oracle, swap venue and token transfer are external; the core
only sees these shapes. Adapters raise VenueError (or a LiquidityError
subclass) when they refuse a call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from models.types import AccountData, Asset


class LendingVenue(Protocol):
    """Collateral/debt bookkeeping for the strategy account."""

    def supply(self, asset: Asset, amount: int) -> None:
        """Supply `amount` of `asset` as collateral (pulls via allowance)."""

    def withdraw(self, asset: Asset, amount: int) -> int:
        """Withdraw collateral; returns the amount actually withdrawn."""

    def borrow(self, asset: Asset, amount: int) -> None:
        """Borrow `amount` of `asset` against supplied collateral."""

    def repay(self, asset: Asset, amount: int) -> int:
        """Repay debt (pulls via allowance); returns the amount actually repaid."""

    def get_account_data(self) -> AccountData:
        """Live account summary: values, weighted LTV/LT, health factor."""


class PriceOracle(Protocol):
    """Spot price source, quote units per whole token."""

    def get_price(self, asset: Asset) -> int:
        """Return the price of one whole `asset` in quote units."""


class SwapVenue(Protocol):
    """Quote + execute exchanges between two assets."""

    def quote(self, asset_in: Asset, asset_out: Asset, amount_in: int) -> int:
        """Expected output for `amount_in`; no state change."""

    def exchange(self, asset_in: Asset, asset_out: Asset, amount_in: int,
                 min_out: int) -> int:
        """Execute the swap; raises SlippageExceededError below `min_out`."""


class TokenTransfer(Protocol):
    """ERC20-style transfer primitives across assets."""

    def balance_of(self, asset: Asset, holder: str) -> int:
        """Balance of `holder`."""

    def transfer(self, asset: Asset, sender: str, recipient: str, amount: int) -> None:
        """Move tokens owned by `sender`."""

    def transfer_from(self, asset: Asset, spender: str, owner: str,
                      recipient: str, amount: int) -> None:
        """Move tokens owned by `owner` using `spender`'s allowance."""

    def approve(self, asset: Asset, owner: str, spender: str, amount: int) -> None:
        """Set `spender`'s allowance over `owner`'s tokens."""

    def allowance(self, asset: Asset, owner: str, spender: str) -> int:
        """Remaining allowance."""


@runtime_checkable
class Snapshottable(Protocol):
    """State holder that can be captured and restored by a Transaction."""

    def snapshot(self) -> Any: ...

    def restore(self, state: Any) -> None: ...


@dataclass(frozen=True)
class StrategyContext:
    """
    Explicit bundle of collaborators and asset identities.

    Passed to every core component instead of shared global state.
    `holder` is the strategy account that owns idle balances and the
    lending position; `lending_address` / `swap_address` are the spenders
    the strategy approves before supply/repay/exchange.
    """

    lending: LendingVenue
    oracle: PriceOracle
    swap: SwapVenue
    tokens: TokenTransfer
    holder: str
    base_asset: Asset
    borrow_asset: Asset
    lending_address: str = "lending-pool"
    swap_address: str = "swap-pool"

    def idle_balance(self, asset: Asset | None = None) -> int:
        return self.tokens.balance_of(asset or self.base_asset, self.holder)

    def participants(self) -> list[Snapshottable]:
        """Collaborators whose state can be rolled back, deduplicated."""
        seen: set[int] = set()
        found: list[Snapshottable] = []
        for candidate in (self.tokens, self.lending, self.swap, self.oracle):
            if id(candidate) in seen:
                continue
            seen.add(id(candidate))
            if isinstance(candidate, Snapshottable):
                found.append(candidate)
        return found
