"""
Error taxonomy for vault operations.

- ValidationError: rejected before any external call, no side effects
- SolvencyError: health factor below floor; the operation is rolled back
- VenueError / LiquidityError: a collaborator refused or under-delivered;
  absorbed where a safe degraded outcome exists
- ReentrancyError: nested vault operation on the same instance
"""


class StrategyError(Exception):
    """Base class for all vault/strategy failures."""


class ValidationError(StrategyError, ValueError):
    """Bad parameters or amounts."""


class SolvencyError(StrategyError):
    """Health factor would end below the configured floor."""

    def __init__(self, health_factor: int, floor: int, context: str = ""):
        self.health_factor = health_factor
        self.floor = floor
        prefix = f"{context}: " if context else ""
        super().__init__(
            f"{prefix}health factor {health_factor / 1e18:.4f} "
            f"below floor {floor / 1e18:.4f}"
        )


class VenueError(StrategyError):
    """A lending venue, swap venue or oracle refused the call."""


class LiquidityError(VenueError):
    """Not enough liquidity to complete the requested amount."""


class InsufficientLiquidityError(LiquidityError):
    """Venue reserves cannot cover the request."""


class SlippageExceededError(LiquidityError):
    """Swap output fell below the minimum-output floor."""


class UnwindFailedError(LiquidityError):
    """Unwind could not free any collateral."""


class ReentrancyError(StrategyError):
    """A vault operation was entered while another one was running."""
