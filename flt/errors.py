"""Typed failures raised by the leverage engine and the simulated venues.

Every error aborts the operation in progress; the unit of work restores the
position and all venue balances before the exception reaches the caller.
"""
from __future__ import annotations


class LeverageError(Exception):
    """Base class for all engine failures."""


# ---------------------------------------------------------------------------
# Precondition violations: fatal, never retried
# ---------------------------------------------------------------------------


class PreconditionError(LeverageError):
    pass


class Uninitialized(PreconditionError):
    def __init__(self, message: str = "position is not initialized") -> None:
        super().__init__(message)


class AlreadyInitialized(PreconditionError):
    def __init__(self, message: str = "position is already initialized") -> None:
        super().__init__(message)


class EmptyPosition(PreconditionError):
    def __init__(self, message: str = "position has no shares outstanding") -> None:
        super().__init__(message)


class Unauthorized(PreconditionError):
    pass


class InvalidFlashSwapAmount(PreconditionError):
    def __init__(self, expected: int, received: int) -> None:
        super().__init__(f"flash swap delivered {received}, expected {expected}")
        self.expected = expected
        self.received = received


class InvalidFlashSwapType(PreconditionError):
    pass


# ---------------------------------------------------------------------------
# Economic-bound violations: caller recomputes and retries
# ---------------------------------------------------------------------------


class EconomicBoundError(LeverageError):
    pass


class AmountInTooLow(EconomicBoundError):
    pass


class AmountInTooHigh(EconomicBoundError):
    pass


class AmountOutTooLow(EconomicBoundError):
    pass


class AmountOutTooHigh(EconomicBoundError):
    pass


class NoNeedToRebalance(EconomicBoundError):
    pass


class SwapAmountTooLarge(EconomicBoundError):
    pass


class SlippageTooHigh(EconomicBoundError):
    pass


# ---------------------------------------------------------------------------
# External dependencies and arithmetic
# ---------------------------------------------------------------------------


class LendingMarketError(LeverageError):
    """A lending-market primitive returned a nonzero result code."""

    def __init__(self, action: str, code: int) -> None:
        super().__init__(f"lending market {action} failed with code {code}")
        self.action = action
        self.code = code


class GatewayError(LeverageError):
    """The flash swap was not repaid in full."""


class InsufficientBalance(LeverageError):
    def __init__(self, symbol: str, account: str, balance: int, amount: int) -> None:
        super().__init__(
            f"{account} holds {balance} {symbol}, cannot move {amount}"
        )
        self.symbol = symbol
        self.account = account


class InsolventPosition(LeverageError):
    """Collateral value no longer exceeds debt."""

    def __init__(self, collateral_value: int, debt: int) -> None:
        super().__init__(
            f"collateral value {collateral_value} does not exceed debt {debt}"
        )
        self.collateral_value = collateral_value
        self.debt = debt


class OracleNotConfigured(LeverageError):
    def __init__(self, token: str) -> None:
        super().__init__(f"no oracle price configured for {token}")
        self.token = token
