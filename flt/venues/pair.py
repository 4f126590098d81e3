"""Constant-product pair with flash swaps.

Quotes use the usual x*y=k formulas with a 0.3% input fee. ``swap`` sends
the requested output first, calls the receiver back, then checks that the
fee-adjusted product of the new balances has not shrunk.
"""
from __future__ import annotations

import logging

from ..errors import GatewayError, SwapAmountTooLarge
from ..interfaces.flash_gateway import FlashSwapReceiver
from ..journal import UnitOfWork
from .token import Token

logger = logging.getLogger(__name__)

FEE_NUMERATOR = 997
FEE_DENOMINATOR = 1000


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> int:
    """Output received for ``amount_in`` after the input fee."""
    if amount_in <= 0:
        return 0
    amount_in_with_fee = amount_in * FEE_NUMERATOR
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * FEE_DENOMINATOR + amount_in_with_fee
    return numerator // denominator


def get_amount_in(amount_out: int, reserve_in: int, reserve_out: int) -> int:
    """Input required to receive exactly ``amount_out``, rounded up."""
    if amount_out <= 0:
        return 0
    if amount_out >= reserve_out:
        raise SwapAmountTooLarge(
            f"requested {amount_out} but the pool only holds {reserve_out}"
        )
    numerator = reserve_in * amount_out * FEE_DENOMINATOR
    denominator = (reserve_out - amount_out) * FEE_NUMERATOR
    return numerator // denominator + 1


class FlashSwapPair:
    """Two-token pool that lends either side for the duration of a callback."""

    def __init__(self, token0: Token, token1: Token, address: str = "pair") -> None:
        self.address = address
        self._tokens = {token0.symbol: token0, token1.symbol: token1}
        self._token0 = token0
        self._token1 = token1
        self.reserve0 = 0
        self.reserve1 = 0
        self._locked = False

    @property
    def token0(self) -> str:
        return self._token0.symbol

    @property
    def token1(self) -> str:
        return self._token1.symbol

    def add_liquidity(self, provider: str, amount0: int, amount1: int) -> None:
        self._token0.transfer(provider, self.address, amount0)
        self._token1.transfer(provider, self.address, amount1)
        self._sync()
        logger.info(
            "Pair %s/%s liquidity: %d / %d",
            self.token0, self.token1, self.reserve0, self.reserve1,
        )

    def _sync(self) -> None:
        self.reserve0 = self._token0.balance_of(self.address)
        self.reserve1 = self._token1.balance_of(self.address)

    def _reserves(self, token_in: str, token_out: str) -> tuple[int, int]:
        if (token_in, token_out) == (self.token0, self.token1):
            return self.reserve0, self.reserve1
        if (token_in, token_out) == (self.token1, self.token0):
            return self.reserve1, self.reserve0
        raise ValueError(f"pair does not trade {token_in}->{token_out}")

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    def quote_amount_in(self, token_in: str, token_out: str, amount_out: int) -> int:
        reserve_in, reserve_out = self._reserves(token_in, token_out)
        return get_amount_in(amount_out, reserve_in, reserve_out)

    def quote_amount_out(self, token_in: str, token_out: str, amount_in: int) -> int:
        reserve_in, reserve_out = self._reserves(token_in, token_out)
        return get_amount_out(amount_in, reserve_in, reserve_out)

    # ------------------------------------------------------------------
    # Swap
    # ------------------------------------------------------------------

    def swap(
        self,
        sender: str,
        amount0_out: int,
        amount1_out: int,
        to: FlashSwapReceiver,
        data: bytes,
    ) -> None:
        if self._locked:
            raise GatewayError("pair is locked")
        if amount0_out <= 0 and amount1_out <= 0:
            raise GatewayError("insufficient output amount")
        if amount0_out >= self.reserve0 or amount1_out >= self.reserve1:
            raise SwapAmountTooLarge(
                f"requested {amount0_out}/{amount1_out}, "
                f"reserves {self.reserve0}/{self.reserve1}"
            )

        self._locked = True
        try:
            with UnitOfWork([self, self._token0, self._token1], "swap"):
                recipient = getattr(to, "address", str(to))
                self._token0.transfer(self.address, recipient, amount0_out)
                self._token1.transfer(self.address, recipient, amount1_out)
                if data:
                    to.on_swap_callback(self, sender, amount0_out, amount1_out, data)

                balance0 = self._token0.balance_of(self.address)
                balance1 = self._token1.balance_of(self.address)
                amount0_in = max(0, balance0 - (self.reserve0 - amount0_out))
                amount1_in = max(0, balance1 - (self.reserve1 - amount1_out))
                if amount0_in <= 0 and amount1_in <= 0:
                    raise GatewayError("insufficient input amount")

                fee = FEE_DENOMINATOR - FEE_NUMERATOR
                adjusted0 = balance0 * FEE_DENOMINATOR - amount0_in * fee
                adjusted1 = balance1 * FEE_DENOMINATOR - amount1_in * fee
                if adjusted0 * adjusted1 < self.reserve0 * self.reserve1 * FEE_DENOMINATOR**2:
                    raise GatewayError("flash swap was not repaid")
        finally:
            self._locked = False

        self._sync()
        logger.debug(
            "Swap by %s: out %d/%d, reserves now %d/%d",
            sender, amount0_out, amount1_out, self.reserve0, self.reserve1,
        )

    # ------------------------------------------------------------------
    # Journaled
    # ------------------------------------------------------------------

    def snapshot(self) -> tuple[int, int]:
        return self.reserve0, self.reserve1

    def restore(self, state: tuple[int, int]) -> None:
        self.reserve0, self.reserve1 = state
        self._locked = False
