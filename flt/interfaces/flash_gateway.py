"""Flash-liquidity gateway protocol — borrow now, settle in the callback."""
from typing import Protocol


class FlashSwapReceiver(Protocol):
    """Contract a gateway calls back into during a flash swap."""

    def on_swap_callback(
        self,
        gateway: "FlashSwapGateway",
        sender: str,
        amount0: int,
        amount1: int,
        data: bytes,
    ) -> None: ...


class FlashSwapGateway(Protocol):
    """Abstract interface for a two-token pool offering flash swaps."""

    @property
    def token0(self) -> str: ...

    @property
    def token1(self) -> str: ...

    def swap(
        self,
        sender: str,
        amount0_out: int,
        amount1_out: int,
        to: FlashSwapReceiver,
        data: bytes,
    ) -> None: ...

    def quote_amount_in(self, token_in: str, token_out: str, amount_out: int) -> int: ...

    def quote_amount_out(self, token_in: str, token_out: str, amount_in: int) -> int: ...
