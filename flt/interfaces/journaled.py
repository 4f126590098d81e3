"""Journaled protocol — state that can be captured and restored as a unit."""
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Journaled(Protocol):
    def snapshot(self) -> Any: ...

    def restore(self, state: Any) -> None: ...
