"""All-or-nothing unit of work over journaled components."""
from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Iterable

from .interfaces.journaled import Journaled

logger = logging.getLogger(__name__)


class UnitOfWork:
    """Snapshot every participant on entry, restore all of them on failure.

    Participants that do not implement ``Journaled`` are skipped; an external
    venue without snapshots must provide its own atomicity.
    """

    def __init__(self, participants: Iterable[Any], label: str = "") -> None:
        self.label = label
        self._participants = [p for p in participants if isinstance(p, Journaled)]
        self._snapshots: list[tuple[Journaled, Any]] = []

    def __enter__(self) -> UnitOfWork:
        self._snapshots = [(p, p.snapshot()) for p in self._participants]
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc_type is not None:
            for participant, state in reversed(self._snapshots):
                participant.restore(state)
            logger.warning("Rolled back %s: %s", self.label or "operation", exc)
        self._snapshots = []
        return False
