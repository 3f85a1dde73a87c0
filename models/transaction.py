"""
All-or-nothing execution over snapshottable participants.

Every participant is snapshotted on entry; if an exception escapes the block
they are restored in reverse order and the exception propagates unchanged.
"""

from __future__ import annotations

import logging
from typing import Iterable

from models.interfaces import Snapshottable

LOGGER = logging.getLogger(__name__)


class Transaction:
    """Context manager implementing snapshot / restore-on-failure."""

    def __init__(self, participants: Iterable[Snapshottable], label: str = "operation"):
        self.label = label
        self._participants = list(participants)
        self._states: list[tuple[Snapshottable, object]] = []

    def __enter__(self) -> "Transaction":
        self._states = [(p, p.snapshot()) for p in self._participants]
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            for participant, state in reversed(self._states):
                participant.restore(state)
            LOGGER.warning("%s rolled back: %s", self.label, exc)
        self._states = []
        return False
