"""Identifier factories for sessions, schedule blocks, tips and log entries."""

import itertools
import uuid
from typing import Callable

IdFactory = Callable[[], str]


def uuid4_id() -> str:
    return str(uuid.uuid4())


class SequentialIds:
    """Deterministic ids ("tip-1", "tip-2", ...) for tests and replays."""

    def __init__(self, prefix: str = "id"):
        self.prefix = prefix
        self._counter = itertools.count(1)

    def __call__(self) -> str:
        return f"{self.prefix}-{next(self._counter)}"
