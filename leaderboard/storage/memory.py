"""In-memory persistence backend."""

from __future__ import annotations

import copy
from typing import Any


class MemoryBackend:
    def __init__(self, initial: dict[str, Any] | None = None):
        self._doc: dict[str, Any] | None = copy.deepcopy(initial) if initial is not None else None
        self.saves = 0

    def init(self) -> None:
        pass

    def close(self) -> None:
        pass

    def load(self) -> dict[str, Any]:
        if self._doc is None:
            raise FileNotFoundError("no saved leaderboard state")
        return copy.deepcopy(self._doc)

    def save(self, doc: dict[str, Any]) -> None:
        self._doc = copy.deepcopy(doc)
        self.saves += 1

    @property
    def last_saved(self) -> dict[str, Any] | None:
        return self._doc
