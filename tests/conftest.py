from __future__ import annotations

import pytest

from leaderboard.ranking.store import RankingStore
from leaderboard.storage.memory import MemoryBackend

# 2024-01-08T07:46:40Z, Monday 16:46 KST; inside season kst-week-2024-01-08.
BASE_MS = 1_704_700_000_000
# 2024-01-08T00:00:00Z == Monday 09:00 KST.
MONDAY_RESET_MS = 1_704_672_000_000


class FakeClock:
    def __init__(self, now_ms: int = BASE_MS):
        self.now_ms = int(now_ms)

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += int(ms)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend, clock) -> RankingStore:
    s = RankingStore(backend, clock=clock, persist_delay=0.05)
    s.load()
    return s
