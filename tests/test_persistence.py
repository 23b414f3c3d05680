import asyncio
import json
import os

from leaderboard.ranking.store import RankingStore
from leaderboard.storage.json_file import JsonFileBackend
from leaderboard.storage.memory import MemoryBackend

DELAY = 0.05


class FailingBackend(MemoryBackend):
    def save(self, doc):
        raise OSError("disk full")


async def test_rapid_mutations_coalesce_into_one_write(backend, clock):
    store = RankingStore(backend, clock=clock, persist_delay=DELAY)
    store.load()

    for i in range(10):
        store.sync_player(player_id=f"p{i}", game_scores={"g": i + 1})

    assert backend.saves == 0
    assert store.persist_pending
    await asyncio.sleep(DELAY * 4)
    assert backend.saves == 1
    assert not store.persist_pending
    assert len(backend.last_saved["players"]) == 10


async def test_spaced_mutations_write_each_time(backend, clock):
    store = RankingStore(backend, clock=clock, persist_delay=DELAY)
    store.load()

    for i in range(3):
        store.sync_player(player_id="p1", game_scores={"g": i + 1})
        await asyncio.sleep(DELAY * 3)

    assert backend.saves == 3
    assert backend.last_saved["players"]["p1"]["gameScores"] == {"g": 3}


async def test_shutdown_flushes_pending_write(backend, clock):
    store = RankingStore(backend, clock=clock, persist_delay=10.0)
    store.load()
    store.sync_player(player_id="p1", game_scores={"g": 5})
    assert store.persist_pending

    store.shutdown()

    assert not store.persist_pending
    assert backend.saves == 1
    assert backend.last_saved["players"]["p1"]["overallScore"] == 5


async def test_persist_failure_is_logged_and_memory_stays_authoritative(clock, caplog):
    backend = FailingBackend()
    store = RankingStore(backend, clock=clock, persist_delay=DELAY)
    store.load()

    store.sync_player(player_id="p1", game_scores={"g": 5})
    await asyncio.sleep(DELAY * 4)

    assert "failed to persist" in caplog.text
    assert store.state.players["p1"].overallScore == 5
    assert not store.persist_pending

    store.sync_player(player_id="p1", game_scores={"g": 6})
    assert store.persist_pending


def test_persisted_document_has_no_cache(store):
    store.sync_player(player_id="p1", game_scores={"g": 5})
    store.overall_ranking()
    doc = store.to_document()
    assert set(doc) == {"version", "revision", "updatedAt", "season", "players"}
    assert doc["players"]["p1"] == {
        "uid": "p1",
        "nickname": "Player",
        "avatar": "default",
        "updatedAt": store.state.players["p1"].updatedAt,
        "gameScores": {"g": 5},
        "overallScore": 5,
    }


async def test_json_file_round_trip(tmp_path, clock):
    path = str(tmp_path / "data" / "leaderboard-store.json")

    store = RankingStore(JsonFileBackend(path), clock=clock, persist_delay=DELAY)
    store.load()
    store.sync_player(player_id="p1", nickname="Ann", game_scores={"neon-block": 500})
    store.shutdown()

    assert os.path.exists(path)
    assert not os.path.exists(path + ".tmp")
    with open(path, "r", encoding="utf-8") as f:
        on_disk = json.load(f)
    assert on_disk["players"]["p1"]["gameScores"] == {"neon-block": 500}

    reloaded = RankingStore(JsonFileBackend(path), clock=clock)
    reloaded.load()
    assert reloaded.revision == store.revision
    assert reloaded.state.players["p1"].nickname == "Ann"
    assert reloaded.get_snapshot(player_id="p1")["myOverall"]["rank"] == 1


def test_corrupt_file_starts_fresh(tmp_path, clock):
    path = tmp_path / "leaderboard-store.json"
    path.write_text("{not json", encoding="utf-8")

    store = RankingStore(JsonFileBackend(str(path)), clock=clock)
    store.load()

    assert store.state.players == {}
    assert store.revision == 1


def test_missing_file_starts_fresh_and_creates_parent(tmp_path, clock):
    path = tmp_path / "nested" / "dir" / "store.json"
    store = RankingStore(JsonFileBackend(str(path)), clock=clock)
    store.load()

    assert store.state.players == {}
    assert path.parent.is_dir()
