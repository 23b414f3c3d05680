"""Revision-tagged ranking caches (overall + per game)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from leaderboard.ranking.sanitize import to_safe_score, to_safe_timestamp


@dataclass
class Ranking:
    revision: int
    entries: list[dict[str, Any]] = field(default_factory=list)
    rank_by_player: dict[str, dict[str, Any]] = field(default_factory=dict)

    def top(self, limit: int) -> list[dict[str, Any]]:
        return [dict(e) for e in self.entries[:limit]]

    def lookup(self, uid: str) -> dict[str, Any] | None:
        if not uid:
            return None
        entry = self.rank_by_player.get(uid)
        return dict(entry) if entry is not None else None


def rank_key(entry: dict[str, Any]) -> tuple[int, int, str]:
    # score desc, then earliest updatedAt, then uid.
    return (-entry["score"], entry["updatedAt"], entry["uid"])


def build_ranking(players: Iterable, score_of: Callable[[Any], Any], revision: int) -> Ranking:
    rows = []
    for p in players:
        score = to_safe_score(score_of(p))
        if score <= 0:
            continue
        rows.append(
            {
                "uid": p.uid,
                "nickname": p.nickname,
                "avatar": p.avatar,
                "score": score,
                "updatedAt": to_safe_timestamp(p.updatedAt, 0),
            }
        )
    rows.sort(key=rank_key)

    entries = [
        {
            "rank": i + 1,
            "uid": r["uid"],
            "nickname": r["nickname"],
            "avatar": r["avatar"],
            "score": r["score"],
        }
        for i, r in enumerate(rows)
    ]
    return Ranking(
        revision=revision,
        entries=entries,
        rank_by_player={e["uid"]: e for e in entries},
    )


class RankingCache:
    def __init__(self):
        self._overall: Ranking | None = None
        self._by_game: dict[str, Ranking] = {}
        self.rebuilds = 0

    def clear(self) -> None:
        self._overall = None
        self._by_game.clear()

    def overall(self, players: dict, revision: int) -> Ranking:
        cached = self._overall
        if cached is not None and cached.revision == revision:
            return cached
        self.rebuilds += 1
        self._overall = build_ranking(players.values(), lambda p: p.overallScore, revision)
        return self._overall

    def game(self, game_id: str, players: dict, revision: int) -> Ranking:
        if not game_id:
            return Ranking(revision=revision)
        cached = self._by_game.get(game_id)
        if cached is not None and cached.revision == revision:
            return cached
        self.rebuilds += 1
        ranking = build_ranking(players.values(), lambda p: p.gameScores.get(game_id), revision)
        self._by_game[game_id] = ranking
        return ranking
