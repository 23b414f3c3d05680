"""Request parsing + server-sent-event framing.

Wire format (SSE):
  event: update
  data: {"revision": 3, ...}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from leaderboard.ranking.store import LeaderboardError

MAX_BODY_SIZE = 128 * 1024


class ProtocolError(LeaderboardError):
    def __init__(self, code: str, status: int = 400):
        self.code = code
        self.status = status
        super().__init__(code)


def sse_event(name: str, data: dict[str, Any]) -> bytes:
    return f"event: {name}\ndata: {json.dumps(data, separators=(',', ':'))}\n\n".encode("utf-8")


def sse_comment(text: str) -> bytes:
    return f": {text}\n\n".encode("utf-8")


def loads_body(raw: bytes) -> Any:
    if len(raw) > MAX_BODY_SIZE:
        raise ProtocolError("request-body-too-large", status=413)
    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        return {}
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        raise ProtocolError("invalid-json")


def parse_game_ids(raw: Any) -> list[str]:
    if isinstance(raw, (list, tuple)):
        out = []
        for v in raw:
            out.extend(parse_game_ids(v if isinstance(v, str) else str(v or "")))
        return out
    if not isinstance(raw, str):
        return []
    return [v.strip() for v in raw.split(",") if v.strip()]


@dataclass
class SyncRequest:
    playerId: Any
    nickname: Any
    avatar: Any
    gameScores: Any

    @classmethod
    def parse(cls, data: Any) -> "SyncRequest":
        # Field values stay untrusted; the store sanitizes each one.
        if not isinstance(data, dict):
            data = {}
        return cls(
            playerId=data.get("playerId"),
            nickname=data.get("nickname"),
            avatar=data.get("avatar"),
            gameScores=data.get("gameScores"),
        )


@dataclass
class SnapshotQuery:
    playerId: str | None
    gameIds: list[str]
    topLimit: str | None

    @classmethod
    def parse(cls, query) -> "SnapshotQuery":
        return cls(
            playerId=query.get("playerId"),
            gameIds=parse_game_ids(list(query.getall("gameIds", []))),
            topLimit=query.get("topLimit"),
        )
