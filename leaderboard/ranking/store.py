"""Ranking store: player records, cached rankings, debounced persistence, change fan-out.

All public operations run to completion on the event loop thread without
yielding, so they are atomic with respect to each other. Disk writes happen
in a separately scheduled callback, never inside a mutation.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Iterable

from leaderboard.ranking.cache import Ranking, RankingCache
from leaderboard.ranking.sanitize import (
    clamp_top_limit,
    sanitize_id,
    sanitize_string,
    to_safe_score,
    to_safe_timestamp,
)
from leaderboard.ranking.season import Season, compute_season_window

logger = logging.getLogger(__name__)

STATE_VERSION = 1
SAVE_DEBOUNCE_SEC = 0.8

DEFAULT_NICKNAME = "Player"
DEFAULT_AVATAR = "default"
MAX_NICKNAME_LENGTH = 32
MAX_AVATAR_LENGTH = 32
MAX_SEASON_ID_LENGTH = 64


class LeaderboardError(Exception):
    status = 400
    code = "bad-request"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)


class InvalidPlayerId(LeaderboardError):
    status = 400
    code = "invalid-player-id"


@dataclass
class PlayerRecord:
    uid: str
    nickname: str
    avatar: str
    updatedAt: int
    gameScores: dict[str, int] = field(default_factory=dict)
    overallScore: int = 0


@dataclass
class StoreState:
    version: int
    revision: int
    updatedAt: int
    season: Season
    players: dict[str, PlayerRecord] = field(default_factory=dict)


@dataclass
class SyncResult:
    player_id: str
    overall_score: int
    has_meaningful_change: bool
    season: Season
    revision: int


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


def create_empty_state(now_ms: int) -> StoreState:
    return StoreState(
        version=STATE_VERSION,
        revision=1,
        updatedAt=now_ms,
        season=compute_season_window(now_ms),
        players={},
    )


def _normalize_game_scores(raw: Any) -> dict[str, int]:
    out: dict[str, int] = {}
    if not isinstance(raw, dict):
        return out
    for raw_game_id, raw_score in raw.items():
        game_id = sanitize_id(raw_game_id)
        score = to_safe_score(raw_score)
        if not game_id or score <= 0:
            continue
        out[game_id] = score
    return out


def normalize_state(raw: Any, now_ms: int) -> StoreState:
    """Rebuild a trusted StoreState from a decoded (untrusted) document."""
    fallback = create_empty_state(now_ms)
    if not isinstance(raw, dict):
        return fallback

    players: dict[str, PlayerRecord] = {}
    source_players = raw.get("players")
    if isinstance(source_players, dict):
        for raw_uid, raw_player in source_players.items():
            uid = sanitize_id(raw_uid)
            if not uid or not isinstance(raw_player, dict):
                continue
            scores = _normalize_game_scores(raw_player.get("gameScores"))
            players[uid] = PlayerRecord(
                uid=uid,
                nickname=sanitize_string(raw_player.get("nickname"), DEFAULT_NICKNAME, MAX_NICKNAME_LENGTH),
                avatar=sanitize_string(raw_player.get("avatar"), DEFAULT_AVATAR, MAX_AVATAR_LENGTH),
                updatedAt=to_safe_timestamp(raw_player.get("updatedAt"), now_ms),
                gameScores=scores,
                overallScore=sum(scores.values()),
            )

    raw_season = raw.get("season")
    if not isinstance(raw_season, dict):
        raw_season = {}
    season = Season(
        id=sanitize_string(raw_season.get("id"), fallback.season.id, MAX_SEASON_ID_LENGTH),
        startAt=to_safe_timestamp(raw_season.get("startAt"), fallback.season.startAt),
        endAt=to_safe_timestamp(raw_season.get("endAt"), fallback.season.endAt),
    )

    return StoreState(
        version=STATE_VERSION,
        revision=max(1, to_safe_timestamp(raw.get("revision"), 1)),
        updatedAt=to_safe_timestamp(raw.get("updatedAt"), fallback.updatedAt),
        season=season,
        players=players,
    )


def _unique_ids(raw_ids: Iterable[Any] | None) -> list[str]:
    out: list[str] = []
    for raw in raw_ids or ():
        game_id = sanitize_id(raw)
        if game_id and game_id not in out:
            out.append(game_id)
    return out


Listener = Callable[[dict[str, Any]], None]


class RankingStore:
    def __init__(
        self,
        backend,
        *,
        clock: Callable[[], int] | None = None,
        persist_delay: float = SAVE_DEBOUNCE_SEC,
    ):
        self.backend = backend
        self._clock = clock or _wall_clock_ms
        self.persist_delay = float(persist_delay)

        self.state = create_empty_state(self.now())
        self.cache = RankingCache()

        self._persist_handle: asyncio.TimerHandle | None = None
        self._subscribers: list[Listener] = []

    def now(self) -> int:
        return int(self._clock())

    @property
    def revision(self) -> int:
        return self.state.revision

    @property
    def persist_pending(self) -> bool:
        return self._persist_handle is not None

    # -- lifecycle -------------------------------------------------------

    def load(self) -> None:
        """Restore persisted state; any failure means starting fresh."""
        try:
            self.backend.init()
            raw = self.backend.load()
        except FileNotFoundError:
            logger.info("no persisted leaderboard state, starting fresh")
            self.state = create_empty_state(self.now())
        except Exception:
            logger.warning("failed to load leaderboard state, starting fresh", exc_info=True)
            self.state = create_empty_state(self.now())
        else:
            self.state = normalize_state(raw, self.now())

        self.ensure_active_season()
        self.invalidate_ranking_cache()

    def shutdown(self) -> None:
        if self._persist_handle is not None:
            self._persist_handle.cancel()
            self._persist_handle = None
        try:
            self.persist_now()
        except Exception:
            logger.warning("failed final persist of leaderboard state", exc_info=True)
        self.backend.close()

    # -- season ----------------------------------------------------------

    def ensure_active_season(self) -> bool:
        latest = compute_season_window(self.now())
        if self.state.season.id == latest.id:
            return False

        previous = self.state.season.id
        self.state = StoreState(
            version=STATE_VERSION,
            revision=self.state.revision + 1,
            updatedAt=self.now(),
            season=latest,
            players={},
        )
        logger.info("season rolled over %s -> %s (revision %d)", previous, latest.id, self.state.revision)
        self._commit()
        return True

    # -- writes ----------------------------------------------------------

    def sync_player(
        self,
        player_id: Any = None,
        nickname: Any = None,
        avatar: Any = None,
        game_scores: Any = None,
    ) -> SyncResult:
        """Merge a client report; scores only ever go up."""
        self.ensure_active_season()

        uid = sanitize_id(player_id)
        if not uid:
            raise InvalidPlayerId()

        safe_nickname = sanitize_string(nickname, DEFAULT_NICKNAME, MAX_NICKNAME_LENGTH)
        safe_avatar = sanitize_string(avatar, DEFAULT_AVATAR, MAX_AVATAR_LENGTH)
        incoming = game_scores if isinstance(game_scores, dict) else {}

        existing = self.state.players.get(uid) or PlayerRecord(
            uid=uid,
            nickname=safe_nickname,
            avatar=safe_avatar,
            updatedAt=self.now(),
        )

        changed = False
        next_scores = dict(existing.gameScores)
        for raw_game_id, raw_score in incoming.items():
            game_id = sanitize_id(raw_game_id)
            score = to_safe_score(raw_score)
            if not game_id or score <= 0:
                continue
            if score > to_safe_score(next_scores.get(game_id)):
                next_scores[game_id] = score
                changed = True

        if existing.nickname != safe_nickname or existing.avatar != safe_avatar:
            changed = True

        overall = sum(next_scores.values())
        # Aggregate check alongside the per-game flag.
        if overall != existing.overallScore:
            changed = True

        if changed:
            now = self.now()
            self.state.players[uid] = PlayerRecord(
                uid=uid,
                nickname=safe_nickname,
                avatar=safe_avatar,
                updatedAt=now,
                gameScores=next_scores,
                overallScore=overall,
            )
            self.state.revision += 1
            self.state.updatedAt = now
            self._commit()

        return SyncResult(
            player_id=uid,
            overall_score=overall,
            has_meaningful_change=changed,
            season=self.state.season,
            revision=self.state.revision,
        )

    def _commit(self) -> None:
        self.invalidate_ranking_cache()
        self.schedule_persist()
        self.notify_subscribers()

    # -- reads -----------------------------------------------------------

    def invalidate_ranking_cache(self) -> None:
        self.cache.clear()

    def overall_ranking(self) -> Ranking:
        return self.cache.overall(self.state.players, self.state.revision)

    def game_ranking(self, game_id: Any) -> Ranking:
        return self.cache.game(sanitize_id(game_id), self.state.players, self.state.revision)

    def get_snapshot(
        self,
        game_ids: Iterable[Any] | None = None,
        player_id: Any = None,
        top_limit: Any = None,
    ) -> dict[str, Any]:
        self.ensure_active_season()

        limit = clamp_top_limit(top_limit)
        uid = sanitize_id(player_id)
        overall = self.overall_ranking()

        games = {}
        for game_id in _unique_ids(game_ids):
            ranking = self.game_ranking(game_id)
            games[game_id] = {"top": ranking.top(limit), "my": ranking.lookup(uid)}

        return {
            "enabled": True,
            "season": asdict(self.state.season),
            "revision": self.state.revision,
            "generatedAt": self.now(),
            "overallTop": overall.top(limit),
            "myOverall": overall.lookup(uid),
            "games": games,
        }

    def status(self) -> dict[str, Any]:
        return {
            "revision": self.state.revision,
            "season": asdict(self.state.season),
            "updatedAt": self.state.updatedAt,
        }

    # -- persistence -----------------------------------------------------

    def to_document(self) -> dict[str, Any]:
        return asdict(self.state)

    def persist_now(self) -> None:
        self.backend.save(self.to_document())

    def schedule_persist(self) -> None:
        if self._persist_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop to own a timer (offline tooling): write through.
            self._persist_safely()
            return
        self._persist_handle = loop.call_later(self.persist_delay, self._flush_pending)

    def _flush_pending(self) -> None:
        self._persist_handle = None
        self._persist_safely()

    def _persist_safely(self) -> None:
        try:
            self.persist_now()
        except Exception:
            # Memory stays authoritative; the next mutation reschedules.
            logger.warning("failed to persist leaderboard store", exc_info=True)

    # -- fan-out ---------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        if not callable(listener):
            return lambda: None
        self._subscribers.append(listener)

        def unsubscribe() -> None:
            if listener in self._subscribers:
                self._subscribers.remove(listener)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def notify_subscribers(self) -> None:
        payload = {
            "revision": self.state.revision,
            "season": asdict(self.state.season),
            "updatedAt": self.now(),
        }
        for listener in list(self._subscribers):
            try:
                listener(payload)
            except Exception:
                logger.warning("leaderboard subscriber failed", exc_info=True)
