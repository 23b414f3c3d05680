"""Smoke-check a running leaderboard server.

Usage:
  python tools/check_api.py [base_url]

Checks health, a sync + snapshot round trip for a synthetic player, and that
the event stream opens with a `ready` event. Exit code 1 on failure.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import time

import aiohttp

DEFAULT_BASE_URL = "http://127.0.0.1:3001"
SSE_TIMEOUT_SEC = 3.0


def _color(text: str, code: int) -> str:
    return f"\x1b[{code}m{text}\x1b[0m"


def ok(text: str) -> str:
    return _color(f"OK   {text}", 32)


def warn(text: str) -> str:
    return _color(f"WARN {text}", 33)


def fail(text: str) -> str:
    return _color(f"FAIL {text}", 31)


class CheckError(Exception):
    pass


async def request_json(session: aiohttp.ClientSession, method: str, path: str, **kwargs):
    async with session.request(method, path, **kwargs) as resp:
        text = await resp.text()
        try:
            data = json.loads(text) if text else {}
        except ValueError:
            snippet = " ".join(text[:120].split())
            raise CheckError(f"{resp.status} non-json response from {path}: {snippet}")
        if resp.status >= 400:
            err = data.get("error") if isinstance(data, dict) else None
            raise CheckError(f"{resp.status} {err or resp.reason}")
        return data


async def check_health(session: aiohttp.ClientSession) -> dict:
    health = await request_json(session, "GET", "/api/health")
    if not health.get("ok"):
        raise CheckError("health response missing ok=true")
    season = (health.get("season") or {}).get("id") or "-"
    print(ok(f"health revision={health.get('revision')}, season={season}"))
    return health


async def check_sync_and_snapshot(session: aiohttp.ClientSession) -> None:
    player_id = f"check-{int(time.time() * 1000)}"
    await request_json(
        session,
        "POST",
        "/api/leaderboard/sync",
        json={
            "playerId": player_id,
            "nickname": "Checker",
            "avatar": "default",
            "gameScores": {"neon-block": 1234, "neon-survivor": 5678},
        },
    )
    snapshot = await request_json(
        session,
        "GET",
        "/api/leaderboard/snapshot",
        params={"playerId": player_id, "gameIds": "neon-block,neon-survivor", "topLimit": "5"},
    )
    if not snapshot.get("enabled"):
        raise CheckError("snapshot enabled=false")
    mine = snapshot.get("myOverall") or {}
    if not isinstance(mine.get("rank"), int):
        raise CheckError("snapshot missing myOverall.rank")
    print(ok(f"snapshot myOverall.rank={mine['rank']}, overallTop={len(snapshot.get('overallTop') or [])}"))


async def check_sse_handshake(session: aiohttp.ClientSession) -> None:
    async with session.get("/api/leaderboard/events") as resp:
        if resp.status != 200:
            raise CheckError(f"SSE open failed: {resp.status}")
        try:
            chunk = await asyncio.wait_for(resp.content.readany(), timeout=SSE_TIMEOUT_SEC)
        except asyncio.TimeoutError:
            raise CheckError("SSE first frame timeout")
        if b"event: ready" in chunk:
            print(ok("SSE ready event detected"))
        else:
            print(warn("SSE opened but ready event was not detected in first chunk"))


async def run(base_url: str) -> int:
    print(f"[check-leaderboard] base URL: {base_url}")
    try:
        async with aiohttp.ClientSession(base_url=base_url) as session:
            await check_health(session)
            await check_sync_and_snapshot(session)
            await check_sse_handshake(session)
    except (CheckError, aiohttp.ClientError) as e:
        print(fail(f"[check-leaderboard] {e}"))
        return 1
    print(ok("leaderboard API check passed"))
    return 0


def main() -> int:
    ap = argparse.ArgumentParser(description="Smoke-check the leaderboard API")
    ap.add_argument("base_url", nargs="?", default=DEFAULT_BASE_URL)
    args = ap.parse_args()
    return asyncio.run(run(args.base_url.rstrip("/")))


if __name__ == "__main__":
    raise SystemExit(main())
