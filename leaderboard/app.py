"""HTTP + server-sent-events entrypoint for the global leaderboard.

This server intentionally does NOT serve the web client. Host it separately.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from typing import Any

from aiohttp import web

from leaderboard.config import ServerConfig
from leaderboard.net import protocol
from leaderboard.net.sse import HEARTBEAT_SEC, TRANSPORT_POLL_SEC, SseHub
from leaderboard.ranking.store import LeaderboardError, RankingStore
from leaderboard.storage.json_file import JsonFileBackend

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type,Accept",
}

_HTTP_ERROR_CODES = {
    404: "not-found",
    405: "method-not-allowed",
    413: "request-body-too-large",
}


class LeaderboardService:
    def __init__(
        self,
        config: ServerConfig,
        store: RankingStore | None = None,
        heartbeat_sec: float = HEARTBEAT_SEC,
        transport_poll_sec: float = TRANSPORT_POLL_SEC,
    ):
        self.config = config

        self.store = store or RankingStore(JsonFileBackend(config.data_file))
        self.hub = SseHub(self.store, cors_headers=CORS_HEADERS, transport_poll_sec=transport_poll_sec)

        self.heartbeat_sec = float(heartbeat_sec)
        self._running = False
        self._heartbeat_task: asyncio.Task | None = None

    async def start(self) -> None:
        self.store.load()
        self.hub.attach()
        self._running = True
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        logger.info(
            "leaderboard season %s, revision %d (%s)",
            self.store.state.season.id,
            self.store.revision,
            self.config.data_file,
        )

    async def stop(self) -> None:
        self._running = False
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

        self.hub.detach()
        await self.hub.close_all()
        self.store.shutdown()

    async def _heartbeat_loop(self) -> None:
        # Keeps idle streams alive through proxies.
        while self._running:
            await asyncio.sleep(self.heartbeat_sec)
            self.hub.heartbeat()

    def version_payload(self) -> dict[str, Any]:
        return {
            "service": "leaderboard-server",
            "serverVersion": self.config.server_version,
        }


def json_response(payload: Any, status: int = 200) -> web.Response:
    return web.json_response(payload, status=status, headers={"Cache-Control": "no-store"})


@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=CORS_HEADERS)

    resp = await handler(request)

    # Streams set their own headers before prepare(); they are already sent.
    if resp.prepared:
        return resp
    resp.headers.update(CORS_HEADERS)
    return resp


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except LeaderboardError as e:
        return json_response({"error": e.code}, status=e.status)
    except web.HTTPException as e:
        if e.status < 400:
            raise
        code = _HTTP_ERROR_CODES.get(e.status, e.reason.lower().replace(" ", "-"))
        return json_response({"error": code}, status=e.status)
    except Exception:
        logger.exception("request failed: %s %s", request.method, request.path)
        return json_response({"error": "internal-error"}, status=500)


async def read_json_body(request: web.Request) -> Any:
    try:
        raw = await request.read()
    except web.HTTPRequestEntityTooLarge:
        raise protocol.ProtocolError("request-body-too-large", status=413)
    return protocol.loads_body(raw)


def create_app(
    config: ServerConfig,
    store: RankingStore | None = None,
    heartbeat_sec: float = HEARTBEAT_SEC,
    transport_poll_sec: float = TRANSPORT_POLL_SEC,
) -> web.Application:
    app = web.Application(
        middlewares=[cors_middleware, error_middleware],
        client_max_size=protocol.MAX_BODY_SIZE + 1,
    )
    svc = LeaderboardService(
        config, store=store, heartbeat_sec=heartbeat_sec, transport_poll_sec=transport_poll_sec
    )

    app["config"] = config
    app["svc"] = svc

    async def on_startup(_: web.Application):
        await svc.start()

    async def on_shutdown(_: web.Application):
        # Ends open streams so graceful shutdown does not wait on them.
        await svc.hub.close_all()

    async def on_cleanup(_: web.Application):
        await svc.stop()

    app.on_startup.append(on_startup)
    app.on_shutdown.append(on_shutdown)
    app.on_cleanup.append(on_cleanup)

    async def root(_: web.Request):
        return json_response(
            {
                "ok": True,
                **svc.version_payload(),
                "endpoints": {
                    "health": "/api/health",
                    "sync": "/api/leaderboard/sync",
                    "snapshot": "/api/leaderboard/snapshot",
                    "events": "/api/leaderboard/events",
                },
            }
        )

    async def health(_: web.Request):
        return json_response({"ok": True, **svc.store.status()})

    async def sync(request: web.Request):
        req = protocol.SyncRequest.parse(await read_json_body(request))
        result = svc.store.sync_player(
            player_id=req.playerId,
            nickname=req.nickname,
            avatar=req.avatar,
            game_scores=req.gameScores,
        )
        return json_response(
            {
                "ok": True,
                "enabled": True,
                "revision": result.revision,
                "season": asdict(result.season),
                "player": {
                    "uid": result.player_id,
                    "overallScore": result.overall_score,
                },
            }
        )

    async def snapshot(request: web.Request):
        q = protocol.SnapshotQuery.parse(request.query)
        return json_response(
            svc.store.get_snapshot(game_ids=q.gameIds, player_id=q.playerId, top_limit=q.topLimit)
        )

    async def events(request: web.Request):
        return await svc.hub.handle(request)

    app.router.add_get("/", root)
    app.router.add_get("/api/health", health)
    app.router.add_post("/api/leaderboard/sync", sync)
    app.router.add_get("/api/leaderboard/snapshot", snapshot)
    app.router.add_get("/api/leaderboard/events", events)

    return app


def main() -> None:
    config = ServerConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(config)
    logger.info("listening on http://%s:%d", config.host, config.port)
    web.run_app(app, host=config.host, port=config.port, print=None)


if __name__ == "__main__":
    main()
