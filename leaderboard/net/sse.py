"""Server-sent-event stream handlers."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from aiohttp import web

from leaderboard.net import protocol

logger = logging.getLogger(__name__)

HEARTBEAT_SEC = 25.0
MAX_PENDING_FRAMES = 64
TRANSPORT_POLL_SEC = 1.0

STREAM_HEADERS = {
    "Content-Type": "text/event-stream; charset=utf-8",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}


@dataclass
class Connection:
    conn_id: str
    queue: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(MAX_PENDING_FRAMES))
    closed: bool = False


class SseHub:
    """Registry of open event streams; the store's realtime subscriber."""

    def __init__(self, store, cors_headers: dict[str, str] | None = None, transport_poll_sec: float = TRANSPORT_POLL_SEC):
        self.store = store
        self.transport_poll_sec = float(transport_poll_sec)
        self.cors_headers = dict(cors_headers or {})
        self._conns: dict[str, Connection] = {}
        self._unsubscribe = None

    @property
    def connection_count(self) -> int:
        return len(self._conns)

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self.on_store_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_store_change(self, payload: dict[str, Any]) -> None:
        self.broadcast(protocol.sse_event("update", payload))

    def heartbeat(self) -> None:
        self.broadcast(protocol.sse_comment(f"ping {int(time.time() * 1000)}"))

    def broadcast(self, frame: bytes) -> None:
        for conn in list(self._conns.values()):
            self._enqueue(conn, frame)

    def _enqueue(self, conn: Connection, frame: bytes) -> None:
        if conn.closed:
            return
        try:
            conn.queue.put_nowait(frame)
        except asyncio.QueueFull:
            # Oldest frame goes; the newest revision always reaches the client.
            conn.queue.get_nowait()
            conn.queue.put_nowait(frame)
            logger.debug("dropped oldest frame for slow stream %s", conn.conn_id)

    @staticmethod
    def _peer_gone(request: web.Request) -> bool:
        transport = request.transport
        return transport is None or transport.is_closing()

    async def handle(self, request: web.Request) -> web.StreamResponse:
        resp = web.StreamResponse(status=200, headers={**STREAM_HEADERS, **self.cors_headers})
        await resp.prepare(request)

        conn = Connection(conn_id=uuid.uuid4().hex)
        # Registered before the first write so no update can slip past "ready".
        self._conns[conn.conn_id] = conn

        try:
            ready = {**self.store.status(), "updatedAt": self.store.now()}
            await resp.write(protocol.sse_event("ready", ready))
            while True:
                try:
                    frame = await asyncio.wait_for(conn.queue.get(), timeout=self.transport_poll_sec)
                except asyncio.TimeoutError:
                    if self._peer_gone(request):
                        break
                    continue
                if frame is None or self._peer_gone(request):
                    break
                await resp.write(frame)
        except ConnectionError:
            logger.debug("stream %s closed by peer", conn.conn_id)
        finally:
            self._disconnect(conn)
        return resp

    def _disconnect(self, conn: Connection) -> None:
        # Idempotent.
        conn.closed = True
        self._conns.pop(conn.conn_id, None)

    async def close_all(self) -> None:
        for conn in list(self._conns.values()):
            conn.closed = True
            # Sentinel goes past a full queue so the writer loop always ends.
            while True:
                try:
                    conn.queue.put_nowait(None)
                    break
                except asyncio.QueueFull:
                    conn.queue.get_nowait()
