"""Connection — one client session and its single outbound writer.

Learn: Two tasks want to write to the same WebSocket: the session loop
(replies to subscribe/send) and the channel bridge (forwarded payloads).
Concurrent writers to one socket can interleave frames, so neither of
them writes directly. Both call send(), which only enqueues; a single
writer task drains the queue onto the socket.

The queue is bounded. When a slow client lets it fill up, the oldest
queued frame is dropped — fresh data beats stale data for a relay.
"""

import asyncio
import uuid
from typing import Optional

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

logger = structlog.get_logger()


class Connection:
    """A live client connection. Owned by the WebSocket endpoint."""

    def __init__(self, websocket: WebSocket, remote: str = "", queue_max: int = 256):
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.remote = remote
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_max)
        self._writer: Optional[asyncio.Task] = None
        self._closed = False

    def __repr__(self) -> str:
        return f"<Connection {self.id} {self.remote}>"

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the writer task. Call once, after the socket is accepted."""
        if self._writer is None:
            self._writer = asyncio.create_task(
                self._write_loop(), name=f"ws-writer-{self.id}"
            )

    def send(self, text: str) -> None:
        """Queue a text frame for the writer. Never blocks."""
        if self._closed:
            return
        try:
            self._queue.put_nowait(text)
        except asyncio.QueueFull:
            dropped = self._queue.get_nowait()
            self._queue.put_nowait(text)
            logger.warning(
                "ws.send_queue_full",
                connection_id=self.id,
                dropped_bytes=len(dropped),
            )

    async def _write_loop(self) -> None:
        while True:
            text = await self._queue.get()
            try:
                await self.websocket.send_text(text)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                # A dead transport: later frames are discarded and the
                # read loop ends the session on its next receive.
                logger.warning("ws.send_failed", connection_id=self.id, error=str(e))
                self._closed = True
                return

    async def close(self, code: int = 1000) -> None:
        """Stop the writer and close the socket if it is still open."""
        self._closed = True
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None
        if (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        ):
            try:
                await self.websocket.close(code=code)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.debug("ws.close_failed", connection_id=self.id, error=str(e))
