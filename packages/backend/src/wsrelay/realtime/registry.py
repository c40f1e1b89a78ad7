"""Connection registry — which connection is subscribed to which channel.

Learn: The registry is the single source of truth for "is this connection
subscribed, and to what". It is written by the subscribe path (the bridge
supervisor) and cleared when the connection's bridge ends, never by
anything else. One asyncio.Lock serializes every read and write, so no
caller can observe an entry half-written.
"""

import asyncio
from typing import Optional

from wsrelay.realtime.connection import Connection


class ConnectionRegistry:
    """Connection id → subscribed channel."""

    def __init__(self):
        self._channels: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def put(self, conn: Connection, channel: str) -> None:
        """Record (or overwrite) the connection's channel."""
        async with self._lock:
            self._channels[conn.id] = channel

    async def remove(self, conn: Connection) -> Optional[str]:
        """Drop the connection's entry; returns the channel it had, if any."""
        async with self._lock:
            return self._channels.pop(conn.id, None)

    async def get(self, conn: Connection) -> Optional[str]:
        async with self._lock:
            return self._channels.get(conn.id)

    async def snapshot(self) -> dict[str, str]:
        async with self._lock:
            return dict(self._channels)

    async def count(self) -> int:
        async with self._lock:
            return len(self._channels)
