"""Channel bridge — backend subscription → one WebSocket connection.

Learn: Every successful subscribe gets its own bridge task:

    Redis SUBSCRIBE <channel> → ChannelBridge.run() → Connection.send()

The bridge forwards payloads verbatim until the backend subscription
ends or the task is cancelled. Whatever ends it, the bridge removes the
connection's registry entry on the way out — that is the only place
registry entries are cleared.

BridgeSupervisor owns the tasks, keyed by connection id:
- re-subscribing cancels the old bridge before starting the new one
- closing a connection cancels its bridge right away instead of waiting
  for the backend to drop the subscription
"""

import asyncio

import structlog
from redis.exceptions import RedisError

from wsrelay.realtime.backends import BackendSet, Subscription
from wsrelay.realtime.connection import Connection
from wsrelay.realtime.registry import ConnectionRegistry

logger = structlog.get_logger()


class SubscribeError(Exception):
    """Raised when the backend subscription cannot be established."""


class ChannelBridge:
    """Forwards one backend subscription to one connection."""

    def __init__(
        self,
        conn: Connection,
        subscription: Subscription,
        registry: ConnectionRegistry,
        backend_name: str = "",
    ):
        self.conn = conn
        self.subscription = subscription
        self.registry = registry
        self.backend_name = backend_name
        self.forwarded = 0
        self._released = False
        self._log = logger.bind(
            connection_id=conn.id,
            channel=subscription.channel,
            backend=backend_name,
        )

    async def run(self) -> None:
        self._log.info("bridge.listening")
        try:
            async for payload in self.subscription.messages():
                if self.conn.closed:
                    break
                self._log.debug("bridge.message", size=len(payload))
                self.conn.send(payload)
                self.forwarded += 1
            else:
                self._log.info("bridge.subscription_ended")
        except RedisError as e:
            self._log.warning("bridge.backend_error", error=str(e))
        except Exception:
            self._log.exception("bridge.failed", forwarded=self.forwarded)
        finally:
            await self.release()

    async def release(self) -> None:
        """Clear the registry entry and unsubscribe. Safe to call twice.

        A task cancelled before its first step never enters run(), so the
        supervisor calls this after every cancellation as well.
        """
        if self._released:
            return
        self._released = True
        await self.registry.remove(self.conn)
        try:
            await self.subscription.aclose()
        except RedisError as e:
            self._log.debug("bridge.unsubscribe_failed", error=str(e))
        self._log.info("bridge.stopped", forwarded=self.forwarded)


class BridgeSupervisor:
    """One bridge task per connection, with cancellation."""

    def __init__(self, backends: BackendSet, registry: ConnectionRegistry):
        self._backends = backends
        self._registry = registry
        self._tasks: dict[str, tuple[asyncio.Task, ChannelBridge]] = {}

    @property
    def active(self) -> int:
        return len(self._tasks)

    def is_running(self, conn: Connection) -> bool:
        entry = self._tasks.get(conn.id)
        return entry is not None and not entry[0].done()

    async def start(self, conn: Connection, channel: str) -> None:
        """Subscribe conn to channel, replacing any previous subscription.

        Returns once the backend subscription is live, so a message
        published after this call is delivered. Raises SubscribeError if
        the backend refuses; the registry is left untouched in that case.
        """
        await self.stop(conn)

        backend = self._backends.select(channel)
        try:
            subscription = await backend.subscribe(channel)
        except RedisError as e:
            logger.warning(
                "bridge.subscribe_failed",
                connection_id=conn.id,
                channel=channel,
                backend=backend.name,
                error=str(e),
            )
            raise SubscribeError(f"subscribe to {channel} failed: {e}") from e

        # Until the task is stored, nothing else will close the subscription
        try:
            await self._registry.put(conn, channel)
            bridge = ChannelBridge(conn, subscription, self._registry, backend.name)
            task = asyncio.create_task(bridge.run(), name=f"bridge-{conn.id}")
            self._tasks[conn.id] = (task, bridge)
        except BaseException:
            await self._registry.remove(conn)
            await subscription.aclose()
            raise
        task.add_done_callback(lambda t, conn_id=conn.id: self._forget(conn_id, t))

    async def stop(self, conn: Connection) -> None:
        """Cancel conn's bridge (if any) and wait for it to clean up."""
        entry = self._tasks.pop(conn.id, None)
        if entry is None:
            return
        await self._cancel([entry])

    async def shutdown(self) -> None:
        entries = list(self._tasks.values())
        self._tasks.clear()
        await self._cancel(entries)
        if entries:
            logger.info("bridge.shutdown", stopped=len(entries))

    async def _cancel(self, entries: list[tuple[asyncio.Task, ChannelBridge]]) -> None:
        for task, _ in entries:
            task.cancel()
        await asyncio.gather(*(task for task, _ in entries), return_exceptions=True)
        for _, bridge in entries:
            await bridge.release()

    def _forget(self, conn_id: str, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "bridge.task_failed",
                connection_id=conn_id,
                error=repr(task.exception()),
            )
        entry = self._tasks.get(conn_id)
        if entry is not None and entry[0] is task:
            del self._tasks[conn_id]
