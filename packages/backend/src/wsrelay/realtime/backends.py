"""Pub/sub backends — the Redis nodes messages travel through.

Learn: Each configured Redis node is an independent backend with its own
connection and password. There is no sharding or replication between
them; the relay treats them as a broadcast set:

- publishing goes to EVERY backend (see dispatcher.py)
- subscribing goes to exactly ONE backend, picked by a BackendSelector

Because every publish reaches every backend, any single backend is
enough to see every message. Picking one per subscription guarantees
no subscriber gets the same message twice.

Redis pub/sub is fire-and-forget. If nobody is subscribed when a message
is published, it is gone.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional, Sequence

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from wsrelay.config import RedisNode, Settings

logger = structlog.get_logger()


class BackendUnavailableError(Exception):
    """Raised when a backend cannot be reached (startup ping, health)."""


class Subscription(ABC):
    """A live subscription to one channel on one backend."""

    channel: str

    @abstractmethod
    def messages(self) -> AsyncIterator[str]:
        """Yield delivered payloads until the subscription ends."""

    @abstractmethod
    async def aclose(self) -> None:
        """Unsubscribe and release the underlying connection."""


class PubSubBackend(ABC):
    """Abstract pub/sub backend with a small key/value side for caching."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in logs, e.g. the node address."""

    @abstractmethod
    async def ping(self) -> None:
        """Raise BackendUnavailableError if the backend is unreachable."""

    @abstractmethod
    async def publish(self, channel: str, payload: str) -> int:
        """Publish a payload; returns the receiver count reported by the backend."""

    @abstractmethod
    async def subscribe(self, channel: str) -> Subscription:
        """Subscribe to a channel. Returns once the subscription is live."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Read a key; None when absent."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Write a key, expiring after ttl_seconds when given."""

    @abstractmethod
    async def aclose(self) -> None:
        """Close the backend connection pool."""


# ─── Redis implementation ──────────────────────────────────


def _text(value) -> Optional[str]:
    """Decode a Redis reply. Bytes that are not UTF-8 become U+FFFD."""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class RedisSubscription(Subscription):
    def __init__(self, pubsub, channel: str):
        self._pubsub = pubsub
        self.channel = channel

    async def messages(self) -> AsyncIterator[str]:
        # listen() ends once nothing is subscribed; connection loss raises
        async for message in self._pubsub.listen():
            if message["type"] == "message":
                yield _text(message["data"])

    async def aclose(self) -> None:
        try:
            await self._pubsub.unsubscribe(self.channel)
        except RedisError as e:
            logger.debug("redis.unsubscribe_failed", channel=self.channel, error=str(e))
        await self._pubsub.aclose()


class RedisBackend(PubSubBackend):
    """One Redis node, via redis.asyncio.

    Replies stay raw bytes and are decoded here with errors="replace":
    producers outside the relay can publish anything, and one payload that
    is not UTF-8 must not end a subscription.
    """

    def __init__(self, node: RedisNode, client: Optional[aioredis.Redis] = None):
        self._node = node
        self._redis = client or aioredis.from_url(
            node.url,
            password=node.password or None,
        )

    @property
    def name(self) -> str:
        return self._node.address

    async def ping(self) -> None:
        try:
            await self._redis.ping()
        except RedisError as e:
            raise BackendUnavailableError(f"Redis node {self.name}: {e}") from e

    async def publish(self, channel: str, payload: str) -> int:
        return await self._redis.publish(channel, payload)

    async def subscribe(self, channel: str) -> Subscription:
        pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(channel)
        except RedisError:
            await pubsub.aclose()
            raise
        return RedisSubscription(pubsub, channel)

    async def get(self, key: str) -> Optional[str]:
        return _text(await self._redis.get(key))

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        await self._redis.set(key, value, ex=ttl_seconds or None)

    async def aclose(self) -> None:
        await self._redis.aclose()


# ─── Selection policy ──────────────────────────────────────


class BackendSelector(ABC):
    """Decides which single backend serves a subscription or the token cache."""

    @abstractmethod
    def select(self, backends: Sequence[PubSubBackend], channel: Optional[str] = None) -> PubSubBackend:
        """Pick one backend. channel is None for non-channel use (token cache)."""


class FirstBackendSelector(BackendSelector):
    """Always the first configured backend."""

    def select(self, backends: Sequence[PubSubBackend], channel: Optional[str] = None) -> PubSubBackend:
        return backends[0]


class BackendSet:
    """Ordered set of independent backends plus the selection policy.

    Learn: This is the only handle the rest of the relay holds on Redis.
    It is built once in the app lifespan and passed to the components
    that need it — no module-level connection globals.
    """

    def __init__(
        self,
        backends: Sequence[PubSubBackend],
        selector: Optional[BackendSelector] = None,
    ):
        if not backends:
            raise ValueError("BackendSet needs at least one backend")
        self._backends = list(backends)
        self._selector = selector or FirstBackendSelector()

    @classmethod
    def from_settings(cls, settings: Settings, selector: Optional[BackendSelector] = None) -> "BackendSet":
        return cls([RedisBackend(node) for node in settings.redis_nodes], selector)

    def __iter__(self):
        return iter(self._backends)

    def __len__(self) -> int:
        return len(self._backends)

    def select(self, channel: Optional[str] = None) -> PubSubBackend:
        return self._selector.select(self._backends, channel)

    async def ping_all(self) -> None:
        """Ping every backend; the first failure raises BackendUnavailableError."""
        for backend in self._backends:
            await backend.ping()
            logger.info("backend.connected", backend=backend.name)

    async def health(self) -> dict[str, str]:
        """Per-backend status for the health endpoint."""
        status = {}
        for backend in self._backends:
            try:
                await backend.ping()
                status[backend.name] = "ok"
            except BackendUnavailableError as e:
                status[backend.name] = f"error: {e}"
        return status

    async def aclose(self) -> None:
        for backend in self._backends:
            try:
                await backend.aclose()
            except RedisError as e:
                logger.warning("backend.close_failed", backend=backend.name, error=str(e))
