"""Test fixtures — in-memory backends, a fake token authority, fake sockets.

Learn: Nothing here needs a running Redis or authorization service:

1. FakeBackend implements PubSubBackend in memory. publish() delivers
   straight into matching FakeSubscriptions, and get()/set() use a dict,
   so tests can assert on what was published and what was cached.
2. FakeAuthority is an httpx.MockTransport handler. It records every
   token it was asked about and answers 200 / 401 / timeout per token.
3. FakeWebSocket stands in for Starlette's WebSocket in unit tests of
   Connection and SessionController.

End-to-end tests use the real app via create_app() + Starlette's
TestClient, injecting the fake backends and the mocked HTTP client.
"""

import asyncio
from typing import Optional

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.websockets import WebSocketState

from wsrelay.config import RedisNode, Settings
from wsrelay.realtime.backends import (
    BackendSet,
    BackendUnavailableError,
    PubSubBackend,
    Subscription,
)

_END = object()


# ─── Backends ──────────────────────────────────────────────


class FakeSubscription(Subscription):
    def __init__(self, backend: "FakeBackend", channel: str):
        self.channel = channel
        self.closed = False
        self._backend = backend
        self._queue: asyncio.Queue = asyncio.Queue()

    def deliver(self, payload: str) -> None:
        self._queue.put_nowait(payload)

    def end(self) -> None:
        """Simulate the backend ending the subscription."""
        self._queue.put_nowait(_END)

    def fail(self, exc: Exception) -> None:
        """Simulate the backend connection dropping mid-stream."""
        self._queue.put_nowait(exc)

    async def messages(self):
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def aclose(self) -> None:
        self.closed = True
        self._backend.live.discard(self)


class FakeBackend(PubSubBackend):
    def __init__(self, name: str = "fake-1"):
        self._name = name
        self.published: list[tuple[str, str]] = []
        self.subscriptions: list[FakeSubscription] = []
        self.live: set[FakeSubscription] = set()
        self.store: dict[str, str] = {}
        self.ttls: dict[str, Optional[int]] = {}
        self.fail_ping = False
        self.fail_publish = False
        self.fail_subscribe = False
        self.fail_get = False
        self.fail_set = False
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    async def ping(self) -> None:
        if self.fail_ping:
            raise BackendUnavailableError(f"Redis node {self._name}: connection refused")

    async def publish(self, channel: str, payload: str) -> int:
        if self.fail_publish:
            raise RedisConnectionError("connection reset by peer")
        self.published.append((channel, payload))
        receivers = [s for s in self.live if s.channel == channel]
        for sub in receivers:
            sub.deliver(payload)
        return len(receivers)

    async def subscribe(self, channel: str) -> FakeSubscription:
        if self.fail_subscribe:
            raise RedisConnectionError("connection refused")
        sub = FakeSubscription(self, channel)
        self.subscriptions.append(sub)
        self.live.add(sub)
        return sub

    async def get(self, key: str) -> Optional[str]:
        if self.fail_get:
            raise RedisConnectionError("read timed out")
        return self.store.get(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if self.fail_set:
            raise RedisConnectionError("read only replica")
        self.store[key] = value
        self.ttls[key] = ttl_seconds

    async def aclose(self) -> None:
        self.closed = True


# ─── Token authority ───────────────────────────────────────


class FakeAuthority:
    """httpx.MockTransport handler for POST <authorize_url>."""

    def __init__(self):
        self.calls: list[str] = []
        self.requests: list[httpx.Request] = []
        self.valid_tokens = {"T1", "T2"}
        self.timeout_tokens: set[str] = set()
        self.status_for_valid = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        auth = request.headers.get("Authorization", "")
        token = auth.removeprefix("Bearer ")
        self.calls.append(token)
        self.requests.append(request)
        if token in self.timeout_tokens:
            raise httpx.ReadTimeout("authority timed out", request=request)
        if token in self.valid_tokens:
            return httpx.Response(self.status_for_valid, text="authorized")
        return httpx.Response(401, text="unauthorized")


# ─── WebSocket ─────────────────────────────────────────────


class FakeWebSocket:
    def __init__(self):
        self.sent: list[str] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.close_code: Optional[int] = None
        self.fail_send = False

    def feed(self, text: str) -> None:
        self.incoming.put_nowait({"type": "websocket.receive", "text": text})

    def feed_bytes(self, data: bytes) -> None:
        self.incoming.put_nowait({"type": "websocket.receive", "bytes": data})

    def hang_up(self, code: int = 1000) -> None:
        self.incoming.put_nowait({"type": "websocket.disconnect", "code": code})

    async def receive(self) -> dict:
        message = await self.incoming.get()
        if message["type"] == "websocket.disconnect":
            self.client_state = WebSocketState.DISCONNECTED
        return message

    async def send_text(self, text: str) -> None:
        if self.fail_send:
            raise RuntimeError('Cannot call "send" once a close message has been sent.')
        self.sent.append(text)

    async def close(self, code: int = 1000) -> None:
        self.application_state = WebSocketState.DISCONNECTED
        self.close_code = code


async def eventually(predicate, timeout: float = 1.0) -> None:
    """Poll predicate until it is truthy; fail the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


# ─── Fixtures ──────────────────────────────────────────────


@pytest.fixture()
def settings():
    return Settings(
        redis_nodes=[RedisNode(address="fake-1"), RedisNode(address="fake-2")],
        host="relay.test",
        port=9000,
        authorize_url="http://auth.test/authorize",
        cache_ttl_minutes=5,
    )


@pytest.fixture()
def fake_backends():
    return [FakeBackend("fake-1"), FakeBackend("fake-2")]


@pytest.fixture()
def backend_set(fake_backends):
    return BackendSet(fake_backends)


@pytest.fixture()
def authority():
    return FakeAuthority()


@pytest.fixture()
def http_client(authority):
    return httpx.AsyncClient(transport=httpx.MockTransport(authority))


@pytest.fixture()
def app(settings, backend_set, http_client):
    from wsrelay.main import create_app

    return create_app(settings, backends=backend_set, http_client=http_client)
