"""RedisBackend tests — the production adapter against an in-process Redis.

Learn: fakeredis speaks the Redis protocol in memory, so RedisBackend and
RedisSubscription run their real code paths (pubsub.listen(), SET EX,
UNSUBSCRIBE) without a server. The client goes in through RedisBackend's
client= parameter.
"""

import asyncio

import fakeredis
import pytest

from wsrelay.config import RedisNode
from wsrelay.realtime.backends import BackendSet, RedisBackend
from wsrelay.realtime.bridge import BridgeSupervisor
from wsrelay.realtime.connection import Connection
from wsrelay.realtime.registry import ConnectionRegistry
from conftest import FakeWebSocket, eventually


@pytest.fixture()
def redis_client():
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer())


@pytest.fixture()
def backend(redis_client):
    return RedisBackend(RedisNode(address="redis-a:6379"), client=redis_client)


async def next_message(subscription, timeout=1.0):
    return await asyncio.wait_for(subscription.messages().__anext__(), timeout)


@pytest.mark.asyncio
async def test_name_is_node_address(backend):
    assert backend.name == "redis-a:6379"
    await backend.ping()


@pytest.mark.asyncio
async def test_subscribe_yields_published_payloads(backend):
    """Subscribe confirmations are skipped; payloads arrive as str."""
    subscription = await backend.subscribe("room1")

    assert await backend.publish("room1", '{"message":"hi"}') == 1
    assert await next_message(subscription) == '{"message":"hi"}'

    await subscription.aclose()


@pytest.mark.asyncio
async def test_other_channels_are_not_delivered(backend):
    subscription = await backend.subscribe("room1")

    assert await backend.publish("room2", "elsewhere") == 0
    await backend.publish("room1", "here")
    assert await next_message(subscription) == "here"

    await subscription.aclose()


@pytest.mark.asyncio
async def test_payload_that_is_not_utf8_is_replaced(backend, redis_client):
    subscription = await backend.subscribe("room1")

    await redis_client.publish("room1", b"\xff\xfe bad")
    assert await next_message(subscription) == "\ufffd\ufffd bad"

    await subscription.aclose()


@pytest.mark.asyncio
async def test_aclose_unsubscribes(backend):
    subscription = await backend.subscribe("room1")
    assert await backend.publish("room1", "x") == 1

    await subscription.aclose()

    assert await backend.publish("room1", "x") == 0


@pytest.mark.asyncio
async def test_set_with_ttl(backend, redis_client):
    await backend.set("T1", "valid", 300)

    assert await backend.get("T1") == "valid"
    assert 0 < await redis_client.ttl("T1") <= 300


@pytest.mark.asyncio
async def test_set_without_ttl_never_expires(backend, redis_client):
    await backend.set("T1", "invalid", None)

    assert await backend.get("T1") == "invalid"
    assert await redis_client.ttl("T1") == -1


@pytest.mark.asyncio
async def test_get_missing_key(backend):
    assert await backend.get("nope") is None


@pytest.mark.asyncio
async def test_bridge_survives_payload_that_is_not_utf8(backend, redis_client):
    """An external producer's bad bytes must not end delivery."""
    registry = ConnectionRegistry()
    supervisor = BridgeSupervisor(BackendSet([backend]), registry)
    ws = FakeWebSocket()
    conn = Connection(ws)
    conn.start()

    await supervisor.start(conn, "room1")
    await redis_client.publish("room1", "first")
    await redis_client.publish("room1", b"\xff\xfe bad")
    await redis_client.publish("room1", "after")

    await eventually(lambda: len(ws.sent) == 3)
    assert ws.sent == ["first", "\ufffd\ufffd bad", "after"]
    assert supervisor.is_running(conn)
    assert await registry.count() == 1

    await supervisor.stop(conn)
    await conn.close()
    assert await backend.publish("room1", "x") == 0
