"""Publish dispatcher tests — fan-out to every backend."""

import json

import pytest

from wsrelay.realtime.backends import BackendSet
from wsrelay.realtime.dispatcher import PublishDispatcher, PublishError, encode_envelope


ENVELOPE = {"action": "send", "channel": "room1", "message": "hi"}


@pytest.mark.asyncio
async def test_every_backend_gets_identical_payload(fake_backends):
    await PublishDispatcher(BackendSet(fake_backends)).publish("room1", ENVELOPE)

    first, second = fake_backends
    assert len(first.published) == 1
    assert first.published == second.published
    channel, payload = first.published[0]
    assert channel == "room1"
    assert json.loads(payload) == ENVELOPE


@pytest.mark.asyncio
async def test_partial_failure_raises_but_others_still_receive(fake_backends):
    fake_backends[0].fail_publish = True

    with pytest.raises(PublishError) as exc_info:
        await PublishDispatcher(BackendSet(fake_backends)).publish("room1", ENVELOPE)

    assert exc_info.value.failed == 1
    assert exc_info.value.total == 2
    assert exc_info.value.channel == "room1"
    # No rollback: the healthy backend keeps its copy
    assert len(fake_backends[1].published) == 1


@pytest.mark.asyncio
async def test_all_backends_failing(fake_backends):
    for backend in fake_backends:
        backend.fail_publish = True

    with pytest.raises(PublishError) as exc_info:
        await PublishDispatcher(BackendSet(fake_backends)).publish("room1", ENVELOPE)
    assert exc_info.value.failed == 2


@pytest.mark.asyncio
async def test_extra_fields_are_forwarded(fake_backends):
    envelope = {**ENVELOPE, "token": "T1", "meta": {"n": 1}}
    await PublishDispatcher(BackendSet(fake_backends)).publish("room1", envelope)

    assert json.loads(fake_backends[0].published[0][1]) == envelope


def test_encode_envelope_is_compact_and_sorted():
    assert encode_envelope({"message": "hi", "action": "send"}) == '{"action":"send","message":"hi"}'


def test_encode_envelope_keeps_unicode():
    assert encode_envelope({"message": "héllo"}) == '{"message":"héllo"}'
