"""Publish dispatcher — fan a "send" envelope out to every backend.

Learn: Subscribers are attached to ONE backend each, and the relay does
not know which. Publishing to ALL backends guarantees delivery no matter
where a subscriber's bridge lives, at the cost of redundant writes.

Backends are published to one after another, independently. A failure
on one does not stop the others, and successful publishes are never
rolled back. The caller only learns "something failed" (PublishError);
the per-backend detail goes to the log.
"""

import json
from typing import Any

import structlog
from redis.exceptions import RedisError

from wsrelay.realtime.backends import BackendSet

logger = structlog.get_logger()


class PublishError(Exception):
    """Raised when at least one backend rejected the publish."""

    def __init__(self, channel: str, failed: int, total: int):
        super().__init__(f"publish to {channel} failed on {failed}/{total} backends")
        self.channel = channel
        self.failed = failed
        self.total = total


def encode_envelope(envelope: dict[str, Any]) -> str:
    """Wire format for published envelopes: compact JSON, sorted keys."""
    return json.dumps(envelope, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


class PublishDispatcher:
    def __init__(self, backends: BackendSet):
        self._backends = backends

    async def publish(self, channel: str, envelope: dict[str, Any]) -> None:
        """Publish the whole envelope to channel on every backend."""
        payload = encode_envelope(envelope)

        failed = 0
        for backend in self._backends:
            try:
                receivers = await backend.publish(channel, payload)
            except RedisError as e:
                failed += 1
                logger.error(
                    "publish.backend_failed",
                    channel=channel,
                    backend=backend.name,
                    error=str(e),
                )
                continue
            logger.debug(
                "publish.backend_ok",
                channel=channel,
                backend=backend.name,
                receivers=receivers,
            )

        if failed:
            raise PublishError(channel, failed, len(self._backends))
        logger.info("publish.sent", channel=channel, backends=len(self._backends))
