"""Session controller — the per-connection receive loop.

Learn: One SessionController per WebSocket. It blocks on the next frame,
decodes it as a JSON object and routes on "action":

    subscribe → TokenValidator → BridgeSupervisor (registry + bridge task)
    send      → PublishDispatcher (every backend)
    other     → "Action not specified"

Bad input never ends the session — the client gets a text reply and the
loop continues. Only a disconnect or transport error ends it. Cleanup
of the bridge/registry is the endpoint's job (see websocket.py), never
done inline here.
"""

import json
from typing import Any, Optional

import structlog

from wsrelay.auth import TokenValidationError, TokenValidator
from wsrelay.realtime import messages
from wsrelay.realtime.bridge import BridgeSupervisor, SubscribeError
from wsrelay.realtime.connection import Connection
from wsrelay.realtime.dispatcher import PublishDispatcher, PublishError

logger = structlog.get_logger()

CONNECTING = "connecting"
OPEN = "open"
CLOSED = "closed"


class SessionController:
    def __init__(
        self,
        conn: Connection,
        *,
        validator: TokenValidator,
        supervisor: BridgeSupervisor,
        dispatcher: PublishDispatcher,
        ws_url: str,
        ttl_minutes: int,
    ):
        self.conn = conn
        self.validator = validator
        self.supervisor = supervisor
        self.dispatcher = dispatcher
        self.ws_url = ws_url
        self.ttl_minutes = ttl_minutes
        self.state = CONNECTING

    async def run(self) -> None:
        """Receive and handle frames until the peer goes away."""
        self.state = OPEN
        try:
            while True:
                frame = await self._next_frame()
                if frame is None:
                    break
                await self.handle_frame(frame)
        finally:
            self.state = CLOSED

    async def _next_frame(self) -> Optional[str]:
        message = await self.conn.websocket.receive()
        if message["type"] == "websocket.disconnect":
            logger.info("session.peer_closed", code=message.get("code"))
            return None
        if message.get("text") is not None:
            return message["text"]
        return (message.get("bytes") or b"").decode("utf-8", errors="replace")

    async def handle_frame(self, frame: str) -> None:
        try:
            data = json.loads(frame)
        except json.JSONDecodeError:
            data = None
        if not isinstance(data, dict):
            self.conn.send(messages.INVALID_MESSAGE_FORMAT)
            return

        action = data.get("action")
        if action == messages.SUBSCRIBE:
            await self.handle_subscribe(data)
        elif action == messages.SEND:
            await self.handle_send(data)
        else:
            logger.info("session.unknown_action", action=action)
            self.conn.send(messages.ACTION_NOT_SPECIFIED)

    async def handle_subscribe(self, data: dict[str, Any]) -> None:
        token = data.get("token")
        if not isinstance(token, str) or not token:
            logger.info("session.missing_token")
            self.conn.send(messages.INVALID_OR_MISSING_TOKEN)
            return

        try:
            is_valid = await self.validator.validate(token)
        except TokenValidationError as e:
            # Indeterminate, logged apart from a denial
            logger.warning("session.token_indeterminate", error=str(e))
            self.conn.send(messages.TOKEN_VALIDATION_FAILED)
            return
        if not is_valid:
            logger.info("session.token_denied")
            self.conn.send(messages.TOKEN_VALIDATION_FAILED)
            return

        channel = data.get("channel")
        if not isinstance(channel, str) or not channel:
            logger.info("session.missing_channel", action=messages.SUBSCRIBE)
            self.conn.send(messages.CHANNEL_NOT_SPECIFIED)
            return

        try:
            await self.supervisor.start(self.conn, channel)
        except SubscribeError:
            self.conn.send(messages.SUBSCRIBE_FAILED)
            return

        reply = messages.SubscriptionReply.for_channel(channel, self.ws_url, self.ttl_minutes)
        self.conn.send(reply.model_dump_json())
        logger.info("session.subscribed", channel=channel)

    async def handle_send(self, data: dict[str, Any]) -> None:
        channel = data.get("channel")
        if not isinstance(channel, str) or not channel:
            logger.info("session.missing_channel", action=messages.SEND)
            self.conn.send(messages.CHANNEL_NOT_SPECIFIED)
            return

        try:
            await self.dispatcher.publish(channel, data)
        except PublishError as e:
            logger.warning("session.publish_failed", channel=channel, failed=e.failed)
            self.conn.send(messages.PUBLISH_FAILED)
            return

        self.conn.send(messages.MESSAGE_SENT)
