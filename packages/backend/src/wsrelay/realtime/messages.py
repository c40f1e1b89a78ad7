"""Client-facing wire messages.

Learn: Only the subscribe success reply is JSON. Every other reply is a
plain text frame, so clients can tell "event data" from "status text"
by trying to parse it.
"""

import time

from pydantic import BaseModel

# Plain-text replies
INVALID_MESSAGE_FORMAT = "Invalid message format"
ACTION_NOT_SPECIFIED = "Action not specified"
INVALID_OR_MISSING_TOKEN = "Invalid or missing token"
TOKEN_VALIDATION_FAILED = "Token validation failed"
CHANNEL_NOT_SPECIFIED = "Channel not specified"
SUBSCRIBE_FAILED = "Failed to subscribe to channel"
PUBLISH_FAILED = "Failed to publish message"
MESSAGE_SENT = "Message sent successfully"

# Actions
SUBSCRIBE = "subscribe"
SEND = "send"


class SubscriptionReply(BaseModel):
    """Sent once a subscribe succeeds."""

    status: str = "success"
    message: str
    channel: str
    event: str = "subscription"
    ws_url: str
    expires_at: int  # unix seconds

    @classmethod
    def for_channel(cls, channel: str, ws_url: str, ttl_minutes: int) -> "SubscriptionReply":
        return cls(
            message=f"Subscribed to channel: {channel}",
            channel=channel,
            ws_url=ws_url,
            expires_at=int(time.time()) + ttl_minutes * 60,
        )
