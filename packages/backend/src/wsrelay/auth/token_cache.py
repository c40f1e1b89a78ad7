"""Token verdict cache on a pub/sub backend's key space.

Keys are the raw token strings; values are "valid" or "invalid". Expiry
is left to Redis (SET ... EX), so there is no sweeping or invalidation
here.
"""

from typing import Optional

from wsrelay.realtime.backends import PubSubBackend

VALID = "valid"
INVALID = "invalid"


class TokenCache:
    def __init__(self, backend: PubSubBackend, ttl_minutes: int):
        self._backend = backend
        self.ttl_minutes = ttl_minutes

    @property
    def ttl_seconds(self) -> Optional[int]:
        return self.ttl_minutes * 60 if self.ttl_minutes > 0 else None

    async def get(self, token: str) -> Optional[bool]:
        """Cached verdict, or None on a miss."""
        value = await self._backend.get(token)
        if value is None:
            return None
        return value == VALID

    async def put(self, token: str, is_valid: bool) -> None:
        await self._backend.set(token, VALID if is_valid else INVALID, self.ttl_seconds)
