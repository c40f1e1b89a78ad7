"""Token validator — cache first, authority on a miss.

Learn: validate() flow:

    cache hit  → return cached verdict (no HTTP call)
    cache miss → POST to authority → cache the verdict with TTL → return it
    authority unreachable / timeout → raise, cache nothing

So for a given token the authority is called once per TTL window, and a
flaky authority can never poison the cache with a false "invalid".

Tokens are never logged; a short SHA-256 fingerprint stands in for them.
"""

import hashlib

import structlog
from redis.exceptions import RedisError

from wsrelay.auth.authority import AuthorityClient
from wsrelay.auth.errors import TokenValidationError
from wsrelay.auth.token_cache import TokenCache

logger = structlog.get_logger()


def fingerprint(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()[:12]


class TokenValidator:
    def __init__(self, cache: TokenCache, authority: AuthorityClient):
        self.cache = cache
        self.authority = authority

    async def validate(self, token: str) -> bool:
        """True/False for a definitive verdict; raises TokenValidationError otherwise."""
        log = logger.bind(token=fingerprint(token))
        log.debug("auth.validating")

        try:
            cached = await self.cache.get(token)
        except RedisError as e:
            log.error("auth.cache_read_failed", error=str(e))
            raise TokenValidationError(f"error fetching token from cache: {e}") from e

        if cached is not None:
            log.info("auth.cache_hit", valid=cached)
            return cached

        log.info("auth.cache_miss")
        is_valid = await self.authority.authorize(token)

        try:
            await self.cache.put(token, is_valid)
            log.info("auth.cached", valid=is_valid, ttl_minutes=self.cache.ttl_minutes)
        except RedisError as e:
            log.warning("auth.cache_write_failed", valid=is_valid, error=str(e))

        return is_valid
