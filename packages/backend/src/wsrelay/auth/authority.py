"""HTTP client for the external authorization service.

Learn: One POST per cache miss:

    POST <authorize_url>
    Authorization: Bearer <token>
    (empty body)

Any 2xx means the token is valid; every other status means invalid.
Network errors and timeouts are NOT "invalid" — they raise
AuthorityUnavailableError so nothing gets cached for them.
"""

import httpx
import structlog

from wsrelay.auth.errors import AuthorityUnavailableError

logger = structlog.get_logger()


class AuthorityClient:
    def __init__(self, url: str, http: httpx.AsyncClient, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout
        self._http = http

    async def authorize(self, token: str) -> bool:
        """Ask the authority about token. Raises AuthorityUnavailableError."""
        log = logger.bind(authorize_url=self.url)
        log.info("authority.request")

        try:
            resp = await self._http.post(
                self.url,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            log.warning("authority.unreachable", error=str(e) or type(e).__name__)
            raise AuthorityUnavailableError(f"authorization API call failed: {e!r}") from e

        log.debug("authority.response", status=resp.status_code, body=resp.text[:512])

        if resp.is_success:
            log.info("authority.accepted", status=resp.status_code)
            return True

        log.info("authority.rejected", status=resp.status_code)
        return False
