"""Bearer-token validation.

Learn: The relay does not issue or decode tokens. It asks an external
authority ("is this token good?") and caches the yes/no answer in Redis
so repeated subscribes with the same token don't hammer the authority.

Two outcomes must never be confused:
1. Denied — the authority answered "no" (validate() returns False)
2. Unknown — the authority could not be asked (TokenValidationError)
"""

from wsrelay.auth.authority import AuthorityClient
from wsrelay.auth.errors import AuthorityUnavailableError, TokenValidationError
from wsrelay.auth.token_cache import TokenCache
from wsrelay.auth.validator import TokenValidator

__all__ = [
    "AuthorityClient",
    "AuthorityUnavailableError",
    "TokenCache",
    "TokenValidationError",
    "TokenValidator",
]
