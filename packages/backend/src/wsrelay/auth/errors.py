"""Token validation errors."""


class TokenValidationError(Exception):
    """Raised when a token's validity could not be determined."""


class AuthorityUnavailableError(TokenValidationError):
    """Raised when the authorization service could not be reached in time."""
