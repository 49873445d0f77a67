"""
Gateway Exceptions
==================

Error taxonomy shared by the session layer, the OAuth callback pipeline
and the HTTP routes.

Outward mapping:
- AuthenticationFailure  -> 401 JSON body
- ProviderError          -> redirect to /auth/error (never a 500)
- ProfileValidationError -> treated as ProviderError
- PersistenceError       -> 500 with a generic message, cause logged only
- ConfigurationError     -> fatal at startup

Messages carried by these exceptions must never include token material.
"""


class GatewayError(Exception):
    """Base exception for all gateway errors"""
    pass


# =============================================================================
# Request-time Errors
# =============================================================================

class AuthenticationFailure(GatewayError):
    """No session, or the session carries no authenticated user."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)
        self.message = message


class ProviderError(GatewayError):
    """Identity provider unreachable, or it rejected the request."""
    pass


class ProfileValidationError(ProviderError):
    """Provider returned a profile that cannot be trusted (e.g. missing `sub`)."""
    pass


class PersistenceError(GatewayError):
    """Local user store or session store failure."""
    pass


class StoreError(PersistenceError):
    """A session store operation failed."""
    pass


class StoreUnavailableError(StoreError):
    """Remote session store is not connected (or the connection dropped)."""
    pass


# =============================================================================
# Startup Errors
# =============================================================================

class ConfigurationError(GatewayError):
    """A required setting is missing or invalid."""
    pass


__all__ = [
    "GatewayError",
    "AuthenticationFailure",
    "ProviderError",
    "ProfileValidationError",
    "PersistenceError",
    "StoreError",
    "StoreUnavailableError",
    "ConfigurationError",
]
