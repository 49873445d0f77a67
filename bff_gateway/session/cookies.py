"""
Session Cookie Signing
======================

The browser only ever holds an opaque session ID. The cookie value is an
HS256 JWT over {"sid": <session id>, "iat": <issue time>} signed with
SESSION_SECRET, so a tampered or forged cookie is rejected before any store
lookup happens.

Expiry is enforced server-side by the session store, not by the cookie
token, so no `exp` claim is issued.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import jwt
from jwt.exceptions import InvalidTokenError

from ..config import Settings

logger = logging.getLogger(__name__)

COOKIE_ALGORITHM = "HS256"


# =============================================================================
# Session IDs
# =============================================================================

def new_session_id() -> str:
    """Generate a fresh opaque session ID (never derived from user data)."""
    return secrets.token_urlsafe(32)


# =============================================================================
# Cookie Value Encoding
# =============================================================================

def encode_session_cookie(session_id: str, secret: str) -> str:
    """
    Sign a session ID into a cookie value.

    Args:
        session_id: Opaque session identifier
        secret: SESSION_SECRET

    Returns:
        Encoded JWT string
    """
    payload = {
        "sid": session_id,
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, secret, algorithm=COOKIE_ALGORITHM)


def decode_session_cookie(value: Optional[str], secret: str) -> Optional[str]:
    """
    Verify a cookie value and return the session ID it carries.

    Returns None (never raises) for an absent, malformed, or forged cookie.

    Example:
        >>> token = encode_session_cookie("abc", secret)
        >>> decode_session_cookie(token, secret)
        'abc'
    """
    if not value:
        return None

    try:
        decoded = jwt.decode(
            value,
            secret,
            algorithms=[COOKIE_ALGORITHM],
            options={"require": ["sid", "iat"]},
        )
    except InvalidTokenError as e:
        logger.warning(f"Rejected session cookie: {type(e).__name__}")
        return None

    session_id = decoded.get("sid")
    if not isinstance(session_id, str) or not session_id:
        logger.warning("Rejected session cookie: empty session ID")
        return None

    return session_id


# =============================================================================
# Cookie Attributes
# =============================================================================

def cookie_settings(settings: Settings) -> Dict[str, Any]:
    """Keyword arguments for Response.set_cookie()."""
    return {
        "key": settings.SESSION_COOKIE_NAME,
        "max_age": settings.session_max_age_seconds,
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def clear_cookie_settings(settings: Settings) -> Dict[str, Any]:
    """Keyword arguments for Response.delete_cookie()."""
    return {
        "key": settings.SESSION_COOKIE_NAME,
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }
