"""
Shared fixtures for gateway tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from bff_gateway.config import Settings
from bff_gateway.models import CookieMetadata, SessionRecord, SessionUser


@pytest.fixture
def settings():
    """Application settings for tests (no .env file, in-process store)"""
    return Settings(
        _env_file=None,
        OIDC_APP_ID="test-app-id",
        OIDC_APP_SECRET="test-app-secret",
        OIDC_ENDPOINT="https://idp.example.com",
        OIDC_REDIRECT_URI="http://localhost:3000/auth/callback",
        SESSION_SECRET="test-session-secret-0123456789abcdef",
        SESSION_STORE_TYPE="local",
        FRONTEND_URL="http://localhost:5173",
        ENVIRONMENT="development",
    )


def build_record(
    session_id: str = "sid-123",
    user: bool = True,
    cookie_expires_in: timedelta = timedelta(hours=24),
) -> SessionRecord:
    """Build a session record whose store deadline is now + cookie_expires_in"""
    now = datetime.now(timezone.utc)
    return SessionRecord(
        session_id=session_id,
        user=SessionUser(
            id="local-1",
            external_id="u1",
            email="a@x.com",
            name="Ada",
        ) if user else None,
        provider_access_token="provider-access-token",
        provider_refresh_token="provider-refresh-token",
        issued_at=now,
        expires_at=now + timedelta(hours=1),
        cookie=CookieMetadata(
            expires=now + cookie_expires_in,
            original_max_age=86400,
        ),
    )


@pytest.fixture
def make_record():
    """Factory fixture: make_record(session_id, user=..., cookie_expires_in=...)"""
    return build_record


@pytest.fixture
def record(make_record):
    return make_record()
