"""
Route Tests for the Gateway

Exercises the /auth/* endpoints end to end through the session middleware,
with the identity provider's token and user-info calls mocked.
"""

from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from bff_gateway.auth.provider import OIDCProviderClient
from bff_gateway.auth.users import InMemoryUserRepository
from bff_gateway.exceptions import ProviderError, StoreError
from bff_gateway.main import create_application
from bff_gateway.models import OAuthTokens
from bff_gateway.session.local_store import LocalSessionStore
from bff_gateway.session.redis_store import RedisSessionStore


@pytest.fixture
def store():
    return LocalSessionStore()


@pytest.fixture
def repository():
    return InMemoryUserRepository()


@pytest.fixture
def provider(settings):
    provider = OIDCProviderClient(settings)
    provider.exchange_code = AsyncMock(
        return_value=OAuthTokens(access_token="provider-at", refresh_token="provider-rt", expires_in=3600)
    )
    provider.fetch_profile = AsyncMock(
        return_value={"sub": "u1", "email": "a@x.com", "name": "Ada"}
    )
    return provider


@pytest.fixture
def app(settings, store, repository, provider):
    return create_application(
        settings,
        session_store=store,
        user_repository=repository,
        provider_client=provider,
    )


@pytest.fixture
def client(app):
    """Test client (redirects are not followed)"""
    return TestClient(app, follow_redirects=False)


def start_login(client):
    response = client.get("/auth/login")
    assert response.status_code == 302
    return parse_qs(urlparse(response.headers["location"]).query)["state"][0]


def log_in(client):
    state = start_login(client)
    response = client.get("/auth/callback", params={"code": "code-1", "state": state})
    assert response.status_code == 302
    assert response.headers["location"] == client.app.state.settings.FRONTEND_URL
    return response


# =============================================================================
# Login / Callback
# =============================================================================

def test_login_redirects_to_provider_and_sets_cookie(client, settings, store):
    response = client.get("/auth/login")

    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert location.netloc == "idp.example.com"
    assert location.path == "/oidc/auth"
    params = parse_qs(location.query)
    assert params["code_challenge_method"] == ["S256"]
    assert settings.SESSION_COOKIE_NAME in response.cookies
    assert len(store) == 1


def test_full_login_flow_authenticates(client, provider, repository):
    log_in(client)

    provider.exchange_code.assert_awaited_once()
    code, verifier = provider.exchange_code.await_args.args
    assert code == "code-1"
    assert verifier

    response = client.get("/auth/status")
    assert response.status_code == 200
    body = response.json()
    assert body["isAuthenticated"] is True
    assert body["user"]["externalId"] == "u1"
    assert body["user"]["email"] == "a@x.com"
    assert len(repository) == 1


def test_login_rotates_session_and_drops_pre_auth_record(client, store):
    log_in(client)

    # Only the authenticated record remains
    assert len(store) == 1
    (entry,) = store._entries.values()
    assert entry.record.user.external_id == "u1"
    assert entry.record.oauth_state is None


def test_callback_with_state_mismatch_redirects_to_error(client, provider):
    start_login(client)

    response = client.get("/auth/callback", params={"code": "code-1", "state": "forged"})

    assert response.status_code == 302
    assert response.headers["location"] == "/auth/error"
    provider.exchange_code.assert_not_awaited()


def test_callback_state_is_single_use(client, provider):
    state = start_login(client)
    client.get("/auth/callback", params={"code": "code-1", "state": "forged"})

    response = client.get("/auth/callback", params={"code": "code-1", "state": state})

    assert response.headers["location"] == "/auth/error"


def test_callback_without_login_redirects_to_error(client, provider):
    response = client.get("/auth/callback", params={"code": "code-1", "state": "anything"})

    assert response.status_code == 302
    assert response.headers["location"] == "/auth/error"


def test_callback_with_provider_error_param_redirects_to_error(client, provider):
    state = start_login(client)

    response = client.get(
        "/auth/callback",
        params={"error": "access_denied", "error_description": "User cancelled", "state": state},
    )

    assert response.headers["location"] == "/auth/error"
    provider.exchange_code.assert_not_awaited()


def test_callback_missing_code_redirects_to_error(client):
    state = start_login(client)

    response = client.get("/auth/callback", params={"state": state})

    assert response.headers["location"] == "/auth/error"


def test_callback_profile_fetch_failure_redirects_to_error(client, provider, store):
    provider.fetch_profile.side_effect = ProviderError("User info request failed")

    state = start_login(client)
    response = client.get("/auth/callback", params={"code": "code-1", "state": state})

    assert response.status_code == 302
    assert response.headers["location"] == "/auth/error"
    assert all(entry.record.user is None for entry in store._entries.values())
    assert client.get("/auth/status").json() == {"isAuthenticated": False}


def test_redirects_never_carry_tokens(client):
    response = log_in(client)

    assert "provider-at" not in response.headers["location"]
    assert "provider-at" not in response.headers.get("set-cookie", "")


# =============================================================================
# Status / Profile
# =============================================================================

def test_status_without_cookie_is_unauthenticated(client):
    response = client.get("/auth/status")

    assert response.status_code == 200
    assert response.json() == {"isAuthenticated": False}


def test_status_with_forged_cookie_is_unauthenticated(client, settings):
    client.cookies.set(settings.SESSION_COOKIE_NAME, "forged")

    response = client.get("/auth/status")

    assert response.json() == {"isAuthenticated": False}


def test_status_never_returns_provider_tokens(client):
    log_in(client)

    response = client.get("/auth/status")

    assert "provider-at" not in response.text
    assert "provider-rt" not in response.text


def test_profile_requires_session(client):
    response = client.get("/auth/profile")

    assert response.status_code == 401
    assert response.json() == {"message": "Not authenticated"}


def test_profile_returns_local_user(client):
    log_in(client)

    response = client.get("/auth/profile")

    assert response.status_code == 200
    body = response.json()
    assert body["externalId"] == "u1"
    assert body["name"] == "Ada"
    assert "providerAccessToken" not in body


def test_profile_for_deleted_user_returns_401(client, repository):
    log_in(client)

    with patch.object(repository, "get_by_id", AsyncMock(return_value=None)):
        response = client.get("/auth/profile")

    assert response.status_code == 401
    assert response.json() == {"message": "User not found"}


# =============================================================================
# Logout / Refresh / Error
# =============================================================================

def test_logout_destroys_session_and_clears_cookie(client, store):
    log_in(client)

    response = client.post("/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"message": "Logged out successfully"}
    assert "Max-Age=0" in response.headers["set-cookie"]
    assert len(store) == 0
    assert client.get("/auth/status").json() == {"isAuthenticated": False}


def test_logout_without_session_returns_401(client):
    response = client.post("/auth/logout")

    assert response.status_code == 401


def test_logout_store_failure_returns_500(client, store):
    log_in(client)

    with patch.object(store, "destroy", AsyncMock(side_effect=StoreError("delete failed"))):
        response = client.post("/auth/logout")

    assert response.status_code == 500
    assert response.json() == {"message": "Logout failed"}


def test_refresh_is_not_implemented(client):
    log_in(client)

    response = client.post("/auth/refresh")

    assert response.status_code == 501
    assert response.json() == {"message": "Token refresh not yet implemented"}


def test_refresh_requires_session(client):
    response = client.post("/auth/refresh")

    assert response.status_code == 401


def test_error_endpoint_returns_401(client):
    response = client.get("/auth/error")

    assert response.status_code == 401
    assert response.json() == {"message": "Authentication failed"}


# =============================================================================
# Session persistence failures / health
# =============================================================================

def test_session_write_failure_returns_500(client, store):
    with patch.object(store, "set", AsyncMock(side_effect=StoreError("write failed"))):
        response = client.get("/auth/login")

    assert response.status_code == 500
    assert response.json() == {"message": "Failed to persist session"}


def test_health_reports_session_store(app):
    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "service": "bff-gateway",
        "sessionStore": "local",
    }


def test_empty_injected_components_are_used(app, store, repository, provider):
    assert len(store) == 0
    assert len(repository) == 0

    assert app.state.session_store is store
    assert app.state.user_service.repository is repository
    assert app.state.provider_client is provider

    log_in(TestClient(app, follow_redirects=False))

    assert len(repository) == 1
    assert len(store) == 1


def test_malformed_redis_url_reports_failed_store(settings, repository, provider):
    app = create_application(
        settings,
        session_store=RedisSessionStore("localhost:6379"),
        user_repository=repository,
        provider_client=provider,
    )

    with TestClient(app) as client:
        assert client.get("/health").json()["sessionStore"] == "remote (failed)"
        assert client.get("/auth/status").json() == {"isAuthenticated": False}


class BrokenConnectStore(LocalSessionStore):
    async def connect(self):
        raise RuntimeError("connect exploded")


def test_failed_connect_task_is_logged_on_shutdown(settings, repository, provider, caplog):
    app = create_application(
        settings,
        session_store=BrokenConnectStore(),
        user_repository=repository,
        provider_client=provider,
    )

    with TestClient(app) as client:
        assert client.get("/health").status_code == 200

    assert "Session store connect task failed" in caplog.text
