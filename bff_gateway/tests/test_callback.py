"""
OAuth Callback Handler Tests

Drives the handler directly with a mocked provider client, an in-process
session store and an in-memory user repository.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, Mock, patch

import pytest

from bff_gateway.auth.callback import CallbackState, OAuthCallbackHandler
from bff_gateway.auth.provider import OIDCProviderClient
from bff_gateway.auth.users import InMemoryUserRepository, UserReconciliationService
from bff_gateway.exceptions import ProviderError, StoreError
from bff_gateway.models import OAuthTokens
from bff_gateway.session.coordinator import SessionContext, SessionCoordinator
from bff_gateway.session.local_store import LocalSessionStore


@pytest.fixture
def store():
    return LocalSessionStore()


@pytest.fixture
def repository():
    return InMemoryUserRepository()


@pytest.fixture
def provider():
    provider = Mock(spec=OIDCProviderClient)
    provider.fetch_profile = AsyncMock(return_value={"sub": "u1", "email": "a@x.com"})
    provider.exchange_code = AsyncMock(
        return_value=OAuthTokens(access_token="at-1", refresh_token="rt-1", expires_in=1800)
    )
    return provider


@pytest.fixture
def coordinator(store, settings):
    return SessionCoordinator(store, settings)


@pytest.fixture
def handler(provider, repository, coordinator, settings):
    return OAuthCallbackHandler(provider, UserReconciliationService(repository), coordinator, settings)


@pytest.mark.asyncio
async def test_successful_callback_creates_user_and_session(handler, store, repository, provider, settings):
    ctx = SessionContext()

    result = await handler.handle(ctx, OAuthTokens(access_token="at-1", expires_in=1800))

    assert result.state is CallbackState.SESSION_ESTABLISHED
    assert result.succeeded
    assert result.redirect_url == settings.FRONTEND_URL
    assert result.history == [
        CallbackState.AWAITING_PROVIDER_RESPONSE,
        CallbackState.TOKEN_EXCHANGED,
        CallbackState.PROFILE_FETCHED,
        CallbackState.PROFILE_VALIDATED,
        CallbackState.USER_RECONCILED,
        CallbackState.SESSION_ESTABLISHED,
    ]
    provider.fetch_profile.assert_awaited_once_with("at-1")

    record = await store.get(result.session_id)
    assert record.user.external_id == "u1"
    assert record.user.email == "a@x.com"
    assert record.provider_access_token == "at-1"
    assert record.expires_at - record.issued_at == timedelta(seconds=1800)
    assert len(repository) == 1
    assert ctx.session_id == result.session_id


@pytest.mark.asyncio
async def test_token_lifetime_defaults_to_one_hour(handler, store):
    result = await handler.handle(SessionContext(), OAuthTokens(access_token="at-1"))

    record = await store.get(result.session_id)
    assert record.expires_at - record.issued_at == timedelta(seconds=3600)


@pytest.mark.asyncio
async def test_profile_fetch_failure_redirects_to_error(handler, store, provider):
    provider.fetch_profile.side_effect = ProviderError("User info request failed")

    result = await handler.handle(SessionContext(), OAuthTokens(access_token="at-1"))

    assert result.state is CallbackState.FAILED
    assert result.redirect_url == "/auth/error"
    assert result.session_id is None
    assert result.history[-2:] == [CallbackState.TOKEN_EXCHANGED, CallbackState.FAILED]
    assert len(store) == 0


@pytest.mark.asyncio
async def test_profile_without_sub_fails(handler, store, repository, provider):
    provider.fetch_profile.return_value = {"email": "a@x.com"}

    result = await handler.handle(SessionContext(), OAuthTokens(access_token="at-1"))

    assert result.state is CallbackState.FAILED
    assert result.redirect_url == "/auth/error"
    assert len(store) == 0
    assert len(repository) == 0


@pytest.mark.asyncio
async def test_reconciliation_failure_fails(handler, store, repository):
    with patch.object(repository, "find_by_external_id", AsyncMock(side_effect=RuntimeError("db down"))):
        result = await handler.handle(SessionContext(), OAuthTokens(access_token="at-1"))

    assert result.state is CallbackState.FAILED
    assert "Failed to process user data" in result.failure_reason
    assert len(store) == 0


@pytest.mark.asyncio
async def test_session_save_failure_fails(handler, store):
    with patch.object(store, "set", AsyncMock(side_effect=StoreError("write failed"))):
        result = await handler.handle(SessionContext(), OAuthTokens(access_token="at-1"))

    assert result.state is CallbackState.FAILED
    assert result.redirect_url == "/auth/error"
    assert result.history[-2:] == [CallbackState.USER_RECONCILED, CallbackState.FAILED]


@pytest.mark.asyncio
async def test_failure_reason_never_contains_tokens(handler, provider):
    provider.fetch_profile.side_effect = ProviderError("User info request failed with status 401")

    result = await handler.handle(SessionContext(), OAuthTokens(access_token="secret-access-token"))

    assert "secret-access-token" not in result.failure_reason
    assert "secret-access-token" not in result.redirect_url


@pytest.mark.asyncio
async def test_complete_exchanges_code_then_establishes(handler, provider, store):
    result = await handler.complete(SessionContext(), "code-1", "verifier-1")

    provider.exchange_code.assert_awaited_once_with("code-1", "verifier-1")
    assert result.succeeded
    assert (await store.get(result.session_id)).provider_refresh_token == "rt-1"


@pytest.mark.asyncio
async def test_complete_exchange_failure_skips_profile_fetch(handler, provider):
    provider.exchange_code.side_effect = ProviderError("Token exchange failed with status 400")

    result = await handler.complete(SessionContext(), "code-1", "verifier-1")

    assert result.state is CallbackState.FAILED
    assert result.history == [CallbackState.AWAITING_PROVIDER_RESPONSE, CallbackState.FAILED]
    provider.fetch_profile.assert_not_awaited()


@pytest.mark.asyncio
async def test_pre_auth_session_is_replaced(handler, coordinator, store):
    ctx = SessionContext()
    pre_auth = coordinator.begin_login(ctx, "state-1", "verifier-1")
    await store.set(pre_auth.session_id, pre_auth)

    result = await handler.handle(ctx, OAuthTokens(access_token="at-1"))

    assert result.session_id != pre_auth.session_id
    assert await store.get(pre_auth.session_id) is None
    assert len(store) == 1
