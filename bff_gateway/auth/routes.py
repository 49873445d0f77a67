"""
Authentication routes for the OIDC login flow and session inspection.

This module implements the OAuth 2.0 / OIDC authorization code flow (with
PKCE) against the configured identity provider. Provider tokens stay in the
server-side session; the browser only receives the session cookie.
"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, RedirectResponse

from ..exceptions import AuthenticationFailure, StoreError
from ..models import AuthStatusResponse, MessageResponse, SessionUser, UserResponse
from ..session.coordinator import SessionContext, SessionCoordinator
from .callback import ERROR_REDIRECT_PATH, OAuthCallbackHandler
from .csrf import check_csrf
from .deps import (
    get_callback_handler,
    get_coordinator,
    get_current_user,
    get_provider,
    get_session_context,
    get_user_service,
    require_session,
    require_user,
)
from .provider import (
    OIDCProviderClient,
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
)
from .users import UserReconciliationService

logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
)


def _error_redirect() -> RedirectResponse:
    return RedirectResponse(url=ERROR_REDIRECT_PATH, status_code=status.HTTP_302_FOUND)


# =============================================================================
# Login Flow
# =============================================================================

@auth_router.get("/login", response_class=RedirectResponse)
async def login(
    ctx: SessionContext = Depends(get_session_context),
    coordinator: SessionCoordinator = Depends(get_coordinator),
    provider: OIDCProviderClient = Depends(get_provider),
):
    """
    Initiate the OIDC login flow by redirecting to the identity provider.

    This endpoint:
    1. Generates the state parameter and a PKCE verifier/challenge pair
    2. Stores state and verifier in a (pre-auth) server-side session
    3. Redirects the browser to the provider's authorization endpoint
    """
    state = generate_state()
    code_verifier = generate_code_verifier()
    code_challenge = generate_code_challenge(code_verifier)

    coordinator.begin_login(ctx, state, code_verifier)

    return RedirectResponse(
        url=provider.build_authorization_url(state, code_challenge),
        status_code=status.HTTP_302_FOUND,
    )


@auth_router.get("/callback", response_class=RedirectResponse)
async def callback(
    code: Optional[str] = Query(None, description="Authorization code from the provider"),
    state: Optional[str] = Query(None, description="State parameter for CSRF protection"),
    error: Optional[str] = Query(None, description="Error code if authentication failed"),
    error_description: Optional[str] = Query(None, description="Error description"),
    ctx: SessionContext = Depends(get_session_context),
    coordinator: SessionCoordinator = Depends(get_coordinator),
    handler: OAuthCallbackHandler = Depends(get_callback_handler),
):
    """
    Handle the OAuth callback from the identity provider.

    Always answers with a 302: to FRONTEND_URL once the session is
    established, to /auth/error otherwise.
    """
    expected_state, code_verifier = coordinator.consume_login(ctx)

    if error:
        logger.warning(f"Provider returned error: {error} - {error_description}")
        return _error_redirect()

    if not code or not state:
        logger.warning("Callback missing code or state parameter")
        return _error_redirect()

    if not expected_state or not secrets.compare_digest(state, expected_state):
        logger.warning("Callback state does not match the pending login")
        return _error_redirect()

    result = await handler.complete(ctx, code, code_verifier)
    return RedirectResponse(url=result.redirect_url, status_code=status.HTTP_302_FOUND)


# =============================================================================
# Session Inspection
# =============================================================================

@auth_router.get(
    "/status",
    response_model=AuthStatusResponse,
    response_model_exclude_none=True,
)
async def auth_status(user: Optional[SessionUser] = Depends(get_current_user)):
    """Report whether the current session is authenticated."""
    if user is None:
        return AuthStatusResponse(is_authenticated=False)
    return AuthStatusResponse(is_authenticated=True, user=UserResponse.from_session_user(user))


@auth_router.get("/profile", response_model=UserResponse)
async def profile(
    user: SessionUser = Depends(require_user),
    user_service: UserReconciliationService = Depends(get_user_service),
):
    """
    Return the local profile of the signed-in user.

    Raises:
        AuthenticationFailure: No session, or the user no longer exists
    """
    local_user = await user_service.get_user(user.id)
    if local_user is None:
        raise AuthenticationFailure("User not found")
    return UserResponse.from_session_user(local_user)


# =============================================================================
# Session Termination / Refresh
# =============================================================================

@auth_router.post(
    "/logout",
    response_model=MessageResponse,
    dependencies=[Depends(check_csrf)],
)
async def logout(
    ctx: SessionContext = Depends(require_session),
    coordinator: SessionCoordinator = Depends(get_coordinator),
):
    """Destroy the current session and clear its cookie."""
    try:
        await coordinator.destroy(ctx)
    except StoreError as e:
        logger.error(f"Logout failed: {type(e).__name__}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Logout failed"},
        )

    return MessageResponse(message="Logged out successfully")


@auth_router.post(
    "/refresh",
    response_model=MessageResponse,
    status_code=status.HTTP_501_NOT_IMPLEMENTED,
    dependencies=[Depends(check_csrf), Depends(require_session)],
)
async def refresh():
    """Provider token refresh (not implemented)."""
    return MessageResponse(message="Token refresh not yet implemented")


@auth_router.get("/error", response_model=MessageResponse)
async def auth_error():
    """Landing endpoint for failed login attempts."""
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"message": "Authentication failed"},
    )
