"""
FastAPI dependencies for session-aware routes.

Usage in routes:
    @router.get("/protected")
    async def protected_route(user: SessionUser = Depends(require_user)):
        return {"id": user.id}
"""

from typing import Optional

from fastapi import Depends, Request

from ..exceptions import AuthenticationFailure
from ..models import SessionUser
from ..session.coordinator import SessionContext, SessionCoordinator
from .callback import OAuthCallbackHandler
from .provider import OIDCProviderClient
from .users import UserReconciliationService


def get_session_context(request: Request) -> SessionContext:
    """
    Session attached by SessionMiddleware.

    Falls back to an empty context when the middleware is not installed
    (e.g. a router mounted on a bare app in tests).
    """
    ctx = getattr(request.state, "session", None)
    if ctx is None:
        ctx = SessionContext()
        request.state.session = ctx
    return ctx


def get_current_user(ctx: SessionContext = Depends(get_session_context)) -> Optional[SessionUser]:
    return ctx.user if ctx.is_authenticated else None


def require_session(ctx: SessionContext = Depends(get_session_context)) -> SessionContext:
    """
    Raises:
        AuthenticationFailure: If the request carries no authenticated session
    """
    if not ctx.is_authenticated:
        raise AuthenticationFailure()
    return ctx


def require_user(ctx: SessionContext = Depends(require_session)) -> SessionUser:
    return ctx.user


# =============================================================================
# Application Components
# =============================================================================

def get_coordinator(request: Request) -> SessionCoordinator:
    return request.app.state.session_coordinator


def get_provider(request: Request) -> OIDCProviderClient:
    return request.app.state.provider_client


def get_user_service(request: Request) -> UserReconciliationService:
    return request.app.state.user_service


def get_callback_handler(request: Request) -> OAuthCallbackHandler:
    return request.app.state.callback_handler
