"""
ASGI middleware attaching the session to every request.

Handlers read the session from `request.state.session` (a SessionContext);
the coordinator commits it once the handler has produced a response.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from .coordinator import SessionCoordinator


class SessionMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, coordinator: SessionCoordinator):
        super().__init__(app)
        self.coordinator = coordinator

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        cookie_value = request.cookies.get(self.coordinator.cookie_name)
        ctx = await self.coordinator.load(cookie_value)
        request.state.session = ctx

        response = await call_next(request)
        return await self.coordinator.commit(ctx, response)
