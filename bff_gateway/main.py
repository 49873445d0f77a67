"""
FastAPI Gateway Application Factory
===================================

Entry point of the Backend-For-Frontend authentication gateway that sits
between the browser front end and the identity provider.

Architecture:
    Browser (session cookie) -> Gateway (this service) -> Identity Provider

Routers:
    - /auth/*   : Login, callback, session status, profile, logout
    - /health   : Health check endpoint

Running the Service:
    Development:
        uvicorn bff_gateway.main:create_application --factory --reload --port 3000

    Production:
        uvicorn bff_gateway.main:create_application --factory --host 0.0.0.0 --port 3000

    With custom log level:
        LOG_LEVEL=DEBUG uvicorn bff_gateway.main:create_application --factory --reload
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .auth import auth_router
from .auth.callback import OAuthCallbackHandler
from .auth.provider import OIDCProviderClient
from .auth.users import InMemoryUserRepository, UserReconciliationService, UserRepository
from .config import Settings, get_settings, validate_configuration
from .exceptions import AuthenticationFailure, PersistenceError
from .models import HealthResponse
from .session import (
    LocalSessionStore,
    SessionCoordinator,
    SessionMiddleware,
    SessionStore,
    SessionSweeper,
    create_session_store,
)

SERVICE_NAME = "bff-gateway"

logger = logging.getLogger(__name__)


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)],
    )


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Log configuration warnings
        - Connect the session store in the background (remote backend)
        - Start the expired-session sweeper (in-process backend)

    Shutdown tasks:
        - Stop the sweeper
        - Close the session store
    """
    settings: Settings = app.state.settings
    store: SessionStore = app.state.session_store

    report = validate_configuration(settings)
    for warning in report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    logger.info(
        "Starting gateway service",
        extra={
            "service": SERVICE_NAME,
            "version": __version__,
            "environment": settings.ENVIRONMENT,
            "session_store": settings.SESSION_STORE_TYPE,
        },
    )

    # Requests arriving before the store is READY fail fast
    connect_task = asyncio.create_task(store.connect())

    sweeper: Optional[SessionSweeper] = None
    if isinstance(store, LocalSessionStore):
        sweeper = SessionSweeper(store, settings.SESSION_SWEEP_INTERVAL_SECONDS)
        sweeper.start()
    app.state.session_sweeper = sweeper

    yield

    # Shutdown
    logger.info("Shutting down gateway service")

    if sweeper is not None:
        await sweeper.stop()

    if not connect_task.done():
        connect_task.cancel()
        try:
            await connect_task
        except asyncio.CancelledError:
            pass
    elif not connect_task.cancelled() and connect_task.exception() is not None:
        logger.error(
            "Session store connect task failed",
            extra={"error": type(connect_task.exception()).__name__},
        )

    try:
        await store.close()
    except Exception as e:
        logger.error(f"Error closing session store: {e}")

    logger.info("Gateway service shutdown complete")


def create_application(
    settings: Optional[Settings] = None,
    *,
    session_store: Optional[SessionStore] = None,
    user_repository: Optional[UserRepository] = None,
    provider_client: Optional[OIDCProviderClient] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Session store, coordinator and middleware
        - Identity provider client and callback handler
        - CORS middleware
        - Route handlers
        - Exception handlers

    Components can be injected (mainly for tests); anything omitted is built
    from `settings`.

    Returns:
        FastAPI: Configured application instance

    Raises:
        ConfigurationError: If settings are not supplied and the environment
                            is missing required variables
    """
    settings = settings if settings is not None else get_settings()
    setup_logging(settings.LOG_LEVEL)

    store = session_store if session_store is not None else create_session_store(settings)
    coordinator = SessionCoordinator(store, settings)
    provider = provider_client if provider_client is not None else OIDCProviderClient(settings)
    if user_repository is None:
        user_repository = InMemoryUserRepository()
    user_service = UserReconciliationService(user_repository)

    app = FastAPI(
        title="BFF Authentication Gateway",
        description="Server-side session gateway for the OIDC authorization code flow",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.settings = settings
    app.state.session_store = store
    app.state.session_coordinator = coordinator
    app.state.provider_client = provider
    app.state.user_service = user_service
    app.state.callback_handler = OAuthCallbackHandler(provider, user_service, coordinator, settings)

    app.add_middleware(SessionMiddleware, coordinator=coordinator)

    # Configure CORS (credentials are required for the session cookie)
    origins = settings.allowed_origins_list
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    app.include_router(auth_router)

    # Health check endpoint
    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Service status and session store state."""
        return HealthResponse(
            status="ok",
            service=SERVICE_NAME,
            session_store=store.describe(),
        )

    # =========================================================================
    # Exception Handlers
    # =========================================================================

    @app.exception_handler(AuthenticationFailure)
    async def authentication_failure_handler(request: Request, exc: AuthenticationFailure) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"message": exc.message},
        )

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error(
            f"Persistence failure: {exc}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
            },
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Internal server error"},
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger.error(
            f"Unhandled exception: {type(exc).__name__}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
            },
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    return app


if __name__ == "__main__":
    """
    Direct execution entry point.

    This allows running the service directly with: python -m bff_gateway.main
    """
    settings = get_settings()

    uvicorn.run(
        "bff_gateway.main:create_application",
        factory=True,
        host="0.0.0.0",
        port=3000,
        reload=not settings.is_production,
        log_level=settings.LOG_LEVEL.lower(),
    )
