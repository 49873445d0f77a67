"""
Configuration module for the BFF Authentication Gateway.

This module uses Pydantic Settings to load and validate environment variables
for the identity provider (OIDC app credentials and endpoints), the server-side
session (secret, cookie, store backend) and the front-end redirect target.

Environment variables are loaded from .env file or system environment.
Missing required settings are fatal at startup (ConfigurationError).
"""

import logging
from functools import lru_cache
from typing import Any, List, Literal, Optional

from pydantic import Field, HttpUrl, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Identity provider credentials and the session secret are required;
    everything else has a development-friendly default.
    """

    # =========================================================================
    # Identity Provider (OIDC) Configuration
    # =========================================================================

    OIDC_APP_ID: str = Field(
        ...,
        description="Application (client) ID registered with the identity provider",
        min_length=1,
    )

    OIDC_APP_SECRET: str = Field(
        ...,
        description="Application (client) secret for the confidential client",
        min_length=1,
    )

    OIDC_ENDPOINT: HttpUrl = Field(
        ...,
        description="Identity provider base URL (e.g., https://tenant.logto.app)",
    )

    OIDC_REDIRECT_URI: str = Field(
        ...,
        description="OAuth redirect URI registered with the provider (e.g., https://app.example.com/auth/callback)",
        min_length=1,
    )

    OIDC_SCOPES: str = Field(
        default="openid profile email",
        description="Space-separated scopes requested at login",
    )

    PROVIDER_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for token exchange and user-info requests",
        gt=0,
        le=60,
    )

    # =========================================================================
    # Session Configuration
    # =========================================================================

    SESSION_SECRET: str = Field(
        ...,
        description="Secret key for signing session cookies (must be cryptographically secure)",
        min_length=32,
    )

    SESSION_STORE_TYPE: Literal["local", "remote"] = Field(
        default="local",
        description="Session store backend: 'local' (in-process) or 'remote' (Redis)",
    )

    REDIS_URL: str = Field(
        default="redis://localhost:6379",
        description="Connection URL for the remote session store",
    )

    SESSION_COOKIE_NAME: str = Field(
        default="diagram_session",
        description="Name of the session cookie",
        min_length=1,
    )

    SESSION_MAX_AGE_HOURS: int = Field(
        default=24,
        description="Session cookie max-age in hours",
        ge=1,
        le=720,
    )

    SESSION_SWEEP_INTERVAL_SECONDS: int = Field(
        default=600,
        description="Interval between expired-session sweeps for backends without native TTL",
        ge=10,
    )

    # =========================================================================
    # Front-end / Server Configuration
    # =========================================================================

    FRONTEND_URL: str = Field(
        default="http://localhost:5173",
        description="Front-end origin the browser is sent back to after login",
    )

    ENVIRONMENT: str = Field(
        default="development",
        description="Deployment environment; 'production' enables Secure cookies",
    )

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra env vars not defined here
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.strip().lower() == "production"

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production (local dev runs over plain HTTP)."""
        return self.is_production

    @property
    def session_max_age_seconds(self) -> int:
        return self.SESSION_MAX_AGE_HOURS * 60 * 60

    @property
    def oidc_endpoint_url(self) -> str:
        """
        Get provider base URL as string (for HTTP client usage).

        Returns:
            Provider URL as string without trailing slash.
        """
        return str(self.OIDC_ENDPOINT).rstrip("/")

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or empty list if not configured.
        """
        if not self.ALLOWED_ORIGINS:
            return []

        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("SESSION_STORE_TYPE", mode="before")
    @classmethod
    def normalize_store_type(cls, v: Any) -> str:
        """
        Normalize the store selector.

        'redis' is accepted as an alias for 'remote'. Unknown values fall back
        to 'local' with a warning instead of refusing to start.
        """
        value = str(v or "local").strip().lower()
        if value == "redis":
            return "remote"
        if value not in ("local", "remote"):
            logger.warning(f"Invalid SESSION_STORE_TYPE: {value}. Defaulting to 'local'.")
            return "local"
        return value

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.strip().upper()
        if level not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of {allowed_levels}, got: {v}")
        return level

    @field_validator("FRONTEND_URL")
    @classmethod
    def validate_frontend_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("FRONTEND_URL must be an absolute http(s) URL")
        return v


# =============================================================================
# Settings Loading
# =============================================================================

def load_settings(**overrides: Any) -> Settings:
    """
    Build a Settings instance, turning validation failures into ConfigurationError.

    Only the names of the offending variables are reported; their values
    (which may be secrets) are not.

    Raises:
        ConfigurationError: If required variables are missing or invalid.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        names = sorted({
            ".".join(str(part) for part in error["loc"]) or "<root>"
            for error in e.errors()
        })
        raise ConfigurationError(
            f"Missing or invalid configuration: {', '.join(names)}"
        ) from None


@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Raises:
        ConfigurationError: If required environment variables are missing
                            or invalid.
    """
    return load_settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Check non-fatal configuration concerns and return a status report.

    Called during application startup; warnings are logged, never raised.

    Example:
        >>> report = validate_configuration(settings)
        >>> for warning in report["warnings"]:
        ...     print(warning)
    """
    warnings = []

    if not settings.cookie_secure:
        warnings.append("Session cookies are not marked Secure (ENVIRONMENT is not 'production')")

    if settings.is_production and settings.FRONTEND_URL.startswith("http://"):
        warnings.append("FRONTEND_URL uses plain HTTP in production")

    if settings.is_production and settings.SESSION_STORE_TYPE == "local":
        warnings.append("In-process session store does not survive restarts or scale across workers")

    if settings.SESSION_STORE_TYPE == "remote" and (
        "localhost" in settings.REDIS_URL or "127.0.0.1" in settings.REDIS_URL
    ):
        warnings.append("REDIS_URL points to localhost (may cause issues in containers)")

    return {
        "valid": True,
        "warnings": warnings,
        "session_store": settings.SESSION_STORE_TYPE,
        "session_max_age_hours": settings.SESSION_MAX_AGE_HOURS,
    }
