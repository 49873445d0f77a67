"""
Data Models Module

This module defines Pydantic models for the session layer, the OAuth
callback pipeline and the HTTP responses of the gateway.

Models are organized by functional area:
- Session models (session record, session user, cookie metadata)
- Identity models (canonical profile, provider tokens, local user)
- Response models (auth status, profile, messages, health)

Session models serialize with camelCase keys; that JSON is the wire format
of the remote session store.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases, populated by either name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Session Models
# ============================================================================

class SessionUser(CamelModel):
    """Identity embedded in an authenticated session (projection of LocalUser)."""
    id: str = Field(..., description="Local user identifier", min_length=1)
    external_id: str = Field(..., description="Stable identity-provider subject", min_length=1)
    email: Optional[str] = Field(None, description="User email address")
    name: Optional[str] = Field(None, description="User display name")
    avatar_url: Optional[str] = Field(None, description="Avatar / picture URL")


class CookieMetadata(CamelModel):
    """Mirror of the wire cookie attributes, kept so a stored record round-trips."""
    expires: Optional[datetime] = Field(None, description="Absolute cookie expiry (drives store eviction)")
    original_max_age: Optional[int] = Field(None, description="Cookie max-age in seconds at issue time")
    http_only: bool = Field(default=True, description="HttpOnly attribute")
    secure: bool = Field(default=False, description="Secure attribute (production only)")
    same_site: Literal["lax", "strict", "none"] = Field(default="lax", description="SameSite attribute")
    path: str = Field(default="/", description="Cookie path")

    @field_validator("expires")
    @classmethod
    def normalize_expires(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class SessionRecord(CamelModel):
    """
    Server-side state associated with one session cookie.

    A record without `user` is a valid pre-auth session (it may carry the
    OAuth state and PKCE verifier of a login in progress) but it is never
    authenticated. Provider tokens and login secrets are excluded from repr
    so that logging a record cannot leak them.
    """
    session_id: str = Field(..., description="Opaque session identifier", min_length=1)
    user: Optional[SessionUser] = Field(None, description="Authenticated identity, absent before login")
    provider_access_token: Optional[str] = Field(None, repr=False)
    provider_refresh_token: Optional[str] = Field(None, repr=False)
    issued_at: datetime = Field(..., description="Session issue time (UTC)")
    expires_at: datetime = Field(..., description="Provider token / session expiry (UTC)")
    cookie: CookieMetadata = Field(default_factory=CookieMetadata)

    # Pre-auth login state (between /auth/login and /auth/callback)
    oauth_state: Optional[str] = Field(None, repr=False)
    code_verifier: Optional[str] = Field(None, repr=False)

    @field_validator("issued_at", "expires_at")
    @classmethod
    def normalize_timestamps(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @model_validator(mode="after")
    def check_expiry_order(self) -> "SessionRecord":
        if self.expires_at < self.issued_at:
            raise ValueError("expiresAt must not be earlier than issuedAt")
        return self

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and bool(self.user.id)

    def to_wire(self) -> str:
        """Serialize to the remote-store JSON format (camelCase keys)."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_wire(cls, data: str) -> "SessionRecord":
        return cls.model_validate_json(data)


# ============================================================================
# Identity Models
# ============================================================================

class CanonicalProfile(BaseModel):
    """Validated, provider-agnostic identity produced by the profile validator."""
    id: str = Field(..., description="Provider subject identifier", min_length=1)
    email: Optional[str] = Field(None, description="User email address")
    name: Optional[str] = Field(None, description="User display name")
    picture: Optional[str] = Field(None, description="Avatar / picture URL")
    identities: Optional[Dict[str, Any]] = Field(None, description="Linked social identities")


class OAuthTokens(BaseModel):
    """Token set handed over after a successful authorization-code exchange."""
    access_token: str = Field(..., repr=False, min_length=1)
    refresh_token: Optional[str] = Field(None, repr=False)
    id_token: Optional[str] = Field(None, repr=False)
    expires_in: Optional[int] = Field(None, description="Access token lifetime in seconds")


class LocalUser(BaseModel):
    """Local user record owned by the user-persistence service."""
    id: str
    external_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Response Models
# ============================================================================

class UserResponse(CamelModel):
    """Public user profile (never includes provider tokens)."""
    id: str = Field(..., description="Local user identifier")
    external_id: str = Field(..., description="Identity-provider subject")
    email: Optional[str] = Field(None, description="User email address")
    name: Optional[str] = Field(None, description="User display name")
    avatar_url: Optional[str] = Field(None, description="Avatar / picture URL")

    @classmethod
    def from_session_user(cls, user: SessionUser) -> "UserResponse":
        return cls(
            id=user.id,
            external_id=user.external_id,
            email=user.email,
            name=user.name,
            avatar_url=user.avatar_url,
        )


class AuthStatusResponse(CamelModel):
    """Response model for GET /auth/status."""
    is_authenticated: bool = Field(..., description="Whether the session carries an authenticated user")
    user: Optional[UserResponse] = Field(None, description="Current user, when authenticated")


class MessageResponse(BaseModel):
    """Plain message body used by logout, refresh and error endpoints."""
    message: str = Field(..., description="Human-readable message")


class HealthResponse(CamelModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    session_store: str = Field(..., description="Session store backend and its state")
