"""
Identity provider client for the OIDC authorization code flow.

Endpoints (relative to OIDC_ENDPOINT):
    /oidc/auth   authorization (browser redirect)
    /oidc/token  code exchange (confidential client, PKCE S256)
    /oidc/me     user info

Every failure surfaces as ProviderError. Error messages carry the endpoint
and status only, never token material or response bodies.
"""

import base64
import hashlib
import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..exceptions import ProviderError
from ..models import OAuthTokens

logger = logging.getLogger(__name__)


# =============================================================================
# PKCE Helper Functions
# =============================================================================

def generate_code_verifier() -> str:
    """
    Generate a cryptographically random code verifier for PKCE.

    Returns:
        Base64-URL-encoded random string (43 characters)
    """
    verifier_bytes = secrets.token_bytes(32)
    return base64.urlsafe_b64encode(verifier_bytes).decode("utf-8").rstrip("=")


def generate_code_challenge(verifier: str) -> str:
    """
    Generate code challenge from verifier using S256 method.

    Args:
        verifier: Code verifier string

    Returns:
        Base64-URL-encoded SHA256 hash of verifier
    """
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


def generate_state() -> str:
    return secrets.token_urlsafe(32)


# =============================================================================
# Provider Client
# =============================================================================

class OIDCProviderClient:
    """
    Thin async client for the identity provider.

    Args:
        settings: Application settings (app credentials, endpoint, scopes)
        http_client: Shared httpx.AsyncClient; when omitted a short-lived
                     client is opened per call
    """

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._http_client = http_client

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.settings.oidc_endpoint_url}/oidc/auth"

    @property
    def token_endpoint(self) -> str:
        return f"{self.settings.oidc_endpoint_url}/oidc/token"

    @property
    def userinfo_endpoint(self) -> str:
        return f"{self.settings.oidc_endpoint_url}/oidc/me"

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.settings.PROVIDER_TIMEOUT_SECONDS) as client:
            yield client

    # ------------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------------

    def build_authorization_url(self, state: str, code_challenge: str) -> str:
        params = {
            "client_id": self.settings.OIDC_APP_ID,
            "response_type": "code",
            "redirect_uri": self.settings.OIDC_REDIRECT_URI,
            "scope": self.settings.OIDC_SCOPES,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.authorization_endpoint}?{urlencode(params)}"

    # ------------------------------------------------------------------------
    # Token Exchange
    # ------------------------------------------------------------------------

    async def exchange_code(self, code: str, code_verifier: Optional[str]) -> OAuthTokens:
        """
        Exchange an authorization code for provider tokens.

        Args:
            code: Authorization code from the callback
            code_verifier: PKCE verifier stored at login

        Returns:
            OAuthTokens

        Raises:
            ProviderError: On network failure, non-2xx status, or a response
                           without an access token
        """
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.OIDC_REDIRECT_URI,
            "client_id": self.settings.OIDC_APP_ID,
            "client_secret": self.settings.OIDC_APP_SECRET,
        }
        if code_verifier:
            payload["code_verifier"] = code_verifier

        try:
            async with self._client() as client:
                response = await client.post(
                    self.token_endpoint,
                    data=payload,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Token exchange request failed: {type(e).__name__}")
            raise ProviderError("Token exchange request failed") from e

        if not response.is_success:
            logger.warning(f"Token endpoint returned {response.status_code}")
            raise ProviderError(f"Token exchange failed with status {response.status_code}")

        try:
            return OAuthTokens.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ProviderError("Token endpoint returned an invalid response") from e

    # ------------------------------------------------------------------------
    # User Info
    # ------------------------------------------------------------------------

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        """
        Fetch the raw user-info payload for an access token.

        Raises:
            ProviderError: On network failure, non-2xx status, or a non-JSON body
        """
        try:
            async with self._client() as client:
                response = await client.get(
                    self.userinfo_endpoint,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"User info request failed: {type(e).__name__}")
            raise ProviderError("User info request failed") from e

        if not response.is_success:
            logger.warning(f"User info endpoint returned {response.status_code}")
            raise ProviderError(f"User info request failed with status {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError("User info endpoint returned invalid JSON") from e
