"""
Authentication Package

This package handles the OAuth2 / OpenID Connect login flow against the
identity provider and everything that turns its result into a local,
server-side session.

Key responsibilities:
- Login initiation (state + PKCE) and callback handling
- Raw profile validation (fails closed on a missing subject)
- Local user reconciliation (upsert by external ID)
- Session-aware FastAPI dependencies and the /auth/* endpoints

Modules:
- routes: Public authentication endpoints (/auth/login, /auth/callback, etc.)
- provider: Identity provider HTTP client and PKCE helpers
- callback: Callback state machine (code -> tokens -> profile -> session)
- validator: Raw profile -> CanonicalProfile
- users: User repository interface and reconciliation service
- deps: FastAPI dependencies (current session, current user)
- csrf: CSRF check for state-changing routes

The authentication flow:
1. Browser hits /auth/login; a pre-auth session stores state and verifier
2. User authenticates with the identity provider
3. /auth/callback checks state, exchanges the code, validates the profile
4. The local user is reconciled and a fresh session is established
5. Browser is sent back to the front end with only the session cookie
"""

from .routes import auth_router

__all__ = [
    "auth_router",
]
