"""
BFF Authentication Gateway

Backend-For-Frontend gateway that performs the OAuth2 / OIDC authorization
code exchange with an external identity provider and keeps the resulting
identity in a server-side session, keyed by an opaque cookie.
"""

__version__ = "1.0.0"
