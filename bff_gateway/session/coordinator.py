"""
Session Coordinator
===================

Bridges the HTTP session cookie to the session store.

Per request:
1. load()    verify the cookie signature, look the session up in the store
2. handler   reads/changes the SessionContext at request.state.session
3. commit()  persist the outcome and write the cookie:
       destroyed          -> clear cookie
       new or modified    -> store.set + set cookie
       unmodified         -> slide cookie.expires, store.touch, refresh cookie

A failed write on commit replaces the response with a 500 so a session is
never silently lost. A failed touch is only logged; the session still exists.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from fastapi import status
from fastapi.responses import JSONResponse
from starlette.responses import Response

from ..config import Settings
from ..exceptions import StoreError
from ..models import CookieMetadata, SessionRecord, SessionUser
from .cookies import (
    clear_cookie_settings,
    cookie_settings,
    decode_session_cookie,
    encode_session_cookie,
    new_session_id,
)
from .store import SessionStore, utcnow

logger = logging.getLogger(__name__)

# Lifetime assumed when the provider omits expires_in
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


def _short(session_id: Optional[str]) -> str:
    return f"{session_id[:8]}..." if session_id else "-"


# =============================================================================
# Per-request Session State
# =============================================================================

@dataclass
class SessionContext:
    """
    Session state attached to one request.

    `record` is None for a request without a live session. Handlers mutate
    `record` in place (or go through the coordinator); commit() compares it
    against the snapshot taken at load time to decide between set and touch.
    """
    session_id: Optional[str] = None
    record: Optional[SessionRecord] = None
    is_new: bool = False
    destroyed: bool = False
    cookie_dirty: bool = False
    stale_cookie: bool = False
    load_error: bool = False
    _snapshot: Optional[Dict[str, Any]] = field(default=None, repr=False)

    @property
    def user(self) -> Optional[SessionUser]:
        return self.record.user if self.record is not None else None

    @property
    def is_authenticated(self) -> bool:
        return self.record is not None and self.record.is_authenticated

    @property
    def modified(self) -> bool:
        if self.record is None:
            return False
        return self.record.model_dump() != self._snapshot

    def mark_clean(self) -> None:
        self._snapshot = self.record.model_dump() if self.record is not None else None


# =============================================================================
# Coordinator
# =============================================================================

class SessionCoordinator:
    """
    Owns the cookie <-> store protocol for every request.

    Args:
        store: Session backend selected at startup
        settings: Application settings (cookie name, secret, max-age)
    """

    def __init__(self, store: SessionStore, settings: Settings):
        self.store = store
        self.settings = settings

    @property
    def cookie_name(self) -> str:
        return self.settings.SESSION_COOKIE_NAME

    # ------------------------------------------------------------------------
    # Request start
    # ------------------------------------------------------------------------

    async def load(self, cookie_value: Optional[str]) -> SessionContext:
        """
        Resolve the session for an incoming cookie value.

        Never raises: a missing, forged or stale cookie and a store read
        failure all yield an unauthenticated context.
        """
        if not cookie_value:
            return SessionContext()

        session_id = decode_session_cookie(cookie_value, self.settings.SESSION_SECRET)
        if session_id is None:
            return SessionContext(stale_cookie=True)

        try:
            record = await self.store.get(session_id)
        except StoreError as e:
            logger.warning(
                "Session lookup failed; treating request as unauthenticated",
                extra={"session_id": _short(session_id), "error": type(e).__name__},
            )
            return SessionContext(load_error=True)

        if record is None:
            logger.debug(f"No live session for {_short(session_id)}")
            return SessionContext(stale_cookie=True)

        ctx = SessionContext(session_id=session_id, record=record)
        ctx.mark_clean()
        return ctx

    # ------------------------------------------------------------------------
    # Operations used by routes
    # ------------------------------------------------------------------------

    def new_record(
        self,
        user: Optional[SessionUser] = None,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        expires_in: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> SessionRecord:
        """
        Build a complete record under a fresh session ID.

        Args:
            user: Authenticated identity (None for a pre-auth record)
            access_token: Provider access token
            refresh_token: Provider refresh token
            expires_in: Provider token lifetime in seconds (default 3600)
            now: Issue time (defaults to the current UTC time)

        Returns:
            SessionRecord with cookie metadata for a full max-age window
        """
        now = now or utcnow()
        max_age = self.settings.session_max_age_seconds
        lifetime = expires_in or DEFAULT_TOKEN_LIFETIME_SECONDS

        return SessionRecord(
            session_id=new_session_id(),
            user=user,
            provider_access_token=access_token,
            provider_refresh_token=refresh_token,
            issued_at=now,
            expires_at=now + timedelta(seconds=lifetime),
            cookie=CookieMetadata(
                expires=now + timedelta(seconds=max_age),
                original_max_age=max_age,
                secure=self.settings.cookie_secure,
            ),
        )

    def begin_login(self, ctx: SessionContext, state: str, code_verifier: str) -> SessionRecord:
        """
        Remember the OAuth state and PKCE verifier of a login in progress.

        Reuses the current session when there is one, otherwise allocates a
        pre-auth session. Either way the record is persisted on commit.
        """
        if ctx.record is None:
            record = self.new_record()
            ctx.session_id = record.session_id
            ctx.record = record
            ctx.is_new = True
            ctx.stale_cookie = False

        ctx.record.oauth_state = state
        ctx.record.code_verifier = code_verifier
        return ctx.record

    def consume_login(self, ctx: SessionContext) -> Tuple[Optional[str], Optional[str]]:
        """
        Take the pending (state, code_verifier) pair off the session.

        The pair is single-use: it is cleared even when the callback fails.
        """
        if ctx.record is None:
            return None, None

        state, verifier = ctx.record.oauth_state, ctx.record.code_verifier
        ctx.record.oauth_state = None
        ctx.record.code_verifier = None
        return state, verifier

    async def establish(self, ctx: SessionContext, record: SessionRecord) -> None:
        """
        Persist an authenticated record and rotate the session cookie to it.

        The record is written with a single set under its own (fresh) ID;
        the previous session, if any, is destroyed afterwards.

        Raises:
            StoreError: If the new record cannot be written
        """
        await self.store.set(record.session_id, record)

        previous_id = ctx.session_id
        if previous_id and previous_id != record.session_id:
            try:
                await self.store.destroy(previous_id)
            except StoreError as e:
                logger.warning(
                    "Failed to destroy pre-auth session after rotation",
                    extra={"session_id": _short(previous_id), "error": type(e).__name__},
                )

        ctx.session_id = record.session_id
        ctx.record = record
        ctx.is_new = False
        ctx.destroyed = False
        ctx.stale_cookie = False
        ctx.cookie_dirty = True
        ctx.mark_clean()

        logger.info("Session established", extra={"session_id": _short(record.session_id)})

    async def destroy(self, ctx: SessionContext) -> None:
        """
        Delete the current session; the cookie is cleared on commit.

        Raises:
            StoreError: If the store delete fails
        """
        if ctx.session_id:
            await self.store.destroy(ctx.session_id)
            logger.info("Session destroyed", extra={"session_id": _short(ctx.session_id)})

        ctx.record = None
        ctx.destroyed = True
        ctx.mark_clean()

    # ------------------------------------------------------------------------
    # Request end
    # ------------------------------------------------------------------------

    async def commit(self, ctx: SessionContext, response: Response) -> Response:
        """
        Persist the session outcome and write the cookie onto `response`.

        Returns:
            The original response, or a 500 JSON response if a required
            write failed
        """
        if ctx.destroyed or (ctx.stale_cookie and ctx.record is None):
            response.delete_cookie(**clear_cookie_settings(self.settings))
            return response

        if ctx.record is None or ctx.session_id is None:
            return response

        if ctx.is_new or ctx.modified:
            self._slide(ctx.record)
            try:
                await self.store.set(ctx.session_id, ctx.record)
            except StoreError as e:
                logger.error(
                    "Failed to persist session",
                    extra={"session_id": _short(ctx.session_id), "error": type(e).__name__},
                )
                return JSONResponse(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    content={"message": "Failed to persist session"},
                )
            self._write_cookie(response, ctx.session_id)
            return response

        if ctx.cookie_dirty:
            # Already persisted by establish()
            self._write_cookie(response, ctx.session_id)
            return response

        self._slide(ctx.record)
        try:
            touched = await self.store.touch(ctx.session_id, ctx.record)
        except StoreError as e:
            logger.warning(
                "Failed to extend session expiry",
                extra={"session_id": _short(ctx.session_id), "error": type(e).__name__},
            )
            return response

        if touched:
            self._write_cookie(response, ctx.session_id)
        else:
            # Destroyed concurrently (e.g. logout from another tab)
            response.delete_cookie(**clear_cookie_settings(self.settings))
        return response

    # ------------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------------

    def _slide(self, record: SessionRecord) -> None:
        max_age = self.settings.session_max_age_seconds
        record.cookie.expires = utcnow() + timedelta(seconds=max_age)
        record.cookie.original_max_age = max_age

    def _write_cookie(self, response: Response, session_id: str) -> None:
        response.set_cookie(
            value=encode_session_cookie(session_id, self.settings.SESSION_SECRET),
            **cookie_settings(self.settings),
        )
