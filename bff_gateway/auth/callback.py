"""
OAuth Callback Handler
======================

Authorization code -> tokens -> profile -> local user -> session.

States:
    AWAITING_PROVIDER_RESPONSE
      -> TOKEN_EXCHANGED
      -> PROFILE_FETCHED
      -> PROFILE_VALIDATED
      -> USER_RECONCILED
      -> SESSION_ESTABLISHED
    any step -> FAILED

Every outcome is a redirect: FRONTEND_URL on success, /auth/error on
failure. Redirect URLs never carry token material and nothing is retried.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..config import Settings
from ..exceptions import PersistenceError, ProviderError
from ..models import OAuthTokens
from ..session.coordinator import SessionContext, SessionCoordinator
from .provider import OIDCProviderClient
from .users import UserReconciliationService
from .validator import validate_profile

logger = logging.getLogger(__name__)

ERROR_REDIRECT_PATH = "/auth/error"


class CallbackState(str, Enum):
    AWAITING_PROVIDER_RESPONSE = "awaiting_provider_response"
    TOKEN_EXCHANGED = "token_exchanged"
    PROFILE_FETCHED = "profile_fetched"
    PROFILE_VALIDATED = "profile_validated"
    USER_RECONCILED = "user_reconciled"
    SESSION_ESTABLISHED = "session_established"
    FAILED = "failed"


@dataclass
class CallbackResult:
    """Outcome of one callback run."""
    state: CallbackState
    redirect_url: str
    failure_reason: Optional[str] = None
    session_id: Optional[str] = None
    history: List[CallbackState] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is CallbackState.SESSION_ESTABLISHED


class OAuthCallbackHandler:
    """
    Drives one OAuth callback through its states.

    Args:
        provider: Identity provider client
        reconciler: User reconciliation service
        coordinator: Session coordinator (persists the record, rotates the cookie)
        settings: Application settings
    """

    def __init__(
        self,
        provider: OIDCProviderClient,
        reconciler: UserReconciliationService,
        coordinator: SessionCoordinator,
        settings: Settings,
    ):
        self.provider = provider
        self.reconciler = reconciler
        self.coordinator = coordinator
        self.settings = settings

    def failure(self, reason: str, history: Optional[List[CallbackState]] = None) -> CallbackResult:
        history = list(history or [CallbackState.AWAITING_PROVIDER_RESPONSE])
        history.append(CallbackState.FAILED)
        logger.warning(f"OAuth callback failed: {reason}")
        return CallbackResult(
            state=CallbackState.FAILED,
            redirect_url=ERROR_REDIRECT_PATH,
            failure_reason=reason,
            history=history,
        )

    async def complete(
        self,
        ctx: SessionContext,
        code: str,
        code_verifier: Optional[str],
    ) -> CallbackResult:
        """Exchange the authorization code, then run the rest of the pipeline."""
        try:
            tokens = await self.provider.exchange_code(code, code_verifier)
        except ProviderError as e:
            return self.failure(f"token exchange: {e}")

        return await self.handle(ctx, tokens)

    async def handle(self, ctx: SessionContext, tokens: OAuthTokens) -> CallbackResult:
        """
        Run the pipeline from exchanged tokens to an established session.

        Args:
            ctx: Session context of the callback request
            tokens: Tokens returned by the code exchange

        Returns:
            CallbackResult in SESSION_ESTABLISHED or FAILED state
        """
        history = [CallbackState.AWAITING_PROVIDER_RESPONSE, CallbackState.TOKEN_EXCHANGED]

        try:
            raw_profile = await self.provider.fetch_profile(tokens.access_token)
        except ProviderError as e:
            return self.failure(f"profile fetch: {e}", history)
        history.append(CallbackState.PROFILE_FETCHED)

        try:
            profile = validate_profile(raw_profile)
        except ProviderError as e:
            return self.failure(f"profile validation: {e}", history)
        history.append(CallbackState.PROFILE_VALIDATED)

        try:
            user = await self.reconciler.reconcile(profile)
        except PersistenceError as e:
            return self.failure(f"user reconciliation: {e}", history)
        history.append(CallbackState.USER_RECONCILED)

        # Full record built before the single store write
        record = self.coordinator.new_record(
            user=user,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_in=tokens.expires_in,
        )
        try:
            await self.coordinator.establish(ctx, record)
        except PersistenceError as e:
            return self.failure(f"session save: {type(e).__name__}", history)
        history.append(CallbackState.SESSION_ESTABLISHED)

        logger.info(
            "OAuth callback completed",
            extra={"user_id": user.id, "session_id": f"{record.session_id[:8]}..."},
        )
        return CallbackResult(
            state=CallbackState.SESSION_ESTABLISHED,
            redirect_url=self.settings.FRONTEND_URL,
            session_id=record.session_id,
            history=history,
        )
