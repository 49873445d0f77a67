"""
User Reconciliation
===================

Keeps the local user table in step with the identity provider: on every
successful login the validated profile is upserted by its external ID.

Update rule: a stored field is only overwritten when the profile supplies a
non-empty value that differs from it, so a provider that omits a field
never erases local data, and an unchanged profile writes nothing.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from ..exceptions import PersistenceError
from ..models import CanonicalProfile, LocalUser, SessionUser

logger = logging.getLogger(__name__)


class UserAlreadyExistsError(ValueError):
    """Raised by UserRepository.create when the external ID is already taken."""


# =============================================================================
# Repository
# =============================================================================

class UserRepository(Protocol):
    """Persistence interface for local users (relational service in production)."""

    async def find_by_external_id(self, external_id: str) -> Optional[LocalUser]:
        ...

    async def get_by_id(self, user_id: str) -> Optional[LocalUser]:
        ...

    async def create(
        self,
        external_id: str,
        email: Optional[str],
        name: Optional[str],
        avatar_url: Optional[str],
    ) -> LocalUser:
        """Raises UserAlreadyExistsError if `external_id` is already taken."""
        ...

    async def update(self, user_id: str, changes: Dict[str, Any]) -> LocalUser:
        ...


class InMemoryUserRepository:
    """
    Process-local UserRepository.

    Used for development and tests. Each call runs under one lock; create()
    rejects a duplicate external ID with UserAlreadyExistsError.
    """

    def __init__(self):
        self._users: Dict[str, LocalUser] = {}
        self._lock = asyncio.Lock()

    async def find_by_external_id(self, external_id: str) -> Optional[LocalUser]:
        async with self._lock:
            for user in self._users.values():
                if user.external_id == external_id:
                    return user.model_copy()
        return None

    async def get_by_id(self, user_id: str) -> Optional[LocalUser]:
        async with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    async def create(
        self,
        external_id: str,
        email: Optional[str],
        name: Optional[str],
        avatar_url: Optional[str],
    ) -> LocalUser:
        now = datetime.now(timezone.utc)
        async with self._lock:
            if any(u.external_id == external_id for u in self._users.values()):
                raise UserAlreadyExistsError(f"User with external ID {external_id} already exists")
            user = LocalUser(
                id=str(uuid.uuid4()),
                external_id=external_id,
                email=email,
                name=name,
                avatar_url=avatar_url,
                created_at=now,
                updated_at=now,
            )
            self._users[user.id] = user
            return user.model_copy()

    async def update(self, user_id: str, changes: Dict[str, Any]) -> LocalUser:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise KeyError(user_id)
            # externalId is immutable once set
            changes = {k: v for k, v in changes.items() if k != "external_id"}
            updated = user.model_copy(update={**changes, "updated_at": datetime.now(timezone.utc)})
            self._users[user_id] = updated
            return updated.model_copy()

    def __len__(self) -> int:
        return len(self._users)


# =============================================================================
# Reconciliation Service
# =============================================================================

def to_session_user(user: LocalUser) -> SessionUser:
    return SessionUser(
        id=user.id,
        external_id=user.external_id,
        email=user.email,
        name=user.name,
        avatar_url=user.avatar_url,
    )


def compute_changes(user: LocalUser, profile: CanonicalProfile) -> Dict[str, Any]:
    """
    Fields to write for `user` given a fresh profile.

    Only non-empty profile values that differ from the stored ones are kept.
    """
    candidates = {
        "email": profile.email,
        "name": profile.name,
        "avatar_url": profile.picture,
    }
    return {
        field: value
        for field, value in candidates.items()
        if value and value != getattr(user, field)
    }


class UserReconciliationService:
    """
    Upserts the local user for a validated profile.

    Args:
        repository: UserRepository implementation
    """

    def __init__(self, repository: UserRepository):
        self.repository = repository

    async def reconcile(self, profile: CanonicalProfile) -> SessionUser:
        """
        Find the local user by external ID, creating or updating it as needed.

        A concurrent first login for the same subject can win the create; the
        loser re-reads that user and applies its own changes as an update.

        Returns:
            SessionUser projection of the local user

        Raises:
            PersistenceError: If the repository fails (cause is logged only)
        """
        try:
            user = await self.repository.find_by_external_id(profile.id)

            if user is None:
                try:
                    user = await self.repository.create(
                        external_id=profile.id,
                        email=profile.email,
                        name=profile.name,
                        avatar_url=profile.picture,
                    )
                    logger.info("Created local user", extra={"user_id": user.id})
                    return to_session_user(user)
                except UserAlreadyExistsError:
                    logger.info("Local user created concurrently, re-reading")
                    user = await self.repository.find_by_external_id(profile.id)
                    if user is None:
                        raise

            changes = compute_changes(user, profile)
            if changes:
                user = await self.repository.update(user.id, changes)
                logger.info(
                    "Updated local user",
                    extra={"user_id": user.id, "fields": sorted(changes)},
                )

            return to_session_user(user)

        except Exception as e:
            logger.error(f"User reconciliation failed: {type(e).__name__}: {e}")
            raise PersistenceError("Failed to process user data") from e

    async def get_user(self, user_id: str) -> Optional[SessionUser]:
        """
        Raises:
            PersistenceError: If the repository fails
        """
        try:
            user = await self.repository.get_by_id(user_id)
        except Exception as e:
            logger.error(f"User lookup failed: {type(e).__name__}: {e}")
            raise PersistenceError("Failed to load user") from e

        return to_session_user(user) if user else None
