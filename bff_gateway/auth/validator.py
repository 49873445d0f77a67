"""
Profile Validator
=================

Turns the raw user-info payload returned by the identity provider into a
CanonicalProfile. Fails closed: a payload without a usable subject is
rejected, never partially accepted.

Two strategies are tried in order:
1. Schema validation (pydantic, strict on every field).
2. Manual structural checks that keep the subject and drop any malformed
   optional field instead of rejecting the whole profile.

Both return the same CanonicalProfile for a well-formed payload, and both
reject an empty payload.
"""

import logging
import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator

from ..exceptions import ProfileValidationError
from ..models import CanonicalProfile

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class _ProfileSchema(BaseModel):
    """Shape of the provider user-info response."""

    model_config = ConfigDict(extra="ignore")

    sub: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    identities: Optional[Dict[str, Any]] = None

    @field_validator("email", mode="before")
    @classmethod
    def plain_address(cls, value: Any) -> Any:
        if isinstance(value, str) and not _EMAIL_PATTERN.match(value):
            raise ValueError("not a plain email address")
        return value


def validate_with_schema(raw: Any) -> CanonicalProfile:
    """
    Validate a raw profile against the strict schema.

    Raises:
        ProfileValidationError: If any field fails validation
    """
    try:
        parsed = _ProfileSchema.model_validate(raw)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) or "<root>" for err in e.errors()})
        raise ProfileValidationError(f"Invalid user profile: {', '.join(fields)}") from None

    return CanonicalProfile(
        id=parsed.sub,
        # EmailStr normalizes the domain; keep the provider's spelling
        email=raw["email"] if parsed.email is not None else None,
        name=parsed.name,
        picture=parsed.picture,
        identities=parsed.identities,
    )


def _optional_str(raw: Dict[str, Any], key: str) -> Optional[str]:
    value = raw.get(key)
    if isinstance(value, str):
        return value
    if value is not None:
        logger.debug(f"Dropping malformed profile field: {key}")
    return None


def validate_manually(raw: Any) -> CanonicalProfile:
    """
    Structural fallback: require a non-empty string `sub`, keep whatever
    optional fields are well-formed.

    Raises:
        ProfileValidationError: If the payload is not an object or has no subject
    """
    if not isinstance(raw, dict):
        raise ProfileValidationError("Invalid user profile: not an object")

    sub = raw.get("sub")
    if not isinstance(sub, str) or not sub:
        raise ProfileValidationError("Invalid user profile: missing sub")

    email = _optional_str(raw, "email")
    if email is not None and not _EMAIL_PATTERN.match(email):
        logger.debug("Dropping malformed profile field: email")
        email = None

    identities = raw.get("identities")
    if identities is not None and not isinstance(identities, dict):
        logger.debug("Dropping malformed profile field: identities")
        identities = None

    return CanonicalProfile(
        id=sub,
        email=email,
        name=_optional_str(raw, "name"),
        picture=_optional_str(raw, "picture"),
        identities=identities,
    )


def validate_profile(raw: Any) -> CanonicalProfile:
    """
    Validate a raw provider profile.

    Args:
        raw: Decoded JSON from the user-info endpoint

    Returns:
        CanonicalProfile

    Raises:
        ProfileValidationError: If neither strategy accepts the payload
    """
    try:
        return validate_with_schema(raw)
    except ProfileValidationError as e:
        logger.warning(f"Schema validation failed, using manual checks: {e}")

    return validate_manually(raw)
