"""
CSRF check for state-changing auth routes.

Token validation is not implemented yet: the check classifies the request
and reports NOT_IMPLEMENTED instead of blocking it.
"""

import logging
from enum import Enum

from fastapi import Request

logger = logging.getLogger(__name__)

CSRF_HEADER = "X-CSRF-Token"
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
EXEMPT_PATHS = frozenset({"/auth/callback"})


class CsrfCheck(str, Enum):
    EXEMPT = "exempt"
    NOT_IMPLEMENTED = "not_implemented"


def check_csrf(request: Request) -> CsrfCheck:
    if request.method in SAFE_METHODS or request.url.path in EXEMPT_PATHS:
        return CsrfCheck.EXEMPT

    # TODO: validate the header against a per-session token once the frontend sends one
    if not request.headers.get(CSRF_HEADER):
        logger.debug(f"{request.method} {request.url.path} without {CSRF_HEADER} header")

    return CsrfCheck.NOT_IMPLEMENTED
