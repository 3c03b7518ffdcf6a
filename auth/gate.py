"""
auth/gate.py -- Per-request enforcement of authentication.

authenticate_request() turns a raw Authorization header into an Identity or
a typed AuthFailure. It is framework-free; auth/dependencies.py wraps it for
FastAPI.

No database access happens here. The identity comes solely from the access
token, so a user deleted after issuance keeps access until the token expires
(at most 15 minutes).
"""

from __future__ import annotations

from auth.errors import CONFIGURATION_FAILURE, AuthFailure, FailureKind
from auth.models import Identity
from auth.tokens import verify_typed

_BEARER_PREFIX = "Bearer "


def authenticate_request(authorization: str | None, secret: str | None) -> Identity | AuthFailure:
    """Resolve the caller's identity from an Authorization header.

    Order of checks:
      1. header absent                -> UNAUTHORIZED
      2. not "Bearer <token>"         -> UNAUTHORIZED
      3. empty token                  -> UNAUTHORIZED
      4. signing secret not set       -> CONFIGURATION
      5. not a valid access token     -> UNAUTHORIZED
    """
    if not authorization:
        return AuthFailure(FailureKind.UNAUTHORIZED, "Missing Authorization header")

    if not authorization.startswith(_BEARER_PREFIX):
        return AuthFailure(
            FailureKind.UNAUTHORIZED,
            "Invalid Authorization header format. Use: Bearer <token>",
        )

    token = authorization[len(_BEARER_PREFIX) :].strip()
    if not token:
        return AuthFailure(FailureKind.UNAUTHORIZED, "Missing access token")

    if not secret:
        return CONFIGURATION_FAILURE

    payload = verify_typed(token, secret, "access")
    if payload is None:
        return AuthFailure(FailureKind.UNAUTHORIZED, "Invalid or expired access token")

    return Identity(user_id=payload.user_id, username=payload.username)
