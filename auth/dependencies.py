"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

This is the one module in auth/ that knows about HTTP. It translates the
framework-free results of auth/gate.py and auth/flows.py into FastAPI
exceptions:

  get_current_identity() -- the Auth Gate as a dependency. Raises 401 (or
      500 when the signing secret is missing), otherwise stores the Identity
      on request.state and returns it.

  failure_to_http() -- the single FailureKind -> status code mapping, shared
      with the route handlers in api/.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system. It does not import from api/.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.errors import AuthFailure, FailureKind
from auth.gate import authenticate_request
from auth.models import Identity

logger = logging.getLogger("authgate.auth")

STATUS_BY_KIND: dict[FailureKind, int] = {
    FailureKind.VALIDATION: 400,
    FailureKind.UNAUTHORIZED: 401,
    FailureKind.NOT_FOUND: 404,
    FailureKind.CONFLICT: 409,
    FailureKind.CONFIGURATION: 500,
    FailureKind.STORAGE: 500,
}


def failure_to_http(failure: AuthFailure) -> HTTPException:
    """Build the HTTPException for a typed failure.

    401 responses carry WWW-Authenticate: Bearer as RFC 6750 asks.
    """
    headers = {"WWW-Authenticate": "Bearer"} if failure.kind is FailureKind.UNAUTHORIZED else None
    return HTTPException(
        status_code=STATUS_BY_KIND[failure.kind],
        detail={"code": failure.kind.value, "message": failure.message, "detail": failure.detail},
        headers=headers,
    )


def get_current_identity(request: Request) -> Identity:
    """Require a valid access token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    secret = getattr(request.app.state, "jwt_secret", "")
    result = authenticate_request(request.headers.get("Authorization"), secret)
    if isinstance(result, AuthFailure):
        if result.kind is FailureKind.CONFIGURATION:
            logger.error("Rejected %s %s: JWT secret is not configured", request.method, request.url.path)
        raise failure_to_http(result)
    request.state.identity = result
    return result
