"""
auth/tokens.py -- Signed, typed, expiring token pairs.

Security design decisions:
  JWT: python-jose with HS256. Every token carries userId, username, iat, exp
       and a type tag ("access" or "refresh"). Verification returns None on
       any failure -- bad signature, malformed token, missing claims, expiry.
       Those are routine outcomes of client-supplied data, not exceptions.

  Type separation: verify() only checks signature and expiry. verify_typed()
       adds the type check and is the only entry point the gate and the
       refresh flow use. A refresh token accepted as an access token would
       turn a 15-minute window into a 7-day one.

  Secret: always passed in by the caller. An empty secret raises
       ConfigurationError -- that is a deployment fault, not a bad token.

  Statelessness: nothing is persisted. A token is valid until its exp, and a
       refresh token can be reused until then.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import time

from jose import JWTError, jwt

from auth.errors import ConfigurationError
from auth.models import TokenPair, TokenPayload, TokenType

logger = logging.getLogger("authgate.auth")

ALGORITHM = "HS256"

ACCESS_TOKEN_EXPIRE_SECONDS = 15 * 60
REFRESH_TOKEN_EXPIRE_SECONDS = 7 * 24 * 60 * 60

_TOKEN_TYPES = ("access", "refresh")


def _require_secret(secret: str | None) -> str:
    if not secret:
        raise ConfigurationError("JWT signing secret is not configured")
    return secret


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------


def issue_pair(user_id: str, username: str, secret: str, now: int | None = None) -> TokenPair:
    """Issue an access/refresh token pair for one user.

    Both tokens share the same iat. Access expires after 900 s, refresh after
    604800 s. Each is signed independently with the same secret.

    Args:
        user_id:  Opaque user identifier, stored as the userId claim.
        username: Stored as the username claim.
        secret:   HS256 signing key. Must be non-empty.
        now:      Issue time in epoch seconds. Defaults to the current time.

    Raises ConfigurationError if secret is empty.
    """
    key = _require_secret(secret)
    iat = int(time.time()) if now is None else int(now)

    access = TokenPayload(user_id, username, iat, iat + ACCESS_TOKEN_EXPIRE_SECONDS, "access")
    refresh = TokenPayload(user_id, username, iat, iat + REFRESH_TOKEN_EXPIRE_SECONDS, "refresh")

    return TokenPair(
        access_token=jwt.encode(access.to_claims(), key, algorithm=ALGORITHM),
        refresh_token=jwt.encode(refresh.to_claims(), key, algorithm=ALGORITHM),
    )


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


def verify(token: str, secret: str) -> TokenPayload | None:
    """Check signature and expiry. Returns the payload or None on any failure.

    Does NOT check the type tag -- call verify_typed() from anything that
    grants access.
    """
    key = _require_secret(secret)
    if not token:
        return None
    try:
        claims = jwt.decode(token, key, algorithms=[ALGORITHM])
    except JWTError as exc:
        logger.debug("Token rejected: %s", exc)
        return None
    return _claims_to_payload(claims)


def verify_typed(token: str, secret: str, expected_type: TokenType) -> TokenPayload | None:
    """verify(), then reject if the payload's type tag is not expected_type."""
    payload = verify(token, secret)
    if payload is None or payload.type != expected_type:
        return None
    return payload


def _claims_to_payload(claims: dict) -> TokenPayload | None:
    """Map decoded claims onto TokenPayload, rejecting anything incomplete.

    The signature proves we issued the token, but an older or foreign token
    signed with the same key may still lack fields.
    """
    user_id = claims.get("userId")
    username = claims.get("username")
    iat = claims.get("iat")
    exp = claims.get("exp")
    token_type = claims.get("type")
    if not isinstance(user_id, str) or not isinstance(username, str):
        return None
    if not isinstance(iat, int) or not isinstance(exp, int):
        return None
    if token_type not in _TOKEN_TYPES:
        return None
    return TokenPayload(user_id=user_id, username=username, iat=iat, exp=exp, type=token_type)
