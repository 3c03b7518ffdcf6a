"""
auth/flows.py -- Register, Login, Refresh and WhoAmI.

Each flow is a plain function of (input, store, secret) that returns either
an AuthResult or an AuthFailure. Flows never raise for expected outcomes;
exceptions from the store and the token service are caught here and turned
into typed failures. Status codes are the transport layer's business.

Security:
  Login returns one generic message whether the username is unknown or the
  password is wrong -- UserStore.authenticate() already makes the two cases
  take the same time.

  Register's username_taken/email_taken checks are advisory. The store's
  unique constraints decide; a ConflictError from create() is reported the
  same way as a failed pre-check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import ValidationError

from auth.errors import (
    CONFIGURATION_FAILURE,
    AuthFailure,
    ConflictError,
    FailureKind,
    StorageError,
)
from auth.models import Identity, TokenPair
from auth.store import UserStore
from auth.tokens import ACCESS_TOKEN_EXPIRE_SECONDS, issue_pair, verify_typed
from auth.validation import Credentials, Registration, describe

logger = logging.getLogger("authgate.auth")

_CONFLICT_MESSAGES = {
    "username": "Username already taken",
    "email": "Email already registered",
}
_BAD_CREDENTIALS = "Invalid username or password"


@dataclass(frozen=True)
class AuthResult:
    """Successful outcome of a flow.

    tokens is None only for who_am_i; user is None only for refresh.
    """

    message: str
    tokens: TokenPair | None = None
    user: dict | None = None
    expires_in: int = ACCESS_TOKEN_EXPIRE_SECONDS


def _conflict(field: str | None) -> AuthFailure:
    return AuthFailure(FailureKind.CONFLICT, _CONFLICT_MESSAGES.get(field or "", "User already exists"))


def _storage_failure(message: str) -> AuthFailure:
    return AuthFailure(FailureKind.STORAGE, message)


def register(store: UserStore, secret: str, username: str, email: str, password: str) -> AuthResult | AuthFailure:
    try:
        data = Registration(username=username, email=email, password=password)
    except ValidationError as exc:
        return AuthFailure(FailureKind.VALIDATION, "Invalid registration data", describe(exc))

    if not secret:
        return CONFIGURATION_FAILURE

    try:
        if store.username_taken(data.username):
            return _conflict("username")
        if store.email_taken(data.email):
            return _conflict("email")
        user = store.create(data.username, data.email, data.password)
    except ConflictError as exc:
        logger.info("Registration lost uniqueness race for username=%s (%s)", data.username, exc.field)
        return _conflict(exc.field)
    except StorageError:
        logger.exception("Registration failed for username=%s", data.username)
        return _storage_failure("Failed to create user account")

    tokens = issue_pair(user.id, user.username, secret)
    logger.info("Registered user id=%s username=%s", user.id, user.username)
    return AuthResult(message="Registration successful", tokens=tokens, user=user.public_view())


def login(store: UserStore, secret: str, username: str, password: str) -> AuthResult | AuthFailure:
    try:
        creds = Credentials(username=username, password=password)
    except ValidationError as exc:
        return AuthFailure(FailureKind.VALIDATION, "Invalid login data", describe(exc))

    if not secret:
        return CONFIGURATION_FAILURE

    try:
        user = store.authenticate(creds.username, creds.password)
    except StorageError:
        logger.exception("Login lookup failed for username=%s", creds.username)
        return _storage_failure("Login is temporarily unavailable")

    if user is None:
        logger.info("Failed login for username=%s", creds.username)
        return AuthFailure(FailureKind.UNAUTHORIZED, _BAD_CREDENTIALS)

    tokens = issue_pair(user.id, user.username, secret)
    logger.info("Login user id=%s username=%s", user.id, user.username)
    return AuthResult(message="Login successful", tokens=tokens, user=user.public_view())


def refresh(secret: str, refresh_token: str) -> AuthResult | AuthFailure:
    """Exchange a refresh token for a new pair.

    The presented refresh token is not invalidated and stays usable until its
    own exp. Detecting reuse would need a server-side rotation store.
    """
    if not secret:
        return CONFIGURATION_FAILURE
    payload = verify_typed(refresh_token, secret, "refresh")
    if payload is None:
        return AuthFailure(FailureKind.UNAUTHORIZED, "Invalid or expired refresh token")

    tokens = issue_pair(payload.user_id, payload.username, secret)
    return AuthResult(message="Token refreshed successfully", tokens=tokens)


def who_am_i(store: UserStore, identity: Identity) -> AuthResult | AuthFailure:
    try:
        user = store.find_by_id(identity.user_id)
    except StorageError:
        logger.exception("Identity lookup failed for id=%s", identity.user_id)
        return _storage_failure("User lookup is temporarily unavailable")
    if user is None:
        return AuthFailure(FailureKind.NOT_FOUND, "User not found")
    return AuthResult(message="Current user", user=user.public_view())
