"""
auth/errors.py -- Error taxonomy for the credential/token subsystem.

Two kinds of error live here:

  Exceptions (AuthError subclasses) are raised by the leaves -- UserStore and
  the token service -- for conditions the caller cannot continue past.

  AuthFailure values are what the flows and the gate *return*. They carry a
  FailureKind and a client-safe message. Only the transport layer maps a
  FailureKind to an HTTP status code.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AuthError(Exception):
    """Base class for exceptions raised inside auth/."""


class ConflictError(AuthError):
    """A uniqueness constraint rejected the write.

    field is "username" or "email" when the violated constraint could be
    identified from the driver error, otherwise None.
    """

    def __init__(self, field: str | None = None) -> None:
        self.field = field
        super().__init__(f"{field or 'user'} already exists")


class StorageError(AuthError):
    """Unexpected persistence failure."""


class ConfigurationError(AuthError):
    """The signing secret is missing. A deployment fault, not a client fault."""


class FailureKind(str, Enum):
    VALIDATION = "validation_error"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFIGURATION = "configuration_error"
    STORAGE = "storage_error"


@dataclass(frozen=True)
class AuthFailure:
    """A typed, client-safe rejection returned by a flow or the gate."""

    kind: FailureKind
    message: str
    detail: str | None = None


# Messages for server faults stay generic -- internal detail goes to the log only.
CONFIGURATION_FAILURE = AuthFailure(FailureKind.CONFIGURATION, "Server authentication is not configured.")
