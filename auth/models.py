"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, the token
service and the flows do the work; these only own the shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

TokenType = Literal["access", "refresh"]


@dataclass
class User:
    """A registered identity.

    password_hash is the bcrypt digest. The plaintext password never reaches
    this object. Use public_view() whenever a user leaves the process.
    """

    id: str
    username: str
    email: str
    password_hash: str
    created_at: str
    updated_at: str

    def public_view(self) -> dict:
        """Redacted representation -- everything except password_hash."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class TokenPayload:
    """Claims carried inside a signed token.

    Attribute names are Pythonic; to_claims() produces the wire field names
    (userId, username, iat, exp, type).
    """

    user_id: str
    username: str
    iat: int
    exp: int
    type: TokenType

    def to_claims(self) -> dict:
        return {
            "userId": self.user_id,
            "username": self.username,
            "iat": self.iat,
            "exp": self.exp,
            "type": self.type,
        }


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, as derived from a verified access token."""

    user_id: str
    username: str
