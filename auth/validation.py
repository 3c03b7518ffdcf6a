"""
auth/validation.py -- Input shape rules for the auth flows.

The flows validate before touching the store or doing any crypto, so these
models are the single source of truth for what a username, email or password
may look like. The HTTP layer deliberately does not duplicate them.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError

USERNAME_PATTERN = r"^[a-zA-Z0-9_-]+$"


class Registration(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(min_length=8, max_length=100)


class Credentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


def describe(exc: ValidationError) -> str:
    """Flatten pydantic errors into one line: 'username: String should ...; email: ...'.

    The rejected input values are left out -- one of them may be a password.
    """
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "body"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)
