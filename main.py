#!/usr/bin/env python3
"""
authgate -- operator CLI for the credential store and token service.

Usage:
  python main.py create-user alice alice@example.com
  python main.py inspect-token <token>
  python main.py inspect-token <token> --type refresh

Environment variables (see core/config.py):
  DATABASE_URL  SQLAlchemy URL of the credential store.
  JWT_SECRET    Signing secret used to verify tokens.
"""

import argparse
import json
import sys
from datetime import datetime, timezone
from getpass import getpass

from pydantic import ValidationError

from auth.errors import ConflictError, StorageError
from auth.store import UserStore
from auth.tokens import verify_typed
from auth.validation import Registration, describe
from core.config import get_settings


def _create_user(args: argparse.Namespace) -> int:
    password = getpass("Password: ")
    if password != getpass("Repeat password: "):
        print("  [!] Passwords do not match.")
        return 1
    try:
        data = Registration(username=args.username, email=args.email, password=password)
    except ValidationError as e:
        print(f"  [!] {describe(e)}")
        return 1

    settings = get_settings()
    store = UserStore(settings.database_url, bcrypt_rounds=settings.bcrypt_rounds)
    try:
        user = store.create(data.username, data.email, data.password)
    except ConflictError as e:
        print(f"  [!] {e.field or 'username or email'} already in use.")
        return 1
    except StorageError as e:
        print(f"  [!] Could not create user: {e}")
        return 1
    finally:
        store.close()

    print(f"  Created {user.username} ({user.id})")
    return 0


def _inspect_token(args: argparse.Namespace) -> int:
    secret = get_settings().jwt_secret
    if not secret:
        print("  [!] JWT_SECRET is not set.")
        return 2
    payload = verify_typed(args.token, secret, args.type)
    if payload is None:
        print(f"  [!] Not a valid, unexpired {args.type} token.")
        return 1
    claims = payload.to_claims()
    claims["expires_at"] = datetime.fromtimestamp(payload.exp, tz=timezone.utc).isoformat()
    print(json.dumps(claims, indent=2))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="authgate",
        description="Operator tools for the authgate credential store and tokens.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Register a user without going through the API")
    create.add_argument("username")
    create.add_argument("email")
    create.set_defaults(func=_create_user)

    inspect = sub.add_parser("inspect-token", help="Verify a token and print its claims")
    inspect.add_argument("token")
    inspect.add_argument(
        "--type",
        choices=["access", "refresh"],
        default="access",
        help="Expected token type (default: access)",
    )
    inspect.set_defaults(func=_inspect_token)

    args = parser.parse_args()
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
