"""
auth/store.py -- SQLAlchemy Core persistence layer for user identities.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper.
Route, flow and gate code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Uniqueness of username and email is enforced by UNIQUE constraints in the
  schema. username_taken()/email_taken() are advisory pre-checks only: two
  concurrent registrations can both pass them. The INSERT in create() is the
  authoritative check -- IntegrityError becomes ConflictError.

  authenticate() always runs bcrypt, against a dummy hash when the username
  does not exist, so response time does not reveal which usernames exist.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import ConflictError, StorageError
from auth.models import User
from auth.passwords import DEFAULT_ROUNDS, hash_password, verify_password

logger = logging.getLogger("authgate.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_user_id() -> str:
    return f"user_{uuid.uuid4().hex}"


def _conflicting_field(exc: IntegrityError) -> str | None:
    """Best-effort guess at which unique column was violated.

    SQLite says "UNIQUE constraint failed: users.username"; PostgreSQL names
    the constraint (users_username_key) and the key in its detail line.
    """
    message = str(exc.orig).lower()
    if "username" in message:
        return "username"
    if "email" in message:
        return "email"
    return None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create("alice", "alice@example.com", "password1")
        same = store.authenticate("alice", "password1")
        store.close()
    """

    def __init__(self, db_url: str, bcrypt_rounds: int = DEFAULT_ROUNDS, **engine_kwargs) -> None:
        """engine_kwargs go straight to create_engine (e.g. poolclass)."""
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self.bcrypt_rounds = bcrypt_rounds
        # Same cost factor as real hashes, so the unknown-user path costs the same.
        self._dummy_hash = hash_password("authgate_timing_dummy", bcrypt_rounds)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, username: str, email: str, password: str) -> User:
        """Hash the password and insert a new user.

        Raises ConflictError if the username or email is already taken --
        including when a concurrent request won the race after our pre-check.
        Raises StorageError on any other database failure.
        """
        now = _now_iso()
        user = User(
            id=_new_user_id(),
            username=username,
            email=email,
            password_hash=hash_password(password, self.bcrypt_rounds),
            created_at=now,
            updated_at=now,
        )
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user.id,
                        username=user.username,
                        email=user.email,
                        password_hash=user.password_hash,
                        created_at=user.created_at,
                        updated_at=user.updated_at,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ConflictError(_conflicting_field(exc)) from exc
        except SQLAlchemyError as exc:
            logger.error("User insert failed for username=%s: %s", username, exc)
            raise StorageError("Failed to create user") from exc
        logger.info("Created user id=%s username=%s", user.id, user.username)
        return user

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        return self._fetch_user(_users.select().where(_users.c.username == username))

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        return self._fetch_user(_users.select().where(_users.c.email == email))

    def find_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        return self._fetch_user(_users.select().where(_users.c.id == user_id))

    def username_taken(self, username: str) -> bool:
        return self._exists(select(_users.c.id).where(_users.c.username == username).limit(1))

    def email_taken(self, email: str) -> bool:
        return self._exists(select(_users.c.id).where(_users.c.email == email).limit(1))

    def authenticate(self, username: str, password: str) -> User | None:
        """Verify a username/password pair with timing equalization.

        Always runs bcrypt whether or not the user exists:
        - Unknown username: bcrypt runs against the dummy hash.
        - Wrong password: bcrypt runs against the real hash.

        Returns the User on success, None on either failure. The two failure
        cases are indistinguishable to the caller.
        """
        user = self.find_by_username(username)
        if user is None:
            verify_password(password, self._dummy_hash)
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetch_user(self, stmt) -> User | None:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(stmt).fetchone()
        except SQLAlchemyError as exc:
            raise StorageError("User lookup failed") from exc
        return _row_to_user(row) if row is not None else None

    def _exists(self, stmt) -> bool:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(stmt).fetchone()
        except SQLAlchemyError as exc:
            raise StorageError("User lookup failed") from exc
        return row is not None


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
