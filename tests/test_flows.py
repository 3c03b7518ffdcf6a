"""Unit tests for auth/flows.py -- register, login, refresh, who_am_i.

Covers:
- register: success, shape validation before any store access, pre-check
  conflicts, the store-level race conflict, storage failure, missing secret
- register under concurrency: exactly one winner per username
- login: success; wrong password and unknown user are indistinguishable
- refresh: new pair for a refresh token; access tokens refused
- who_am_i: found / not found
- database failures inside the store surface as STORAGE with a generic message
"""

import threading
import time

import pytest
from sqlalchemy import text

from auth import flows
from auth.errors import AuthFailure, ConflictError, FailureKind, StorageError
from auth.flows import AuthResult
from auth.models import Identity
from auth.store import UserStore
from auth.tokens import issue_pair, verify_typed


def _register_alice(store: UserStore, secret: str) -> AuthResult:
    result = flows.register(store, secret, "alice", "a@x.com", "password1")
    assert isinstance(result, AuthResult)
    return result


def _drop_users(store: UserStore) -> None:
    with store.engine.begin() as conn:
        conn.execute(text("DROP TABLE users"))


# ---------------------------------------------------------------------------
# register
# ---------------------------------------------------------------------------


class TestRegister:
    def test_success_issues_verifiable_pair(self, store: UserStore, secret: str) -> None:
        result = _register_alice(store, secret)
        assert result.message == "Registration successful"
        assert result.expires_in == 900
        access = verify_typed(result.tokens.access_token, secret, "access")
        refresh = verify_typed(result.tokens.refresh_token, secret, "refresh")
        assert access is not None and refresh is not None
        assert access.user_id == refresh.user_id == result.user["id"]
        assert access.username == "alice"

    def test_user_view_is_redacted(self, store: UserStore, secret: str) -> None:
        result = _register_alice(store, secret)
        assert "password_hash" not in result.user
        assert "password" not in result.user
        assert result.user["email"] == "a@x.com"

    @pytest.mark.parametrize(
        ("username", "email", "password"),
        [
            ("al", "a@x.com", "password1"),
            ("a" * 51, "a@x.com", "password1"),
            ("al ice", "a@x.com", "password1"),
            ("alice!", "a@x.com", "password1"),
            ("alice", "not-an-email", "password1"),
            ("alice", "a@x.com", "short"),
            ("alice", "a@x.com", "p" * 101),
        ],
    )
    def test_invalid_shape_rejected_before_store(
        self, store: UserStore, secret: str, username: str, email: str, password: str
    ) -> None:
        result = flows.register(store, secret, username, email, password)
        assert isinstance(result, AuthFailure)
        assert result.kind is FailureKind.VALIDATION
        assert result.detail
        assert store.find_by_email("a@x.com") is None

    def test_validation_detail_never_echoes_password(self, store: UserStore, secret: str) -> None:
        result = flows.register(store, secret, "alice", "a@x.com", "sekrit")
        assert isinstance(result, AuthFailure)
        assert "sekrit" not in (result.detail or "")

    def test_username_and_hyphen_underscore_allowed(self, store: UserStore, secret: str) -> None:
        result = flows.register(store, secret, "al-ice_01", "a@x.com", "password1")
        assert isinstance(result, AuthResult)

    def test_duplicate_username(self, store: UserStore, secret: str) -> None:
        _register_alice(store, secret)
        result = flows.register(store, secret, "alice", "other@x.com", "password1")
        assert result == AuthFailure(FailureKind.CONFLICT, "Username already taken")

    def test_duplicate_email(self, store: UserStore, secret: str) -> None:
        _register_alice(store, secret)
        result = flows.register(store, secret, "alice2", "a@x.com", "password1")
        assert result == AuthFailure(FailureKind.CONFLICT, "Email already registered")

    def test_store_level_conflict_is_reported(
        self, store: UserStore, secret: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A racer that slipped past the pre-check still gets CONFLICT from the constraint."""
        _register_alice(store, secret)
        monkeypatch.setattr(store, "username_taken", lambda username: False)
        result = flows.register(store, secret, "alice", "other@x.com", "password1")
        assert result == AuthFailure(FailureKind.CONFLICT, "Username already taken")

    def test_storage_failure(self, store: UserStore, secret: str, monkeypatch: pytest.MonkeyPatch) -> None:
        def boom(username, email, password):
            raise StorageError("disk full")

        monkeypatch.setattr(store, "create", boom)
        result = flows.register(store, secret, "alice", "a@x.com", "password1")
        assert result == AuthFailure(FailureKind.STORAGE, "Failed to create user account")

    def test_database_failure_is_storage(self, store: UserStore, secret: str) -> None:
        _drop_users(store)
        result = flows.register(store, secret, "alice", "a@x.com", "password1")
        assert result == AuthFailure(FailureKind.STORAGE, "Failed to create user account")

    def test_conflict_without_known_field(
        self, store: UserStore, secret: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def conflict(username, email, password):
            raise ConflictError()

        monkeypatch.setattr(store, "create", conflict)
        result = flows.register(store, secret, "alice", "a@x.com", "password1")
        assert isinstance(result, AuthFailure)
        assert result.kind is FailureKind.CONFLICT

    def test_missing_secret(self, store: UserStore) -> None:
        result = flows.register(store, "", "alice", "a@x.com", "password1")
        assert isinstance(result, AuthFailure)
        assert result.kind is FailureKind.CONFIGURATION
        assert store.find_by_username("alice") is None


def test_concurrent_registration_has_one_winner(tmp_path, secret: str) -> None:
    """Same username from several threads: exactly one success, the rest CONFLICT."""
    store = UserStore(f"sqlite:///{tmp_path / 'race.db'}", bcrypt_rounds=4)
    barrier = threading.Barrier(5)
    results: list = []
    lock = threading.Lock()

    def attempt(i: int) -> None:
        barrier.wait()
        outcome = flows.register(store, secret, "racer", f"racer{i}@x.com", "password1")
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=attempt, args=(i,)) for i in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    store.close()

    successes = [r for r in results if isinstance(r, AuthResult)]
    failures = [r for r in results if isinstance(r, AuthFailure)]
    assert len(successes) == 1
    assert len(failures) == 4
    assert all(f.kind is FailureKind.CONFLICT for f in failures)


# ---------------------------------------------------------------------------
# login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_success(self, store: UserStore, secret: str) -> None:
        registered = _register_alice(store, secret)
        result = flows.login(store, secret, "alice", "password1")
        assert isinstance(result, AuthResult)
        assert result.message == "Login successful"
        assert result.user == registered.user
        payload = verify_typed(result.tokens.access_token, secret, "access")
        assert payload.user_id == registered.user["id"]

    def test_wrong_password_and_unknown_user_look_the_same(self, store: UserStore, secret: str) -> None:
        _register_alice(store, secret)
        wrong_password = flows.login(store, secret, "alice", "wrongpass")
        unknown_user = flows.login(store, secret, "bob", "password1")
        assert wrong_password == unknown_user
        assert wrong_password == AuthFailure(FailureKind.UNAUTHORIZED, "Invalid username or password")

    def test_empty_fields(self, store: UserStore, secret: str) -> None:
        result = flows.login(store, secret, "", "")
        assert isinstance(result, AuthFailure)
        assert result.kind is FailureKind.VALIDATION

    def test_missing_secret(self, store: UserStore, secret: str) -> None:
        _register_alice(store, secret)
        result = flows.login(store, "", "alice", "password1")
        assert isinstance(result, AuthFailure)
        assert result.kind is FailureKind.CONFIGURATION

    def test_database_failure_is_storage(self, store: UserStore, secret: str) -> None:
        _register_alice(store, secret)
        _drop_users(store)
        result = flows.login(store, secret, "alice", "password1")
        assert result == AuthFailure(FailureKind.STORAGE, "Login is temporarily unavailable")


# ---------------------------------------------------------------------------
# refresh
# ---------------------------------------------------------------------------


class TestRefresh:
    def test_refresh_issues_new_pair_for_same_user(self, secret: str) -> None:
        old = issue_pair("user_1", "alice", secret, now=int(time.time()) - 60)
        result = flows.refresh(secret, old.refresh_token)
        assert isinstance(result, AuthResult)
        assert result.message == "Token refreshed successfully"
        assert result.user is None
        payload = verify_typed(result.tokens.access_token, secret, "access")
        assert (payload.user_id, payload.username) == ("user_1", "alice")
        assert result.tokens.access_token != old.access_token

    def test_refresh_token_can_be_reused(self, secret: str) -> None:
        pair = issue_pair("user_1", "alice", secret)
        assert isinstance(flows.refresh(secret, pair.refresh_token), AuthResult)
        assert isinstance(flows.refresh(secret, pair.refresh_token), AuthResult)

    def test_access_token_refused(self, secret: str) -> None:
        pair = issue_pair("user_1", "alice", secret)
        result = flows.refresh(secret, pair.access_token)
        assert result == AuthFailure(FailureKind.UNAUTHORIZED, "Invalid or expired refresh token")

    def test_expired_refresh_token(self, secret: str) -> None:
        pair = issue_pair("user_1", "alice", secret, now=int(time.time()) - 8 * 24 * 3600)
        result = flows.refresh(secret, pair.refresh_token)
        assert isinstance(result, AuthFailure)
        assert result.kind is FailureKind.UNAUTHORIZED

    def test_garbage(self, secret: str) -> None:
        result = flows.refresh(secret, "garbage")
        assert isinstance(result, AuthFailure)
        assert result.kind is FailureKind.UNAUTHORIZED

    def test_missing_secret(self, secret: str) -> None:
        pair = issue_pair("user_1", "alice", secret)
        result = flows.refresh("", pair.refresh_token)
        assert isinstance(result, AuthFailure)
        assert result.kind is FailureKind.CONFIGURATION


# ---------------------------------------------------------------------------
# who_am_i
# ---------------------------------------------------------------------------


class TestWhoAmI:
    def test_known_identity(self, store: UserStore, secret: str) -> None:
        registered = _register_alice(store, secret)
        result = flows.who_am_i(store, Identity(registered.user["id"], "alice"))
        assert isinstance(result, AuthResult)
        assert result.user == registered.user
        assert result.tokens is None

    def test_identity_no_longer_resolves(self, store: UserStore) -> None:
        result = flows.who_am_i(store, Identity("user_deleted", "ghost"))
        assert result == AuthFailure(FailureKind.NOT_FOUND, "User not found")

    def test_database_failure_is_storage(self, store: UserStore, secret: str) -> None:
        registered = _register_alice(store, secret)
        _drop_users(store)
        result = flows.who_am_i(store, Identity(registered.user["id"], "alice"))
        assert result == AuthFailure(FailureKind.STORAGE, "User lookup is temporarily unavailable")
