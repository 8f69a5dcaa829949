"""
Unit tests for src/stm_sdk/session.py and preferences.py.

Covers:
- Lazy bootstrap: first token request fetches the account and persists it.
- Restore: persisted id/token skip the network entirely.
- Single-flight: N concurrent callers trigger exactly one bootstrap and all
  see the same token, or all see the same failure.
- Failure reverts to UNINITIALIZED; the next request bootstraps again.
  A preference write that fails counts as a failed bootstrap.
- Invalidation clears memory and storage; invalidating twice is a no-op.
- JSON file preference store persistence; unreadable files read as empty.
"""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock

import pytest

from stm_sdk.config import PREF_AUTH_TOKEN, PREF_USER_ID
from stm_sdk.entities import User
from stm_sdk.errors import ErrorCategory, ServiceError, Success
from stm_sdk.preferences import InMemoryPreferenceStore, JsonFilePreferenceStore
from stm_sdk.session import Session, SessionState, SessionTokenManager


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class CountingFetcher:
    """Account fetcher that counts calls and can be slowed down."""

    def __init__(self, outcome, delay: float = 0.0) -> None:
        self.outcome = outcome
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return self.outcome


class FailingWritesStore(InMemoryPreferenceStore):
    """Store whose writes fail, as a full disk would."""

    def set(self, key, value):
        raise OSError("disk full")


def _ok(user_id: str = "u1", token: str = "tok") -> Success:
    return Success(User(id=user_id, auth_token=token))


def _fail() -> ServiceError:
    return ServiceError("boom", category=ErrorCategory.PROTOCOL)


def _concurrently(fn, n: int) -> list:
    barrier = threading.Barrier(n)
    results = [None] * n

    def run(i):
        barrier.wait()
        results[i] = fn()

    threads = [threading.Thread(target=run, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results


# ---------------------------------------------------------------------------
# Class: bootstrap
# ---------------------------------------------------------------------------

class TestBootstrap:

    def test_first_request_bootstraps_and_persists(self):
        prefs = InMemoryPreferenceStore()
        fetcher = CountingFetcher(_ok())
        manager = SessionTokenManager(prefs, fetcher)

        assert manager.state is SessionState.UNINITIALIZED
        assert manager.get_auth_token() == "tok"
        assert manager.state is SessionState.READY
        assert manager.session == Session("u1", "tok")
        assert manager.session.initialized
        assert prefs.get(PREF_USER_ID) == "u1"
        assert prefs.get(PREF_AUTH_TOKEN) == "tok"
        assert manager.user.id == "u1"

    def test_ready_session_does_not_refetch(self):
        fetcher = CountingFetcher(_ok())
        manager = SessionTokenManager(InMemoryPreferenceStore(), fetcher)
        manager.get_auth_token()
        manager.get_auth_token()
        assert fetcher.calls == 1

    def test_persisted_credentials_skip_network(self):
        prefs = InMemoryPreferenceStore({PREF_USER_ID: "u9", PREF_AUTH_TOKEN: "saved"})
        fetcher = CountingFetcher(_ok())
        manager = SessionTokenManager(prefs, fetcher)

        assert manager.get_auth_token() == "saved"
        assert manager.user_id == "u9"
        assert fetcher.calls == 0

    def test_partial_persisted_credentials_bootstrap(self):
        prefs = InMemoryPreferenceStore({PREF_USER_ID: "u9"})
        fetcher = CountingFetcher(_ok())
        assert SessionTokenManager(prefs, fetcher).get_auth_token() == "tok"
        assert fetcher.calls == 1

    def test_failure_reverts_to_uninitialized(self):
        prefs = InMemoryPreferenceStore()
        fetcher = CountingFetcher(_fail())
        manager = SessionTokenManager(prefs, fetcher)

        assert manager.get_auth_token() is None
        assert manager.state is SessionState.UNINITIALIZED
        assert not manager.session.initialized
        assert prefs.get(PREF_AUTH_TOKEN) is None

        # The caller owns retry: the next request bootstraps again
        fetcher.outcome = _ok()
        assert manager.get_auth_token() == "tok"
        assert fetcher.calls == 2

    def test_success_without_token_counts_as_failure(self):
        manager = SessionTokenManager(
            InMemoryPreferenceStore(), CountingFetcher(Success(User(id="u1")))
        )
        assert manager.get_auth_token() is None
        assert manager.state is SessionState.UNINITIALIZED

    def test_fetcher_exception_counts_as_failure(self):
        manager = SessionTokenManager(
            InMemoryPreferenceStore(), MagicMock(side_effect=RuntimeError("down"))
        )
        assert manager.get_auth_token() is None
        assert manager.state is SessionState.UNINITIALIZED

    def test_persist_failure_reverts_and_releases_waiters(self):
        fetcher = CountingFetcher(_ok(), delay=0.3)
        manager = SessionTokenManager(FailingWritesStore(), fetcher)

        tokens = _concurrently(manager.get_auth_token, 4)

        assert tokens == [None] * 4
        assert fetcher.calls == 1
        assert manager.state is SessionState.UNINITIALIZED
        assert not manager.session.initialized
        assert manager.invalidate() is False

    def test_persist_failure_lets_next_request_retry(self):
        prefs = FailingWritesStore()
        fetcher = CountingFetcher(_ok())
        manager = SessionTokenManager(prefs, fetcher)

        assert manager.get_auth_token() is None
        assert manager.get_auth_token() is None
        assert fetcher.calls == 2


# ---------------------------------------------------------------------------
# Class: single-flight under concurrency
# ---------------------------------------------------------------------------

class TestConcurrentBootstrap:

    N_CALLERS = 16

    def test_one_bootstrap_for_many_callers(self):
        fetcher = CountingFetcher(_ok(token="shared"), delay=0.3)
        manager = SessionTokenManager(InMemoryPreferenceStore(), fetcher)

        tokens = _concurrently(manager.get_auth_token, self.N_CALLERS)

        assert fetcher.calls == 1
        assert tokens == ["shared"] * self.N_CALLERS

    def test_all_callers_share_the_failure(self):
        fetcher = CountingFetcher(_fail(), delay=0.3)
        manager = SessionTokenManager(InMemoryPreferenceStore(), fetcher)

        tokens = _concurrently(manager.get_auth_token, self.N_CALLERS)

        assert fetcher.calls == 1
        assert tokens == [None] * self.N_CALLERS
        assert manager.state is SessionState.UNINITIALIZED

    def test_invalidate_waits_for_bootstrap(self):
        fetcher = CountingFetcher(_ok(), delay=0.3)
        manager = SessionTokenManager(InMemoryPreferenceStore(), fetcher)

        worker = threading.Thread(target=manager.get_auth_token)
        worker.start()
        time.sleep(0.05)
        assert manager.state is SessionState.BOOTSTRAPPING

        assert manager.invalidate() is True
        worker.join(timeout=5)
        assert manager.state is SessionState.INVALIDATED


# ---------------------------------------------------------------------------
# Class: invalidation
# ---------------------------------------------------------------------------

class TestInvalidation:

    def test_invalidate_clears_memory_and_storage(self):
        prefs = InMemoryPreferenceStore()
        manager = SessionTokenManager(prefs, CountingFetcher(_ok()))
        manager.get_auth_token()

        assert manager.invalidate() is True
        assert manager.state is SessionState.INVALIDATED
        assert manager.session == Session()
        assert prefs.get(PREF_USER_ID) is None
        assert prefs.get(PREF_AUTH_TOKEN) is None

    def test_invalidate_twice_is_noop(self):
        prefs = MagicMock(wraps=InMemoryPreferenceStore())
        fetcher = CountingFetcher(_ok())
        manager = SessionTokenManager(prefs, fetcher)
        manager.get_auth_token()
        manager.invalidate()
        writes = prefs.set.call_count

        assert manager.invalidate() is False
        assert prefs.set.call_count == writes
        assert manager.state is SessionState.INVALIDATED
        assert fetcher.calls == 1

    def test_invalidate_fresh_session_is_noop(self):
        fetcher = CountingFetcher(_ok())
        manager = SessionTokenManager(InMemoryPreferenceStore(), fetcher)
        assert manager.invalidate() is False
        assert manager.state is SessionState.UNINITIALIZED
        assert fetcher.calls == 0

    def test_invalidate_clears_persisted_before_first_use(self):
        prefs = InMemoryPreferenceStore({PREF_USER_ID: "u9", PREF_AUTH_TOKEN: "saved"})
        manager = SessionTokenManager(prefs, CountingFetcher(_ok()))
        assert manager.invalidate() is True
        assert prefs.get(PREF_AUTH_TOKEN) is None

    def test_next_request_after_invalidate_bootstraps(self):
        fetcher = CountingFetcher(_ok(token="first"))
        manager = SessionTokenManager(InMemoryPreferenceStore(), fetcher)
        manager.get_auth_token()
        manager.invalidate()

        fetcher.outcome = _ok(token="second")
        assert manager.get_auth_token() == "second"
        assert fetcher.calls == 2

    def test_refresh(self):
        fetcher = CountingFetcher(_ok(token="first"))
        manager = SessionTokenManager(InMemoryPreferenceStore(), fetcher)
        manager.get_auth_token()

        fetcher.outcome = _ok(token="second")
        assert manager.refresh() == "second"
        assert manager.state is SessionState.READY


# ---------------------------------------------------------------------------
# Class: preference stores
# ---------------------------------------------------------------------------

class TestPreferenceStores:

    def test_in_memory_set_none_removes(self):
        prefs = InMemoryPreferenceStore({"a": "1"})
        prefs.set("a", None)
        assert prefs.get("a") is None

    def test_json_file_store_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "prefs.json"
        JsonFilePreferenceStore(path).set(PREF_AUTH_TOKEN, "tok")

        reopened = JsonFilePreferenceStore(path)
        assert reopened.get(PREF_AUTH_TOKEN) == "tok"
        assert reopened.get(PREF_USER_ID) is None

        reopened.set(PREF_AUTH_TOKEN, None)
        assert JsonFilePreferenceStore(path).get(PREF_AUTH_TOKEN) is None

    def test_json_file_store_missing_file_is_empty(self, tmp_path):
        assert JsonFilePreferenceStore(tmp_path / "absent.json").get("anything") is None

    @pytest.mark.parametrize("contents", ["{not json", "[1, 2, 3]"])
    def test_json_file_store_unreadable_file_is_empty(self, tmp_path, contents):
        path = tmp_path / "prefs.json"
        path.write_text(contents, encoding="utf-8")
        store = JsonFilePreferenceStore(path)

        assert store.get(PREF_AUTH_TOKEN) is None
        store.set(PREF_AUTH_TOKEN, "tok")
        assert JsonFilePreferenceStore(path).get(PREF_AUTH_TOKEN) == "tok"

    def test_corrupt_file_store_bootstraps(self, tmp_path):
        path = tmp_path / "prefs.json"
        path.write_text("{not json", encoding="utf-8")
        fetcher = CountingFetcher(_ok())

        assert SessionTokenManager(JsonFilePreferenceStore(path), fetcher).get_auth_token() == "tok"
        assert fetcher.calls == 1

    @pytest.mark.parametrize("key", [PREF_USER_ID, PREF_AUTH_TOKEN])
    def test_session_survives_restart_with_file_store(self, tmp_path, key):
        path = tmp_path / "prefs.json"
        fetcher = CountingFetcher(_ok())
        SessionTokenManager(JsonFilePreferenceStore(path), fetcher).get_auth_token()

        restarted = SessionTokenManager(JsonFilePreferenceStore(path), fetcher)
        assert restarted.get_auth_token() == "tok"
        assert JsonFilePreferenceStore(path).get(key) is not None
        assert fetcher.calls == 1
