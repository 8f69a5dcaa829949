"""
User session and auth token lifecycle.

The session is an explicit state machine::

    UNINITIALIZED --get_auth_token--> BOOTSTRAPPING --ok--> READY
          ^                                |                  |
          +-------------failed-------------+              invalidate
                                                              v
                                          BOOTSTRAPPING <-- INVALIDATED

Persisted credentials short-circuit bootstrap: if the preference store
already holds a user id and token, the session moves straight to READY
without a network call.

Only one bootstrap network call is ever in flight.  Callers that ask for a
token while a bootstrap is running wait on the condition variable and
receive that bootstrap's result; when it fails they all receive ``None``
and none of them starts a bootstrap of its own in that round.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .config import PREF_AUTH_TOKEN, PREF_USER_ID
from .entities import User
from .errors import Outcome, ServiceError, Success
from .preferences import PreferenceStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    BOOTSTRAPPING = "bootstrapping"
    READY = "ready"
    INVALIDATED = "invalidated"


@dataclass(frozen=True)
class Session:
    """Snapshot of the authenticated actor."""

    id: str | None = None
    auth_token: str | None = None

    @property
    def initialized(self) -> bool:
        return bool(self.id) and bool(self.auth_token)


AccountFetcher = Callable[[], Outcome]


class SessionTokenManager:
    """
    Owns the user id/token pair and bootstraps it lazily.

    Args:
        preferences: Persisted key-value store for user id and token.
        fetch_account: Performs the fetch-or-create account call and returns
            its Outcome; a ``Success`` must carry a :class:`User` with both
            ``id`` and ``auth_token`` set.
    """

    def __init__(self, preferences: PreferenceStore, fetch_account: AccountFetcher) -> None:
        self.preferences = preferences
        self.fetch_account = fetch_account
        self._cond = threading.Condition()
        self._state = SessionState.UNINITIALIZED
        self._session = Session()
        self._user: User | None = None
        # Bootstrap rounds let waiters pick up the result of the round they waited on
        self._round = 0
        self._completed_round = 0
        self._completed_token: str | None = None

    # ── Read-only views ────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        with self._cond:
            return self._state

    @property
    def session(self) -> Session:
        with self._cond:
            return self._session

    @property
    def user_id(self) -> str | None:
        return self.session.id

    @property
    def user(self) -> User | None:
        """The user returned by the last bootstrap, if any."""
        with self._cond:
            return self._user

    # ── Token access ───────────────────────────────────────────────────────

    def get_auth_token(self) -> str | None:
        """
        Return a valid auth token, bootstrapping the session if needed.

        Blocks while another thread's bootstrap is in flight.

        Returns:
            The token, or ``None`` when bootstrap failed.
        """
        with self._cond:
            if self._state is SessionState.READY:
                return self._session.auth_token

            if self._state is SessionState.BOOTSTRAPPING:
                return self._wait_for_round(self._round)

            user_id = self.preferences.get(PREF_USER_ID)
            auth_token = self.preferences.get(PREF_AUTH_TOKEN)
            if user_id and auth_token:
                self._session = Session(user_id, auth_token)
                self._state = SessionState.READY
                logger.debug("User session restored from preferences")
                return auth_token

            self._state = SessionState.BOOTSTRAPPING
            self._round += 1
            bootstrap_round = self._round

        # The network call runs outside the lock; the BOOTSTRAPPING state keeps
        # every other caller waiting on the condition instead
        return self._finish_round(bootstrap_round, self._bootstrap())

    def _wait_for_round(self, awaited: int) -> str | None:
        while self._state is SessionState.BOOTSTRAPPING and self._round == awaited:
            self._cond.wait()
        if self._completed_round == awaited:
            return self._completed_token
        return self._session.auth_token if self._state is SessionState.READY else None

    def _bootstrap(self) -> User | None:
        logger.debug("Bootstrapping user session")
        try:
            outcome = self.fetch_account()
        except Exception:
            logger.exception("Could not create or get user account.")
            return None

        if isinstance(outcome, Success) and isinstance(outcome.value, User):
            user = outcome.value
            if user.id and user.auth_token:
                return user

        message = outcome.message if isinstance(outcome, ServiceError) else repr(outcome)
        logger.error("Could not create or get user account. %s", message)
        return None

    def _finish_round(self, bootstrap_round: int, user: User | None) -> str | None:
        with self._cond:
            try:
                if user is not None:
                    try:
                        self.preferences.set(PREF_AUTH_TOKEN, user.auth_token)
                        self.preferences.set(PREF_USER_ID, user.id)
                    except Exception:
                        logger.exception("Could not persist user session.")
                        user = None

                if user is not None:
                    self._session = Session(user.id, user.auth_token)
                    self._user = user
                    self._state = SessionState.READY
                    logger.debug("User has been initialized")
                else:
                    self._session = Session()
                    self._state = SessionState.UNINITIALIZED
            finally:
                # Release waiters on every path
                if self._state is SessionState.BOOTSTRAPPING:
                    self._state = SessionState.UNINITIALIZED
                token = user.auth_token if user is not None else None
                self._completed_round = bootstrap_round
                self._completed_token = token
                self._cond.notify_all()
        return token

    # ── Invalidation ───────────────────────────────────────────────────────

    def invalidate(self) -> bool:
        """
        Clear the in-memory and persisted id/token.

        Waits for an in-flight bootstrap to finish first.  Invalidating a
        session that holds no credentials is a no-op.

        Returns:
            ``True`` if anything was cleared.
        """
        with self._cond:
            while self._state is SessionState.BOOTSTRAPPING:
                self._cond.wait()

            persisted = self.preferences.get(PREF_USER_ID) or self.preferences.get(PREF_AUTH_TOKEN)
            if self._state is not SessionState.READY and not persisted:
                return False

            self.preferences.set(PREF_AUTH_TOKEN, None)
            self.preferences.set(PREF_USER_ID, None)
            self._session = Session()
            self._user = None
            self._state = SessionState.INVALIDATED
            logger.debug("User session invalidated")
            return True

    def refresh(self) -> str | None:
        """Invalidate the session and bootstrap a new token."""
        self.invalidate()
        return self.get_auth_token()
