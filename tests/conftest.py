"""
Shared pytest fixtures for the SDK tests.

The transport is always faked (see ``fakes.py``); no test reaches the
network.  Each test gets its own small request queue so worker threads
never leak between tests.
"""

from __future__ import annotations

import pytest

from stm_sdk.config import (
    CHANNEL_ID_ENV,
    CLIENT_TOKEN_ENV,
    PREF_AUTH_TOKEN,
    PREF_USER_ID,
    SERVER_URL_ENV,
)
from stm_sdk.preferences import InMemoryPreferenceStore
from stm_sdk.request_queue import RequestQueue
from stm_sdk.service import StmService

from fakes import FakeTransport, RecordingCallback

SERVER_URL = "https://stm.test/api/v1"
USER_ID = "user-1"
AUTH_TOKEN = "user-token"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep developer STM_* variables from leaking into service construction."""
    for name in (CLIENT_TOKEN_ENV, SERVER_URL_ENV, CHANNEL_ID_ENV):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def request_queue():
    queue = RequestQueue(max_workers=4)
    yield queue
    queue.shutdown()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def callback():
    return RecordingCallback()


@pytest.fixture
def ready_preferences():
    """Preferences that already hold a user session (no bootstrap needed)."""
    return InMemoryPreferenceStore({PREF_USER_ID: USER_ID, PREF_AUTH_TOKEN: AUTH_TOKEN})


@pytest.fixture
def service(transport, request_queue, ready_preferences):
    """Service with a restored session, fake transport, and private queue."""
    return StmService(
        client_token="client-token",
        server_url=SERVER_URL,
        preferences=ready_preferences,
        transport=transport,
        request_queue=request_queue,
    )
