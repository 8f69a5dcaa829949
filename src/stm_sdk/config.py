"""
Service endpoints, transport tuning, wire constants, and preference keys.

All constants used across the SDK modules are centralized here so that
config is separated from logic.  Environment variables are read at call
time by :mod:`stm_sdk.service`, never at import time.
"""

from pathlib import Path

# ---------------------------------------------------------------------------
# Service endpoints
# ---------------------------------------------------------------------------

DEFAULT_SERVER_URL = "https://app.shoutto.me/api/v1"

# Environment variables consulted when the caller does not pass a value
CLIENT_TOKEN_ENV = "STM_CLIENT_TOKEN"
SERVER_URL_ENV = "STM_SERVER_URL"
CHANNEL_ID_ENV = "STM_CHANNEL_ID"

# ---------------------------------------------------------------------------
# Transport and request queue
# ---------------------------------------------------------------------------

REQUEST_TIMEOUT_SECONDS: int = 30   # connect + read timeout per HTTP call
REQUEST_QUEUE_WORKERS: int = 10     # fixed worker pool size

CONTENT_TYPE_JSON = "application/json"

# Verb → HTTP method
HTTP_METHODS: dict[str, str] = {
    "fetch": "GET",
    "create": "POST",
    "update": "PUT",
    "delete": "DELETE",
}

# Verbs whose request carries a serialized body
BODY_VERBS: frozenset[str] = frozenset({"create", "update"})

HTTP_OK = 200
HTTP_NOT_FOUND = 404

# ---------------------------------------------------------------------------
# Response envelope: {"status": "success" | <other>, "data": {...}}
# ---------------------------------------------------------------------------

ENVELOPE_STATUS_KEY = "status"
ENVELOPE_DATA_KEY = "data"
ENVELOPE_SUCCESS = "success"

# Wire format for created_date and other timestamps
WIRE_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# ---------------------------------------------------------------------------
# Persisted preferences (flat key-value store)
# ---------------------------------------------------------------------------

PREF_INSTALLATION_ID = "installation_id"
PREF_CHANNEL_ID = "channel_id"
PREF_SERVER_URL = "server_url"
PREF_USER_ID = "user_id"
PREF_AUTH_TOKEN = "auth_token"

PREFERENCE_KEYS: tuple[str, ...] = (
    PREF_INSTALLATION_ID,
    PREF_CHANNEL_ID,
    PREF_SERVER_URL,
    PREF_USER_ID,
    PREF_AUTH_TOKEN,
)

DEFAULT_PREFERENCES_PATH = Path.home() / ".config" / "stm-sdk" / "preferences.json"

# Page size used by the message list endpoint
MESSAGE_LIST_LIMIT: int = 1000
