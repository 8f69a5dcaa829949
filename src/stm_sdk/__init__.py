"""
stm_sdk — Python client SDK for the Shout to Me platform.

Module layout
-------------
config.py         — server URL, timeouts, pool size, envelope and preference keys
errors.py         — error categories, StmError, ValidationError, Outcome variants
entities.py       — Message, User, Shout, Channel, subscriptions, request objects
adapters.py       — request adapters (entity → JSON) and response adapters
urls.py           — URL providers (collection vs. single-resource templates)
transport.py      — RequestDescriptor and the requests-based HTTP transport
request_queue.py  — process-wide bounded worker pool
processor.py      — sync/async entity request processors, observer registry
preferences.py    — persisted key-value stores (in-memory, JSON file)
session.py        — session token manager (lazy, single-flight bootstrap)
usecases.py       — feature-level calls and the callback contract
service.py        — StmService, the entry point wiring everything together

Public interface
----------------
Create a service and call it:
    service = StmService(client_token="...")
    service.get_message("abc123", callback)

Callbacks implement ``on_success(result)`` and ``on_error(StmError)``.
"""

from .entities import (
    Channel,
    ChannelSubscription,
    CreateShoutRequest,
    Message,
    Shout,
    TopicPreference,
    UpdateUserRequest,
    User,
)
from .errors import Empty, ServiceError, StmError, Success, ValidationError
from .preferences import InMemoryPreferenceStore, JsonFilePreferenceStore
from .request_queue import RequestQueue
from .service import StmService
from .session import SessionState, SessionTokenManager
from .usecases import StmCallback

__all__ = [
    # Entry point
    "StmService",
    "StmCallback",
    # Entities
    "Channel",
    "ChannelSubscription",
    "CreateShoutRequest",
    "Message",
    "Shout",
    "TopicPreference",
    "UpdateUserRequest",
    "User",
    # Outcomes and errors
    "Success",
    "Empty",
    "ServiceError",
    "StmError",
    "ValidationError",
    # Infrastructure
    "RequestQueue",
    "SessionState",
    "SessionTokenManager",
    "InMemoryPreferenceStore",
    "JsonFilePreferenceStore",
]
