"""
Feature-level use cases and the caller-facing callback contract.

Each use case takes an already configured processor, builds the entity the
call operates on, and maps the processor's Outcome onto the callback:

    Success(value)  → callback.on_success(value)
    Empty           → callback.on_success(None)   (or False for checks)
    ServiceError    → callback.on_error(StmError)

Argument validation happens in :func:`require` before any processor or
token is touched, so a rejected argument never costs a network call.
"""

from __future__ import annotations

import concurrent.futures
from typing import Any, Callable, Protocol

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
from .errors import (
    SEVERITY_MINOR,
    Empty,
    Outcome,
    ServiceError,
    StmError,
    Success,
    ValidationError,
)
from .processor import AsyncEntityRequestProcessor


class StmCallback(Protocol):
    """Receives the result of one asynchronous SDK operation."""

    def on_success(self, result: Any) -> None:
        ...

    def on_error(self, error: StmError) -> None:
        ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def report_error(
    message: str,
    callback: StmCallback | None,
    fatal: bool = False,
    severity: str = SEVERITY_MINOR,
) -> None:
    """
    Deliver a locally detected error.

    Raises:
        ValidationError: If there is no callback to receive it.
    """
    if callback is None:
        raise ValidationError(message)
    callback.on_error(StmError(message, fatal, severity))


def require(value: Any, message: str, callback: StmCallback | None) -> bool:
    """
    Check a required argument.

    Returns:
        ``True`` if ``value`` is usable; ``False`` after reporting a minor,
        non-fatal error to ``callback``.

    Raises:
        ValidationError: If ``value`` is missing and ``callback`` is ``None``.
    """
    if value is None or value == "":
        report_error(message, callback)
        return False
    return True


def deliver(
    outcome: Outcome,
    callback: StmCallback | None,
    empty_value: Any = None,
    transform: Callable[[Any], Any] | None = None,
) -> None:
    """Map one Outcome onto ``callback``; a ``None`` callback drops it."""
    if callback is None:
        return
    if isinstance(outcome, ServiceError):
        callback.on_error(outcome.to_stm_error())
    elif isinstance(outcome, Empty):
        callback.on_success(empty_value)
    elif isinstance(outcome, Success):
        callback.on_success(transform(outcome.value) if transform else outcome.value)


def _completion(callback: StmCallback | None, **kwargs: Any) -> Callable[[Outcome], None]:
    return lambda outcome: deliver(outcome, callback, **kwargs)


# ---------------------------------------------------------------------------
# Topic preferences
# ---------------------------------------------------------------------------

def create_topic_preference(
    processor: AsyncEntityRequestProcessor, topic: str, callback: StmCallback | None
) -> concurrent.futures.Future:
    return processor.process("create", TopicPreference(topic=topic), _completion(callback))


def delete_topic_preference(
    processor: AsyncEntityRequestProcessor, topic: str, callback: StmCallback | None
) -> concurrent.futures.Future:
    return processor.process("delete", TopicPreference(topic=topic), _completion(callback))


# ---------------------------------------------------------------------------
# Channel subscriptions
# ---------------------------------------------------------------------------

def create_channel_subscription(
    processor: AsyncEntityRequestProcessor, channel_id: str, callback: StmCallback | None
) -> concurrent.futures.Future:
    entity = ChannelSubscription(channel_id=channel_id)
    return processor.process("create", entity, _completion(callback))


def delete_channel_subscription(
    processor: AsyncEntityRequestProcessor, channel_id: str, callback: StmCallback | None
) -> concurrent.futures.Future:
    entity = ChannelSubscription(channel_id=channel_id)
    return processor.process("delete", entity, _completion(callback))


def get_channel_subscription(
    processor: AsyncEntityRequestProcessor, channel_id: str, callback: StmCallback | None
) -> concurrent.futures.Future:
    # 404 means "not subscribed", not a failure
    entity = ChannelSubscription(channel_id=channel_id)
    return processor.process(
        "fetch", entity, _completion(callback, empty_value=False, transform=bool)
    )


def get_channels(
    processor: AsyncEntityRequestProcessor, callback: StmCallback | None
) -> concurrent.futures.Future:
    return processor.process("fetch", Channel(), _completion(callback, empty_value=[]))


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

def get_message(
    processor: AsyncEntityRequestProcessor, message_id: str, callback: StmCallback | None
) -> concurrent.futures.Future:
    return processor.process("fetch", Message(id=message_id), _completion(callback))


def get_messages(
    processor: AsyncEntityRequestProcessor, callback: StmCallback | None
) -> concurrent.futures.Future:
    return processor.process("fetch", Message(), _completion(callback, empty_value=[]))


def get_message_count(
    processor: AsyncEntityRequestProcessor, callback: StmCallback | None
) -> concurrent.futures.Future:
    return processor.process("fetch", Message(), _completion(callback, empty_value=0))


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def get_user(
    processor: AsyncEntityRequestProcessor,
    user_id: str,
    callback: StmCallback | None,
    on_user: Callable[[User], None] | None = None,
) -> concurrent.futures.Future:
    def complete(outcome: Outcome) -> None:
        if on_user is not None and isinstance(outcome, Success):
            on_user(outcome.value)
        deliver(outcome, callback)

    return processor.process("fetch", User(id=user_id), complete)


def update_user(
    processor: AsyncEntityRequestProcessor,
    request: UpdateUserRequest,
    user_id: str,
    callback: StmCallback | None,
    on_user: Callable[[User], None] | None = None,
) -> concurrent.futures.Future:
    user = User(id=user_id)
    request.apply_to(user)

    def complete(outcome: Outcome) -> None:
        if isinstance(outcome, Success):
            user.clear_pending_changes()
            if on_user is not None:
                on_user(outcome.value)
        deliver(outcome, callback)

    return processor.process("update", user, complete)


# ---------------------------------------------------------------------------
# Shouts
# ---------------------------------------------------------------------------

def upload_shout(
    processor: AsyncEntityRequestProcessor,
    request: CreateShoutRequest,
    channel_id: str | None,
    device_id: str,
    callback: StmCallback | None,
    on_shout: Callable[[Shout], None] | None = None,
) -> concurrent.futures.Future:
    shout = Shout(
        channel_id=channel_id,
        device_id=device_id,
        audio=request.audio,
        text=request.text,
        description=request.description,
        tags=request.tags,
        topic=request.topic,
    )

    def complete(outcome: Outcome) -> None:
        if on_shout is not None and isinstance(outcome, Success):
            on_shout(outcome.value)
        deliver(outcome, callback)

    return processor.process("create", shout, complete)
