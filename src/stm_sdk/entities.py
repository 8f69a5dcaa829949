"""
Typed entities exchanged with the Shout to Me service.

Each entity carries its resource endpoint templates (collection and
single-resource, the latter with an ``:id`` placeholder), the key its
payload is wrapped under inside the response envelope's ``data`` block, and
a pending-change map used for partial updates.

Wire conversion lives on the entity (``to_wire`` / ``from_wire``) so that
adapters in :mod:`stm_sdk.adapters` stay field-layout agnostic.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, ClassVar

from .config import WIRE_DATE_FORMAT
from .errors import ValidationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Wire value helpers
# ---------------------------------------------------------------------------

def normalize_wire_date(value: datetime) -> datetime:
    """
    Return ``value`` as an aware UTC datetime at wire precision.

    Naive values are taken as local time.  The wire carries milliseconds, so
    sub-millisecond digits are dropped here rather than on the way out.
    """
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def format_wire_date(value: datetime) -> str:
    """Format a datetime as ``yyyy-MM-ddTHH:mm:ss.SSSZ`` in UTC."""
    value = normalize_wire_date(value)
    return value.strftime(WIRE_DATE_FORMAT)[:-4] + "Z"


def parse_wire_date(raw: str | None) -> datetime | None:
    """
    Parse a service timestamp into an aware UTC datetime.

    Returns ``None`` (with a warning) when the value is absent or unparseable,
    since a bad timestamp should not fail the whole entity.
    """
    if not raw:
        return None
    try:
        return datetime.strptime(raw, WIRE_DATE_FORMAT).replace(tzinfo=timezone.utc)
    except (TypeError, ValueError):
        logger.warning("Could not parse date: %s", raw)
        return None


# ---------------------------------------------------------------------------
# Base entity
# ---------------------------------------------------------------------------

@dataclass
class PendingChange:
    """A field value set locally but not yet persisted to the service."""

    new_value: Any


@dataclass
class StmEntity:
    """
    Base class for all service entities.

    Invariants:
        - ``id`` is either ``None`` (not yet created) or a non-empty string.
        - ``pending_changes`` is cleared once an update is persisted.
    """

    COLLECTION_ENDPOINT: ClassVar[str] = ""
    SINGLE_RESOURCE_ENDPOINT: ClassVar[str] = ""
    SERIALIZATION_KEY: ClassVar[str] = ""
    LIST_SERIALIZATION_KEY: ClassVar[str] = ""

    # Attributes never written to the wire
    WIRE_EXCLUDED: ClassVar[frozenset[str]] = frozenset({"pending_changes"})
    DATE_FIELDS: ClassVar[frozenset[str]] = frozenset()
    BYTES_FIELDS: ClassVar[frozenset[str]] = frozenset()

    id: str | None = None
    pending_changes: dict[str, PendingChange] = field(
        default_factory=dict, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.id == "":
            raise ValidationError(f"{type(self).__name__}.id cannot be an empty string")
        for name in self.DATE_FIELDS:
            value = getattr(self, name, None)
            if isinstance(value, datetime):
                setattr(self, name, normalize_wire_date(value))

    # ── Pending changes ────────────────────────────────────────────────────

    def set_pending(self, name: str, value: Any) -> None:
        """Set ``name`` locally and record it for the next partial update."""
        if name not in {f.name for f in fields(self)} or name in self.WIRE_EXCLUDED:
            raise ValidationError(f"'{name}' is not an updatable field of {type(self).__name__}")
        if name in self.DATE_FIELDS and isinstance(value, datetime):
            value = normalize_wire_date(value)
        setattr(self, name, value)
        self.pending_changes[name] = PendingChange(value)

    def clear_pending_changes(self) -> None:
        self.pending_changes.clear()

    # ── Endpoints ──────────────────────────────────────────────────────────

    def collection_endpoint(self) -> str:
        return self.COLLECTION_ENDPOINT

    def single_resource_endpoint(self) -> str:
        return self.SINGLE_RESOURCE_ENDPOINT

    # ── Wire conversion ────────────────────────────────────────────────────

    def to_wire(self) -> dict[str, Any]:
        """Serialize every wire field; ``None`` values are omitted."""
        payload: dict[str, Any] = {}
        for f in fields(self):
            if f.name in self.WIRE_EXCLUDED:
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            payload[f.name] = encode_wire_value(self, f.name, value)
        return payload

    @classmethod
    def from_wire(cls, data: dict[str, Any]):
        """Build an entity from a wire dict, ignoring unknown keys."""
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name in cls.WIRE_EXCLUDED or f.name not in data:
                continue
            raw = data[f.name]
            if f.name in cls.DATE_FIELDS:
                raw = parse_wire_date(raw)
            elif f.name in cls.BYTES_FIELDS and raw is not None:
                raw = base64.b64decode(raw)
            kwargs[f.name] = raw
        return cls(**kwargs)


def encode_wire_value(entity: StmEntity, name: str, value: Any) -> Any:
    if name in entity.DATE_FIELDS and isinstance(value, datetime):
        return format_wire_date(value)
    if name in entity.BYTES_FIELDS and isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, datetime):
        return format_wire_date(value)
    return value


# ---------------------------------------------------------------------------
# Concrete entities
# ---------------------------------------------------------------------------

@dataclass
class Message(StmEntity):
    """A message delivered to the user on a channel."""

    COLLECTION_ENDPOINT: ClassVar[str] = "/messages"
    SINGLE_RESOURCE_ENDPOINT: ClassVar[str] = "/messages/:id"
    SERIALIZATION_KEY: ClassVar[str] = "message"
    LIST_SERIALIZATION_KEY: ClassVar[str] = "messages"
    DATE_FIELDS: ClassVar[frozenset[str]] = frozenset({"sent_date"})

    message: str | None = None
    channel_name: str | None = None
    sender_name: str | None = None
    sent_date: datetime | None = None

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message}
        if self.id is not None:
            payload["id"] = self.id
        if self.sent_date is not None:
            payload["created_date"] = format_wire_date(self.sent_date)
        payload["channel"] = {"name": self.channel_name}
        payload["sender"] = {"handle": self.sender_name} if self.sender_name else {}
        return payload

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Message:
        # The sender may be anonymous, in which case it has no handle
        sender = data.get("sender") or {}
        channel = data.get("channel") or {}
        return cls(
            id=data["id"],
            message=data.get("message"),
            channel_name=channel.get("name"),
            sender_name=sender.get("handle") or "Anonymous",
            sent_date=parse_wire_date(data.get("created_date")),
        )


@dataclass
class User(StmEntity):
    """The authenticated Shout to Me user."""

    COLLECTION_ENDPOINT: ClassVar[str] = "/users"
    SINGLE_RESOURCE_ENDPOINT: ClassVar[str] = "/users/:id"
    SERIALIZATION_KEY: ClassVar[str] = "user"
    LIST_SERIALIZATION_KEY: ClassVar[str] = "users"
    WIRE_EXCLUDED: ClassVar[frozenset[str]] = frozenset({"pending_changes", "auth_token"})

    handle: str | None = None
    email: str | None = None
    phone: str | None = None
    gender: str | None = None
    birthday: str | None = None
    topic_preferences: list[str] | None = None
    channel_subscriptions: list[str] | None = None
    auth_token: str | None = field(default=None, repr=False)


@dataclass
class Shout(StmEntity):
    """A recorded shout sent to a channel."""

    COLLECTION_ENDPOINT: ClassVar[str] = "/shouts"
    SINGLE_RESOURCE_ENDPOINT: ClassVar[str] = "/shouts/:id"
    SERIALIZATION_KEY: ClassVar[str] = "shout"
    LIST_SERIALIZATION_KEY: ClassVar[str] = "shouts"
    BYTES_FIELDS: ClassVar[frozenset[str]] = frozenset({"audio"})
    DATE_FIELDS: ClassVar[frozenset[str]] = frozenset({"created_date"})

    channel_id: str | None = None
    device_id: str | None = None
    text: str | None = None
    description: str | None = None
    tags: str | None = None
    topic: str | None = None
    media_file_url: str | None = None
    audio: bytes | None = field(default=None, repr=False)
    created_date: datetime | None = None


@dataclass
class Channel(StmEntity):
    """A channel the user may subscribe to."""

    COLLECTION_ENDPOINT: ClassVar[str] = "/channels"
    SINGLE_RESOURCE_ENDPOINT: ClassVar[str] = "/channels/:id"
    SERIALIZATION_KEY: ClassVar[str] = "channel"
    LIST_SERIALIZATION_KEY: ClassVar[str] = "channels"

    name: str | None = None
    description: str | None = None
    channel_image: str | None = None
    channel_list_image: str | None = None


@dataclass
class ChannelSubscription(StmEntity):
    """The user's subscription to one channel; ``id`` is unused on the wire."""

    SERIALIZATION_KEY: ClassVar[str] = "channel_subscription"

    channel_id: str | None = None


@dataclass
class TopicPreference(StmEntity):
    """A topic the user wants to receive notifications for."""

    SERIALIZATION_KEY: ClassVar[str] = "topic_preference"

    topic: str | None = None


# ---------------------------------------------------------------------------
# Request objects
# ---------------------------------------------------------------------------

@dataclass
class UpdateUserRequest:
    """
    Properties to change on the current user.  Only non-``None`` values are
    sent; everything else is left untouched on the service.
    """

    handle: str | None = None
    email: str | None = None
    phone: str | None = None
    gender: str | None = None
    birthday: str | None = None
    topic_preferences: list[str] | None = None
    channel_subscriptions: list[str] | None = None

    def apply_to(self, user: User) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                user.set_pending(f.name, value)

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass
class CreateShoutRequest:
    """Fields for creating a shout programmatically."""

    audio: bytes | None = None
    text: str | None = None
    description: str | None = None
    tags: str | None = None
    topic: str | None = None
