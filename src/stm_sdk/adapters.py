"""
Request and response adapters.

Request adapters turn an entity into the JSON body of a create/update call.
Response adapters turn the ``data`` block of a success envelope into the
typed result handed to callers.  No I/O occurs here; all adapters are pure
transformations of entities/dicts to support easy unit testing.
"""

from __future__ import annotations

import json
from typing import Any, Generic, Protocol, TypeVar

from .entities import StmEntity, User, encode_wire_value

T = TypeVar("T", covariant=True)


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------

class RequestAdapter(Protocol):
    """Serializes an entity into a wire payload string."""

    def adapt(self, entity: StmEntity) -> str:
        ...


class ResponseAdapter(Protocol[T]):
    """Converts a decoded success envelope into a typed result."""

    def adapt(self, envelope: dict[str, Any]) -> T:
        ...


def envelope_data(envelope: dict[str, Any]) -> dict[str, Any]:
    """
    Return the ``data`` block of a success envelope.

    Raises:
        KeyError: If the envelope carries no ``data`` object.
    """
    data = envelope["data"]
    if not isinstance(data, dict):
        raise KeyError(f"Envelope 'data' is not an object: {data!r}")
    return data


# ---------------------------------------------------------------------------
# Request adapters
# ---------------------------------------------------------------------------

class JsonRequestAdapter:
    """Serializes the full entity (all wire fields, snake_case keys)."""

    def adapt(self, entity: StmEntity) -> str:
        return json.dumps(entity.to_wire())


class PendingChangesRequestAdapter:
    """Serializes only the fields changed locally since the last update."""

    def adapt(self, entity: StmEntity) -> str:
        payload = {
            name: encode_wire_value(entity, name, change.new_value)
            for name, change in entity.pending_changes.items()
            if change is not None
        }
        return json.dumps(payload)


# ---------------------------------------------------------------------------
# Response adapters
# ---------------------------------------------------------------------------

class ObjectResponseAdapter(Generic[T]):
    """
    Builds one entity from ``data[serialization_key]``.

    Args:
        entity_cls: Entity class with a ``from_wire`` classmethod.
        serialization_key: Key inside ``data``; defaults to the entity's own.
    """

    def __init__(self, entity_cls: type, serialization_key: str | None = None) -> None:
        self.entity_cls = entity_cls
        self.serialization_key = serialization_key or entity_cls.SERIALIZATION_KEY

    def adapt(self, envelope: dict[str, Any]) -> T:
        return self.entity_cls.from_wire(envelope_data(envelope)[self.serialization_key])


class ListResponseAdapter(Generic[T]):
    """Builds a list of entities from ``data[list_key]``."""

    def __init__(self, entity_cls: type, list_key: str | None = None) -> None:
        self.entity_cls = entity_cls
        self.list_key = list_key or entity_cls.LIST_SERIALIZATION_KEY

    def adapt(self, envelope: dict[str, Any]) -> list[T]:
        return [
            self.entity_cls.from_wire(item)
            for item in envelope_data(envelope)[self.list_key]
        ]


class CountResponseAdapter:
    """Reads ``data.count`` as an int."""

    def adapt(self, envelope: dict[str, Any]) -> int:
        return int(envelope_data(envelope)["count"])


class NullResponseAdapter:
    """For void calls: the envelope's status is all that matters."""

    def adapt(self, envelope: dict[str, Any]) -> None:  # noqa: ARG002
        return None


class BooleanResponseAdapter:
    """
    Reads a boolean from ``data[key]``.

    A subscription check answers through HTTP 200 vs 404 as well, so a
    success envelope without the key counts as ``True``.
    """

    def __init__(self, key: str = "is_subscribed") -> None:
        self.key = key

    def adapt(self, envelope: dict[str, Any]) -> bool:
        return bool(envelope_data(envelope).get(self.key, True))


class UserAccountResponseAdapter:
    """
    Reads the bootstrap (fetch-or-create account) response.

    The user lives under ``data.user``; the auth token is taken from
    ``data.auth_token`` when present, otherwise from ``data.user.auth_token``.
    """

    def adapt(self, envelope: dict[str, Any]) -> User:
        data = envelope_data(envelope)
        user_json = data[User.SERIALIZATION_KEY]
        user = User.from_wire(user_json)
        user.auth_token = data.get("auth_token") or user_json.get("auth_token")
        if not user.id or not user.auth_token:
            raise KeyError("Account response is missing the user id or auth token")
        return user
