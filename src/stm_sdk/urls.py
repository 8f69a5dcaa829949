"""
URL providers: verb + entity + server base address → fully qualified URL.

Two shapes exist: collection-style (``base + /resource``) for create and
list calls, and single-resource-style (``/resource/:id`` with the entity's
id substituted) for fetch/update/delete.  A missing id where one is
required raises :class:`~stm_sdk.errors.ValidationError` before any I/O.
"""

from __future__ import annotations

from typing import Protocol
from urllib.parse import quote, urlencode

from .config import MESSAGE_LIST_LIMIT
from .entities import StmEntity
from .errors import ValidationError

ID_PLACEHOLDER = ":id"


class UrlProvider(Protocol):
    def get_url(self, verb: str, entity: StmEntity | None = None) -> str:
        ...


def _require(value: str | None, what: str) -> str:
    if not value:
        raise ValidationError(f"{what} is required to build the request URL")
    return value


def _base(server_url: str) -> str:
    return _require(server_url, "server URL").rstrip("/")


class DefaultUrlProvider:
    """
    Uses the entity's own endpoint templates.

    Args:
        server_url: Service base URL.
        collection_fetch: When ``True``, ``fetch`` lists the collection
            instead of reading one resource.
        query: Optional query parameters appended to every URL.
    """

    def __init__(
        self,
        server_url: str,
        collection_fetch: bool = False,
        query: dict[str, str | int] | None = None,
    ) -> None:
        self.server_url = server_url
        self.collection_fetch = collection_fetch
        self.query = query or {}

    def get_url(self, verb: str, entity: StmEntity | None = None) -> str:
        if entity is None:
            raise ValidationError("An entity is required to build the request URL")

        if verb == "create" or (verb == "fetch" and self.collection_fetch):
            path = entity.collection_endpoint()
        else:
            entity_id = _require(entity.id, f"{type(entity).__name__} id")
            path = entity.single_resource_endpoint().replace(
                ID_PLACEHOLDER, quote(entity_id, safe="")
            )

        url = _base(self.server_url) + path
        if self.query:
            url += "?" + urlencode(self.query)
        return url


def message_list_url_provider(server_url: str) -> DefaultUrlProvider:
    return DefaultUrlProvider(
        server_url, collection_fetch=True, query={"limit": MESSAGE_LIST_LIMIT}
    )


class TopicUrlProvider:
    """``/users/:user_id/topic_preferences[/:topic]``"""

    def __init__(self, server_url: str, user_id: str | None) -> None:
        self.server_url = server_url
        self.user_id = user_id

    def get_url(self, verb: str, entity: StmEntity | None = None) -> str:
        user_id = _require(self.user_id, "user id")
        url = f"{_base(self.server_url)}/users/{quote(user_id, safe='')}/topic_preferences"
        if verb == "create":
            return url
        topic = _require(getattr(entity, "topic", None), "topic")
        return f"{url}/{quote(topic, safe='')}"


class ChannelSubscriptionUrlProvider:
    """``/users/:user_id/channel_subscriptions[/:channel_id]``"""

    def __init__(self, server_url: str, user_id: str | None) -> None:
        self.server_url = server_url
        self.user_id = user_id

    def get_url(self, verb: str, entity: StmEntity | None = None) -> str:
        user_id = _require(self.user_id, "user id")
        url = f"{_base(self.server_url)}/users/{quote(user_id, safe='')}/channel_subscriptions"
        if verb == "create":
            return url
        channel_id = _require(getattr(entity, "channel_id", None), "channel id")
        return f"{url}/{quote(channel_id, safe='')}"


class MessageCountUrlProvider:
    """``/messages?count_only=true[&unread_only=true]``"""

    def __init__(self, server_url: str, unread_only: bool = False) -> None:
        self.server_url = server_url
        self.unread_only = unread_only

    def get_url(self, verb: str, entity: StmEntity | None = None) -> str:  # noqa: ARG002
        query = {"count_only": "true"}
        if self.unread_only:
            query["unread_only"] = "true"
        return f"{_base(self.server_url)}/messages?{urlencode(query)}"


class UserAccountUrlProvider:
    """
    Fetch-or-create account endpoint used by session bootstrap.

    The service creates a user for an unseen device id, or returns the
    existing one, and issues its auth token.
    """

    def __init__(self, server_url: str, installation_id: str) -> None:
        self.server_url = server_url
        self.installation_id = installation_id

    def get_url(self, verb: str, entity: StmEntity | None = None) -> str:  # noqa: ARG002
        device_id = _require(self.installation_id, "installation id")
        return f"{_base(self.server_url)}/users/skip?{urlencode({'device_id': device_id})}"
