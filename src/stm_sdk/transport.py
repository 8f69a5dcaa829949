"""
Request descriptors and the HTTP transport executor.

The transport performs exactly one request/response cycle and reports the
raw status code and body.  It does not classify responses; that belongs to
:mod:`stm_sdk.processor`.  Transport failures propagate as
``requests.RequestException`` so the processor can categorize them.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Protocol

import requests

from .config import CONTENT_TYPE_JSON, HTTP_METHODS, REQUEST_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestDescriptor:
    """
    One fully built HTTP request.  Immutable once constructed.

    Attributes:
        verb: ``'fetch'``, ``'create'``, ``'update'`` or ``'delete'``.
        url: Fully qualified target URL.
        headers: Read-only header mapping.
        body: Serialized JSON body, or ``None``.
    """

    verb: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str | None = None

    def __post_init__(self) -> None:
        if self.verb not in HTTP_METHODS:
            raise ValueError(f"Unknown verb '{self.verb}'")
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    @property
    def method(self) -> str:
        return HTTP_METHODS[self.verb]


@dataclass(frozen=True)
class TransportResponse:
    """Raw status code and body text of one HTTP exchange."""

    status_code: int
    body: str


def build_auth_headers(auth_token: str) -> dict[str, str]:
    """
    Construct bearer authentication headers for a service call.

    Args:
        auth_token: User auth token issued by the service.

    Returns:
        Dict of HTTP header name → value pairs.
    """
    return {
        "Authorization": f"Bearer {auth_token}",
        "Content-Type": CONTENT_TYPE_JSON,
    }


class Transport(Protocol):
    """Anything that can execute a :class:`RequestDescriptor`."""

    def execute(self, request: RequestDescriptor) -> TransportResponse:
        ...


class HttpTransport:
    """
    Default transport backed by ``requests``.

    Args:
        timeout: Connect/read timeout in seconds for every call.
        session: Optional ``requests.Session`` for connection pooling.
    """

    def __init__(
        self,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self.timeout = timeout
        self._session = session

    def execute(self, request: RequestDescriptor) -> TransportResponse:
        """
        Send ``request`` and return the raw response.

        Raises:
            requests.RequestException: Malformed URL, connection failure,
                timeout, or I/O failure during send/receive.
        """
        send = self._session.request if self._session is not None else requests.request
        data = request.body.encode("utf-8") if request.body is not None else None

        start = time.monotonic()
        response = send(
            request.method,
            request.url,
            headers=dict(request.headers),
            data=data,
            timeout=self.timeout,
        )
        latency = round(time.monotonic() - start, 3)

        logger.debug(
            "%s %s -> %s (%.3fs)", request.method, request.url, response.status_code, latency
        )
        return TransportResponse(status_code=response.status_code, body=response.text)

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
