"""
Entity request processors: the core request pipeline.

One logical call runs these steps strictly in order:

1. fast-fail with a ServiceError if no auth token is configured (no I/O)
2. serialize the entity through the request adapter (create/update only)
3. resolve the URL through the URL provider
4. build an immutable RequestDescriptor with bearer + JSON headers
5. execute it through the transport
6. classify: 200 → envelope, 404 → Empty, anything else → ServiceError
7. envelope status must be "success", then the response adapter runs
8. notify observers with the single Outcome

Any exception raised by steps 2–7 is converted into a ServiceError; the
processor never lets a transport or parse failure escape to the caller.

The synchronous processor runs on the calling thread.  The asynchronous
processor submits the same pipeline to the shared RequestQueue and delivers
the outcome on a worker thread.
"""

from __future__ import annotations

import concurrent.futures
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

from .adapters import RequestAdapter, ResponseAdapter
from .config import (
    BODY_VERBS,
    ENVELOPE_STATUS_KEY,
    ENVELOPE_SUCCESS,
    HTTP_METHODS,
    HTTP_NOT_FOUND,
    HTTP_OK,
)
from .entities import StmEntity
from .errors import Empty, ErrorCategory, Outcome, ServiceError, Success
from .request_queue import RequestQueue
from .transport import HttpTransport, RequestDescriptor, Transport, build_auth_headers
from .urls import UrlProvider

logger = logging.getLogger(__name__)

Observer = Callable[[Outcome], Any]


# ---------------------------------------------------------------------------
# Call configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CallConfig:
    """
    Everything that varies between feature calls.

    Attributes:
        url_provider: Computes the target URL.
        response_adapter: Converts a success envelope into the result.
        auth_token: Bearer token; empty or ``None`` fails fast.
        request_adapter: Serializes the entity for create/update, or ``None``.
    """

    url_provider: UrlProvider
    response_adapter: ResponseAdapter
    auth_token: str | None
    request_adapter: RequestAdapter | None = None


# ---------------------------------------------------------------------------
# Observer registry
# ---------------------------------------------------------------------------

class ObserverRegistry:
    """
    Ordered list of listeners for one processor.

    Observers are called in registration order, once per processed request.
    Adding or removing observers from inside a notification is not supported;
    callers must not mutate the registry while it is notifying.
    An observer that raises is logged and skipped; the rest still run.
    """

    def __init__(self) -> None:
        self._observers: list[Observer] = []

    def add(self, observer: Observer) -> None:
        self._observers.append(observer)

    def remove(self, observer: Observer) -> None:
        """Remove ``observer``; unknown observers are ignored."""
        try:
            self._observers.remove(observer)
        except ValueError:
            pass

    def notify_all(self, outcome: Outcome) -> None:
        for observer in list(self._observers):
            try:
                observer(outcome)
            except Exception:
                logger.exception("Observer %r failed", observer)

    def __len__(self) -> int:
        return len(self._observers)


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------

class SyncEntityRequestProcessor:
    """
    Runs one call on the calling thread and returns its Outcome.

    Args:
        config: Adapters, URL provider and token for this call shape.
        transport: Transport executor; defaults to :class:`HttpTransport`.
    """

    def __init__(self, config: CallConfig, transport: Transport | None = None) -> None:
        self.config = config
        self.transport = transport if transport is not None else HttpTransport()
        self.observers = ObserverRegistry()

    def add_observer(self, observer: Observer) -> None:
        self.observers.add(observer)

    def remove_observer(self, observer: Observer) -> None:
        self.observers.remove(observer)

    def process(self, verb: str, entity: StmEntity | None = None) -> Outcome:
        outcome = self.execute(verb, entity)
        self.observers.notify_all(outcome)
        return outcome

    # ── Pipeline ───────────────────────────────────────────────────────────

    def execute(self, verb: str, entity: StmEntity | None = None) -> Outcome:
        """Run the pipeline without notifying observers."""
        if not self.config.auth_token:
            return ServiceError(
                "Attempted to call Shout to Me service with invalid authToken",
                category=ErrorCategory.AUTH_NOT_READY,
            )

        try:
            request = self.build_request(verb, entity)
            response = self.transport.execute(request)

            if response.status_code == HTTP_NOT_FOUND:
                return Empty()

            if response.status_code != HTTP_OK:
                logger.error(
                    "%s %s returned HTTP %s", request.method, request.url, response.status_code
                )
                return ServiceError(
                    f"Service returned HTTP {response.status_code}: {response.body}",
                    category=ErrorCategory.PROTOCOL,
                )

            return self.classify_envelope(json.loads(response.body))

        except Exception as exc:
            category, message = ErrorCategory.categorize(exc)
            logger.error("Error calling the Shout to Me service [%s]: %s", category, message)
            return ServiceError(
                f"An error occurred calling the Shout to Me service. {message}",
                category=category,
            )

    def build_request(self, verb: str, entity: StmEntity | None) -> RequestDescriptor:
        if verb not in HTTP_METHODS:
            raise ValueError(f"Unknown verb '{verb}'")

        body = None
        if verb in BODY_VERBS and self.config.request_adapter is not None:
            body = self.config.request_adapter.adapt(entity)

        return RequestDescriptor(
            verb=verb,
            url=self.config.url_provider.get_url(verb, entity),
            headers=build_auth_headers(self.config.auth_token),
            body=body,
        )

    def classify_envelope(self, envelope: Any) -> Outcome:
        status = envelope.get(ENVELOPE_STATUS_KEY) if isinstance(envelope, dict) else None
        if status != ENVELOPE_SUCCESS:
            logger.error("Response status was %s. %s", status, envelope)
            return ServiceError(
                f"An error was received from the Shout to Me service {json.dumps(envelope)}",
                category=ErrorCategory.PROTOCOL,
            )
        return Success(self.config.response_adapter.adapt(envelope))


class AsyncEntityRequestProcessor(SyncEntityRequestProcessor):
    """
    Submits the pipeline to the shared :class:`RequestQueue`.

    ``process`` returns immediately; observers and the optional callback are
    invoked exactly once on a worker thread, never on the calling thread.
    """

    def __init__(
        self,
        config: CallConfig,
        request_queue: RequestQueue,
        transport: Transport | None = None,
    ) -> None:
        super().__init__(config, transport)
        self.request_queue = request_queue

    def process(
        self,
        verb: str,
        entity: StmEntity | None = None,
        callback: Observer | None = None,
    ) -> concurrent.futures.Future:
        """
        Enqueue one call.

        Returns:
            Future resolving to the Outcome once observers and ``callback``
            have run.
        """
        return self.request_queue.submit(self._run, verb, entity, callback)

    def _run(self, verb: str, entity: StmEntity | None, callback: Observer | None) -> Outcome:
        outcome = self.execute(verb, entity)
        self.observers.notify_all(outcome)
        if callback is not None:
            callback(outcome)
        return outcome
