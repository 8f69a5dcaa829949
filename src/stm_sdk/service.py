"""
StmService, the main entry point of the SDK.

The service is the long-lived context object: it owns the preference
store, the transport, the session token manager, and a handle on the
process-wide request queue, and passes them to every processor it builds.

Every asynchronous operation accepts an optional callback (see
:class:`~stm_sdk.usecases.StmCallback`).  Arguments are validated before
anything else; a missing argument with no callback raises
:class:`~stm_sdk.errors.ValidationError`.  Operations that reach the
processor return a ``concurrent.futures.Future`` resolving to the Outcome.
"""

from __future__ import annotations

import concurrent.futures
import logging
import os
import threading
import uuid

from . import usecases
from .adapters import (
    BooleanResponseAdapter,
    CountResponseAdapter,
    JsonRequestAdapter,
    ListResponseAdapter,
    NullResponseAdapter,
    ObjectResponseAdapter,
    PendingChangesRequestAdapter,
    UserAccountResponseAdapter,
)
from .config import (
    CHANNEL_ID_ENV,
    CLIENT_TOKEN_ENV,
    DEFAULT_SERVER_URL,
    PREF_CHANNEL_ID,
    PREF_INSTALLATION_ID,
    PREF_SERVER_URL,
    SERVER_URL_ENV,
)
from .entities import Channel, CreateShoutRequest, Message, Shout, UpdateUserRequest, User
from .errors import SEVERITY_MAJOR, SEVERITY_MINOR, Outcome
from .preferences import InMemoryPreferenceStore, PreferenceStore
from .processor import AsyncEntityRequestProcessor, CallConfig, SyncEntityRequestProcessor
from .request_queue import RequestQueue
from .session import SessionTokenManager
from .transport import HttpTransport, Transport
from .urls import (
    ChannelSubscriptionUrlProvider,
    DefaultUrlProvider,
    MessageCountUrlProvider,
    TopicUrlProvider,
    UserAccountUrlProvider,
    UrlProvider,
    message_list_url_provider,
)
from .usecases import StmCallback

logger = logging.getLogger(__name__)


class StmService:
    """
    Client for the Shout to Me platform.

    Args:
        client_token: Client access token used to bootstrap the user
            account.  Falls back to ``$STM_CLIENT_TOKEN``.
        channel_id: Default channel for new shouts.  Falls back to
            ``$STM_CHANNEL_ID``; an existing stored value is kept otherwise.
        server_url: Service base URL.  Falls back to ``$STM_SERVER_URL``,
            then the stored value, then :data:`DEFAULT_SERVER_URL`.
        preferences: Persisted key-value store (in-memory by default).
        transport: Transport executor (``requests`` by default).
        request_queue: Shared request queue (process-wide instance by default).
    """

    def __init__(
        self,
        client_token: str | None = None,
        channel_id: str | None = None,
        server_url: str | None = None,
        preferences: PreferenceStore | None = None,
        transport: Transport | None = None,
        request_queue: RequestQueue | None = None,
    ) -> None:
        self.preferences = preferences if preferences is not None else InMemoryPreferenceStore()
        self.transport = transport if transport is not None else HttpTransport()
        self.request_queue = request_queue if request_queue is not None else RequestQueue.get_instance()

        self.client_token = client_token or os.getenv(CLIENT_TOKEN_ENV)
        if not self.client_token:
            logger.warning(
                "Client token is missing. Set '%s' or pass client_token to StmService.",
                CLIENT_TOKEN_ENV,
            )

        channel_id = channel_id or os.getenv(CHANNEL_ID_ENV)
        if channel_id:
            self.set_channel_id(channel_id)

        server_url = server_url or os.getenv(SERVER_URL_ENV)
        if server_url:
            self.set_server_url(server_url)

        self.session_manager = SessionTokenManager(self.preferences, self._fetch_account)
        self.shout_creation_callback: StmCallback | None = None
        self._installation_lock = threading.Lock()
        self._user_lock = threading.Lock()
        self._user: User | None = None

    # ── Lifecycle ──────────────────────────────────────────────────────────

    def start(self) -> concurrent.futures.Future:
        """Bootstrap the user session in the background."""
        return self.request_queue.submit(self.get_user_auth_token)

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> StmService:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── Preferences ────────────────────────────────────────────────────────

    def get_installation_id(self) -> str:
        """Return the SDK installation id, generating it once if absent."""
        with self._installation_lock:
            installation_id = self.preferences.get(PREF_INSTALLATION_ID)
            if installation_id is None:
                installation_id = str(uuid.uuid4())
                self.preferences.set(PREF_INSTALLATION_ID, installation_id)
            return installation_id

    @property
    def channel_id(self) -> str | None:
        return self.preferences.get(PREF_CHANNEL_ID)

    def set_channel_id(self, channel_id: str) -> None:
        self.preferences.set(PREF_CHANNEL_ID, channel_id)

    @property
    def server_url(self) -> str:
        return self.preferences.get(PREF_SERVER_URL) or DEFAULT_SERVER_URL

    def set_server_url(self, server_url: str) -> None:
        """Point the SDK at another environment (testing only)."""
        self.preferences.set(PREF_SERVER_URL, server_url)

    # ── Session ────────────────────────────────────────────────────────────

    def get_user_auth_token(self) -> str | None:
        """
        Return the user auth token, bootstrapping the account on first use.

        The token can also be used to call the REST API outside of the SDK.
        """
        return self.session_manager.get_auth_token()

    def refresh_user_auth_token(self) -> str | None:
        """Clear the stored token and fetch a new one from the service."""
        with self._user_lock:
            self._user = None
        return self.session_manager.refresh()

    @property
    def user(self) -> User:
        """The in-memory user; an empty ``User`` if nothing is loaded yet."""
        with self._user_lock:
            if self._user is not None:
                return self._user
        return self.session_manager.user or User(id=self.session_manager.user_id)

    def _set_user(self, user: User) -> None:
        with self._user_lock:
            self._user = user

    def _fetch_account(self) -> Outcome:
        config = CallConfig(
            url_provider=UserAccountUrlProvider(self.server_url, self.get_installation_id()),
            response_adapter=UserAccountResponseAdapter(),
            auth_token=self.client_token,
        )
        return SyncEntityRequestProcessor(config, self.transport).process("fetch")

    # ── Processor construction ─────────────────────────────────────────────

    def _processor(
        self,
        url_provider: UrlProvider,
        response_adapter,
        auth_token: str | None,
        request_adapter=None,
    ) -> AsyncEntityRequestProcessor:
        config = CallConfig(
            url_provider=url_provider,
            response_adapter=response_adapter,
            auth_token=auth_token,
            request_adapter=request_adapter,
        )
        return AsyncEntityRequestProcessor(config, self.request_queue, self.transport)

    # ── Topic preferences ──────────────────────────────────────────────────

    def add_topic_preference(
        self, topic: str, callback: StmCallback | None = None
    ) -> concurrent.futures.Future | None:
        """
        Add a topic preference; the user then only receives notifications
        for their preferred topics.
        """
        if not usecases.require(topic, "topic cannot be null", callback):
            return None
        token = self.get_user_auth_token()
        processor = self._processor(
            TopicUrlProvider(self.server_url, self.session_manager.user_id),
            NullResponseAdapter(),
            token,
            JsonRequestAdapter(),
        )
        return usecases.create_topic_preference(processor, topic, callback)

    def remove_topic_preference(
        self, topic: str, callback: StmCallback | None = None
    ) -> concurrent.futures.Future | None:
        """
        Remove a topic preference.  Removing the last one means the user
        receives shouts from all topics again.
        """
        if not usecases.require(topic, "topic cannot be null", callback):
            return None
        token = self.get_user_auth_token()
        processor = self._processor(
            TopicUrlProvider(self.server_url, self.session_manager.user_id),
            NullResponseAdapter(),
            token,
        )
        return usecases.delete_topic_preference(processor, topic, callback)

    # ── Channels ───────────────────────────────────────────────────────────

    def get_channels(self, callback: StmCallback | None = None) -> concurrent.futures.Future:
        token = self.get_user_auth_token()
        processor = self._processor(
            DefaultUrlProvider(self.server_url, collection_fetch=True),
            ListResponseAdapter(Channel),
            token,
        )
        return usecases.get_channels(processor, callback)

    def subscribe_to_channel(
        self, channel_id: str, callback: StmCallback | None = None
    ) -> concurrent.futures.Future | None:
        if not usecases.require(channel_id, "channelId cannot be null", callback):
            return None
        token = self.get_user_auth_token()
        processor = self._processor(
            ChannelSubscriptionUrlProvider(self.server_url, self.session_manager.user_id),
            NullResponseAdapter(),
            token,
            JsonRequestAdapter(),
        )
        return usecases.create_channel_subscription(processor, channel_id, callback)

    def unsubscribe_from_channel(
        self, channel_id: str, callback: StmCallback | None = None
    ) -> concurrent.futures.Future | None:
        if not usecases.require(channel_id, "channelId cannot be null", callback):
            return None
        token = self.get_user_auth_token()
        processor = self._processor(
            ChannelSubscriptionUrlProvider(self.server_url, self.session_manager.user_id),
            NullResponseAdapter(),
            token,
        )
        return usecases.delete_channel_subscription(processor, channel_id, callback)

    def is_subscribed_to_channel(
        self, channel_id: str, callback: StmCallback | None = None
    ) -> concurrent.futures.Future | None:
        if not usecases.require(channel_id, "channelId cannot be null", callback):
            return None
        token = self.get_user_auth_token()
        processor = self._processor(
            ChannelSubscriptionUrlProvider(self.server_url, self.session_manager.user_id),
            BooleanResponseAdapter(),
            token,
        )
        return usecases.get_channel_subscription(processor, channel_id, callback)

    # ── Messages ───────────────────────────────────────────────────────────

    def get_message(
        self, message_id: str, callback: StmCallback | None = None
    ) -> concurrent.futures.Future | None:
        """Get one message; a message that does not exist yields ``None``."""
        if not usecases.require(message_id, "messageId cannot be null", callback):
            return None
        token = self.get_user_auth_token()
        processor = self._processor(
            DefaultUrlProvider(self.server_url),
            ObjectResponseAdapter(Message),
            token,
        )
        return usecases.get_message(processor, message_id, callback)

    def get_messages(self, callback: StmCallback | None = None) -> concurrent.futures.Future:
        token = self.get_user_auth_token()
        processor = self._processor(
            message_list_url_provider(self.server_url),
            ListResponseAdapter(Message),
            token,
        )
        return usecases.get_messages(processor, callback)

    def get_unread_message_count(
        self, callback: StmCallback | None = None
    ) -> concurrent.futures.Future:
        token = self.get_user_auth_token()
        processor = self._processor(
            MessageCountUrlProvider(self.server_url, unread_only=True),
            CountResponseAdapter(),
            token,
        )
        return usecases.get_message_count(processor, callback)

    # ── Users ──────────────────────────────────────────────────────────────

    def get_user(self, callback: StmCallback | None = None) -> concurrent.futures.Future | None:
        """Load the current user from the service into memory."""
        token = self.get_user_auth_token()
        user_id = self.session_manager.user_id
        if not user_id:
            usecases.report_error(
                "User has not been initialized", callback, fatal=True, severity=SEVERITY_MINOR
            )
            return None
        processor = self._processor(
            DefaultUrlProvider(self.server_url),
            ObjectResponseAdapter(User),
            token,
        )
        return usecases.get_user(processor, user_id, callback, on_user=self._set_user)

    def update_user(
        self, request: UpdateUserRequest, callback: StmCallback | None = None
    ) -> concurrent.futures.Future | None:
        if not usecases.require(request, "updateUserRequest cannot be null", callback):
            return None
        token = self.get_user_auth_token()
        user_id = self.session_manager.user_id
        if not user_id:
            usecases.report_error(
                "Shout to Me user not initialized", callback, severity=SEVERITY_MAJOR
            )
            return None
        processor = self._processor(
            DefaultUrlProvider(self.server_url),
            ObjectResponseAdapter(User),
            token,
            PendingChangesRequestAdapter(),
        )
        return usecases.update_user(processor, request, user_id, callback, on_user=self._set_user)

    def reload_user(self, callback: StmCallback | None = None) -> concurrent.futures.Future | None:
        """
        Reinitialize the user from the service, replacing the stored id and
        token with whatever the bootstrap call returns.
        """
        with self._user_lock:
            self._user = None
        self.session_manager.invalidate()
        return self.get_user(callback)

    # ── Shouts ─────────────────────────────────────────────────────────────

    def create_shout(
        self, request: CreateShoutRequest, callback: StmCallback | None = None
    ) -> concurrent.futures.Future | None:
        """
        Create a shout programmatically.  ``shout_creation_callback``, when
        set, is also told about every shout created successfully.
        """
        if not usecases.require(request, "createShoutRequest cannot be null", callback):
            return None
        if not usecases.require(request.audio, "audio cannot be null", callback):
            return None
        token = self.get_user_auth_token()
        processor = self._processor(
            DefaultUrlProvider(self.server_url),
            ObjectResponseAdapter(Shout),
            token,
            JsonRequestAdapter(),
        )
        return usecases.upload_shout(
            processor,
            request,
            self.channel_id,
            self.get_installation_id(),
            callback,
            on_shout=self._notify_shout_created,
        )

    def _notify_shout_created(self, shout: Shout) -> None:
        if self.shout_creation_callback is not None:
            self.shout_creation_callback.on_success(shout)
