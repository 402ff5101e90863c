"""
Support widget - the end-user side of the support chat.

Composes the chat locator, the message stream, the notification watcher and
the send pipeline around one WidgetState. All public methods must be called
from the event loop that delivers store snapshots.
"""

from typing import Callable, List, Optional

from config.app_config import AppConfig, get_config
from infrastructure.monitoring.logging_service import get_logger, log_conversation_event
from infrastructure.store.base import DocumentStore
from infrastructure.store.memory_store import utc_now
from services.auth_service.auth_session import AuthSession
from services.auth_service.models import Identity
from services.chat_service.chat_locator import ChatLocator
from services.chat_service.conversation_repository import ConversationRepository
from services.chat_service.cursor import TimestampCursor, UnreadCounter
from services.chat_service.message_stream import MessageStream
from services.chat_service.models import ChatEntry, WidgetState
from services.chat_service.notification_watcher import NotificationWatcher
from services.chat_service.send_pipeline import SendPipeline
from services.ui_service.notifier import Notifier


class SupportWidget:
    """
    Service for the floating support chat of one browser tab.
    Handles visibility, identity changes and message sending.
    """

    def __init__(
        self,
        store: DocumentStore,
        auth_session: AuthSession,
        notifier: Notifier,
        config: Optional[AppConfig] = None,
        clock: Callable = utc_now,
        repository: Optional[ConversationRepository] = None
    ):
        self.config = config or get_config()
        self.logger = get_logger(__name__)
        self.auth_session = auth_session
        self.notifier = notifier
        self._clock = clock
        self.repository = repository or ConversationRepository(store, self.config)

        self.state = WidgetState(identity=auth_session.identity)
        self.cursor = TimestampCursor(clock())
        self.unread = UnreadCounter()

        self.locator = ChatLocator(self.repository, self.state, self.config,
                                   on_resolution_change=self._redirect, clock=clock)
        self.stream = MessageStream(self.repository, self.state, self.config, clock)
        self.watcher = NotificationWatcher(self.repository, self.state, self.cursor,
                                           self.unread, notifier, self.config)
        self.pipeline = SendPipeline(self.repository, self.state, notifier, self.config,
                                     adopt_conversation=self.locator.resolve, clock=clock)

        self._remove_auth_listener = auth_session.add_listener(self._on_identity_changed)
        self._disposed = False
        self.reconcile()

    # ------------------------------------------------------------------
    # Read-only view

    @property
    def messages(self) -> List[ChatEntry]:
        return list(self.state.messages)

    @property
    def resolved_id(self) -> Optional[str]:
        return self.state.resolved_id

    @property
    def is_open(self) -> bool:
        return self.state.visible

    @property
    def unread_count(self) -> int:
        return self.unread.count

    # ------------------------------------------------------------------
    # Events

    def open(self) -> bool:
        """
        Show the widget

        Returns:
            False when nobody is signed in (the host should prompt for login)
        """
        if self.state.identity is None:
            return False
        if self.state.visible:
            return True

        # Reset before the stream subscribes so nothing is counted twice
        self.unread.reset()
        self.cursor.advance(self._clock())
        self.state.visible = True
        self.reconcile()
        return True

    def close(self) -> None:
        if not self.state.visible:
            return
        # Replies shown while open are already seen
        self.cursor.advance(self._clock())
        self.state.visible = False
        self.reconcile()

    def toggle(self) -> bool:
        if self.state.visible:
            self.close()
            return True
        return self.open()

    async def send(self, text: str) -> bool:
        sent = await self.pipeline.send(text)
        if sent:
            log_conversation_event(self.logger, "message_sent", self.state.resolved_id)
        return sent

    def dispose(self) -> None:
        """Tear down every subscription and stop following the auth session"""
        if self._disposed:
            return
        self._disposed = True
        self._remove_auth_listener()
        self.locator.close()
        self.stream.close()
        self.watcher.close()

    # ------------------------------------------------------------------
    # Subscription wiring

    def reconcile(self) -> None:
        if self._disposed:
            return
        self.locator.reconcile()
        self._redirect()

    def _redirect(self) -> None:
        """Point the stream or the watcher (never both) at the resolved conversation"""
        if self._disposed:
            return
        # Tear down first so the two are never active together
        if self.state.visible:
            self.watcher.reconcile()
            self.stream.reconcile()
        else:
            self.stream.reconcile()
            self.watcher.reconcile()

    def _on_identity_changed(self, identity: Optional[Identity]) -> None:
        if identity == self.state.identity:
            return

        self.logger.info("Identity changed; resetting support widget state")
        self.state.identity = identity
        self.state.resolved_id = None
        self.state.messages = []
        if identity is None:
            self.state.visible = False
        self.unread.reset()
        self.reconcile()
