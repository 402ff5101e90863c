"""
Notification watcher - counts operator replies while the widget is hidden.
"""

from typing import Optional

from config.app_config import AppConfig
from infrastructure.monitoring.logging_service import get_logger
from infrastructure.store.base import ChangeType, Query, QuerySnapshot
from services.chat_service.conversation_repository import ConversationRepository
from services.chat_service.cursor import TimestampCursor, UnreadCounter
from services.chat_service.models import SenderRole, WidgetState
from services.chat_service.subscription import ManagedSubscription
from services.ui_service.notifier import Notifier


class NotificationWatcher:
    """
    Watches messages newer than the cursor (captured when the subscription
    starts) and raises one notice per added operator message.
    """

    def __init__(
        self,
        repository: ConversationRepository,
        state: WidgetState,
        cursor: TimestampCursor,
        unread: UnreadCounter,
        notifier: Notifier,
        config: AppConfig
    ):
        self.repository = repository
        self.state = state
        self.cursor = cursor
        self.unread = unread
        self.notifier = notifier
        self.config = config
        self.logger = get_logger(__name__)
        self.subscription = ManagedSubscription(
            "notification-watcher",
            repository.store,
            self._query,
            self._on_snapshot,
        )

    def _query(self) -> Optional[Query]:
        if self.state.resolved_id is None or self.state.visible:
            return None
        return self.repository.messages_after(self.state.resolved_id, self.cursor.value)

    def _on_snapshot(self, snapshot: QuerySnapshot) -> None:
        for change in snapshot.changes:
            if change.change_type is not ChangeType.ADDED:
                continue
            if change.document.get("sender") != SenderRole.OPERATOR.value:
                continue
            count = self.unread.increment()
            self.logger.debug(f"Operator reply observed while hidden (unread={count})")
            self.notifier.info(self.config.chat.operator_reply_notice)

    def reconcile(self) -> None:
        self.subscription.reconcile()

    def close(self) -> None:
        self.subscription.close()
