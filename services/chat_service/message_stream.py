"""
Message stream - live history of the resolved conversation while the widget is visible.
"""

from typing import Callable, Optional

from config.app_config import AppConfig
from infrastructure.store.base import Query, QuerySnapshot
from services.chat_service.conversation_repository import ConversationRepository
from services.chat_service.models import SyntheticMessage, WidgetState
from services.chat_service.subscription import ManagedSubscription


class MessageStream:
    """
    Replaces the in-memory entries with each snapshot of the conversation's
    messages, ordered by creation time. Optimistic entries are superseded by
    the replacement; entries survive a hide/show cycle.
    """

    WELCOME_BACK = "welcome-back"

    def __init__(self, repository: ConversationRepository, state: WidgetState,
                 config: AppConfig, clock: Callable):
        self.repository = repository
        self.state = state
        self.config = config
        self._clock = clock
        self.subscription = ManagedSubscription(
            "message-stream",
            repository.store,
            self._query,
            self._on_snapshot,
        )

    def _query(self) -> Optional[Query]:
        if self.state.resolved_id is None or not self.state.visible:
            return None
        return self.repository.message_history(self.state.resolved_id)

    def _on_snapshot(self, snapshot: QuerySnapshot) -> None:
        if snapshot.empty:
            self.state.messages = [SyntheticMessage(
                name=self.WELCOME_BACK,
                text=self.config.chat.welcome_back_message,
                created_at=self._clock(),
            )]
            return
        self.state.messages = [self.repository.decode_message(doc) for doc in snapshot.documents]

    def reconcile(self) -> None:
        self.subscription.reconcile()

    def close(self) -> None:
        self.subscription.close()
