"""
Chat locator - resolves the signed-in user's conversation id.
"""

from typing import Callable, Optional

from config.app_config import AppConfig
from infrastructure.monitoring.logging_service import get_logger
from infrastructure.store.base import Query, QuerySnapshot
from services.chat_service.conversation_repository import ConversationRepository
from services.chat_service.models import SyntheticMessage, WidgetState
from services.chat_service.subscription import ManagedSubscription


class ChatLocator:
    """
    Keeps a live subscription on the user's conversations and exposes the
    first match as the resolved conversation id. Never writes.
    """

    GREETING = "greeting"

    def __init__(
        self,
        repository: ConversationRepository,
        state: WidgetState,
        config: AppConfig,
        on_resolution_change: Callable[[], None],
        clock: Callable
    ):
        self.repository = repository
        self.state = state
        self.config = config
        self.logger = get_logger(__name__)
        self._on_resolution_change = on_resolution_change
        self._clock = clock
        self.subscription = ManagedSubscription(
            "chat-locator",
            repository.store,
            self._query,
            self._on_snapshot,
        )

    def _query(self) -> Optional[Query]:
        if self.state.identity is None:
            return None
        return self.repository.conversations_for_user(self.state.identity.user_id)

    def _on_snapshot(self, snapshot: QuerySnapshot) -> None:
        if not snapshot.empty:
            self.resolve(snapshot.documents[0].document_id)
            return

        self.resolve(None)
        if not self.state.messages:
            self.state.messages = [SyntheticMessage(
                name=self.GREETING,
                text=self.config.chat.greeting_message,
                created_at=self._clock(),
            )]

    def resolve(self, conversation_id: Optional[str]) -> None:
        """Adopt a conversation id and redirect dependent subscriptions if it changed"""
        if conversation_id == self.state.resolved_id:
            return
        self.logger.info(f"Resolved conversation changed: {self.state.resolved_id} -> {conversation_id}")
        self.state.resolved_id = conversation_id
        self._on_resolution_change()

    def reconcile(self) -> None:
        self.subscription.reconcile()

    def close(self) -> None:
        self.subscription.close()
