"""
Conversation directory - every support conversation, most recent first.
"""

from typing import Callable, List, Optional

from infrastructure.monitoring.logging_service import get_logger, get_error_tracker
from infrastructure.store.base import Query, QuerySnapshot
from services.chat_service.conversation_repository import ConversationRepository
from services.chat_service.models import Conversation, ConversationStatus
from services.chat_service.subscription import ManagedSubscription
from services.ui_service.notifier import Notifier


class ConversationDirectory:
    """
    Live list of conversations for the operator console, plus the current
    selection. Selecting a new conversation marks it read.
    """

    def __init__(self, repository: ConversationRepository, notifier: Notifier,
                 on_selection_change: Callable[[], None]):
        self.repository = repository
        self.notifier = notifier
        self.logger = get_logger(__name__)
        self._on_selection_change = on_selection_change
        self._active = False

        self.conversations: List[Conversation] = []
        self.selected_id: Optional[str] = None

        self.subscription = ManagedSubscription(
            "conversation-directory",
            repository.store,
            self._query,
            self._on_snapshot,
        )

    @property
    def selected(self) -> Optional[Conversation]:
        return self.find(self.selected_id) if self.selected_id else None

    @property
    def new_count(self) -> int:
        """Conversations waiting for an operator"""
        return sum(1 for conversation in self.conversations if conversation.is_new)

    def find(self, conversation_id: str) -> Optional[Conversation]:
        for conversation in self.conversations:
            if conversation.conversation_id == conversation_id:
                return conversation
        return None

    def start(self) -> None:
        self._active = True
        self.subscription.reconcile()

    def stop(self) -> None:
        self._active = False
        self.subscription.close()

    def _query(self) -> Optional[Query]:
        return self.repository.all_conversations() if self._active else None

    def _on_snapshot(self, snapshot: QuerySnapshot) -> None:
        self.conversations = [self.repository.decode_conversation(doc) for doc in snapshot.documents]
        if self.selected_id is not None and self.find(self.selected_id) is None:
            self.logger.info(f"Selected conversation {self.selected_id} no longer exists")
            self.clear_selection()

    def clear_selection(self) -> None:
        if self.selected_id is None:
            return
        self.selected_id = None
        self._on_selection_change()

    async def select(self, conversation_id: str) -> bool:
        """
        Select a conversation and mark it read if it is new

        Returns:
            False if the conversation is not in the directory
        """
        conversation = self.find(conversation_id)
        if conversation is None:
            self.logger.warning(f"Cannot select unknown conversation {conversation_id}")
            return False

        if self.selected_id != conversation_id:
            self.selected_id = conversation_id
            self._on_selection_change()

        if conversation.status is not ConversationStatus.NEW:
            return True

        try:
            await self.repository.mark_read(conversation_id)
        except Exception as e:
            get_error_tracker().track_error(e, context="mark_read", conversation_id=conversation_id)
            self.notifier.error("Failed to update chat status.")
            return True

        # Local copy too, so a second selection before the next snapshot does not write again
        conversation.status = ConversationStatus.READ
        return True
