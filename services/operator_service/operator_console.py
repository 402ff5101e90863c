"""
Operator console - the support side of the chat.

Only operator identities may open it. It owns the directory subscription and
the message subscription of the selected conversation.
"""

from typing import List, Optional

from config.app_config import AppConfig, get_config
from infrastructure.monitoring.logging_service import get_logger
from infrastructure.resilience.retry_service import RetryService
from infrastructure.store.base import DocumentStore, Query, QuerySnapshot
from services.auth_service.models import Identity
from services.chat_service.conversation_repository import ConversationRepository
from services.chat_service.models import Conversation, Message
from services.chat_service.subscription import ManagedSubscription
from services.operator_service.conversation_directory import ConversationDirectory
from services.operator_service.conversation_eraser import ConversationEraser
from services.operator_service.reply_service import ReplyService
from services.ui_service.notifier import Notifier


class AccessDeniedError(PermissionError):
    """Raised when a non-operator tries to open the console"""
    pass


class OperatorConsole:
    """
    Service for the operator side of support.
    Handles conversation selection, replies and deletion.
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: Optional[Identity],
        notifier: Notifier,
        config: Optional[AppConfig] = None,
        repository: Optional[ConversationRepository] = None,
        retry_service: Optional[RetryService] = None
    ):
        if identity is None or not identity.is_operator:
            raise AccessDeniedError("Access Denied. Operators only.")

        self.config = config or get_config()
        self.logger = get_logger(__name__)
        self.identity = identity
        self.notifier = notifier
        self.repository = repository or ConversationRepository(store, self.config)

        self.messages: List[Message] = []
        self.directory = ConversationDirectory(self.repository, notifier,
                                               on_selection_change=self._on_selection_change)
        self.reply_service = ReplyService(self.repository, notifier, self.config)
        self.eraser = ConversationEraser(self.repository, notifier, self.config, retry_service)
        self.message_subscription = ManagedSubscription(
            "operator-messages",
            self.repository.store,
            self._messages_query,
            self._on_messages,
        )

    # ------------------------------------------------------------------
    # Read-only view

    @property
    def conversations(self) -> List[Conversation]:
        return list(self.directory.conversations)

    @property
    def selected(self) -> Optional[Conversation]:
        return self.directory.selected

    @property
    def new_conversation_count(self) -> int:
        return self.directory.new_count

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self) -> None:
        self.logger.info(f"Operator console opened by {self.identity.user_id}")
        self.directory.start()

    def dispose(self) -> None:
        self.directory.stop()
        self.message_subscription.close()

    # ------------------------------------------------------------------
    # Actions

    async def select(self, conversation_id: str) -> bool:
        return await self.directory.select(conversation_id)

    async def reply(self, text: str) -> bool:
        return await self.reply_service.reply(self.directory.selected_id, text)

    async def delete_selected(self) -> bool:
        """Delete the selected conversation; the selection survives a failure"""
        conversation_id = self.directory.selected_id
        if not await self.eraser.erase(conversation_id):
            return False
        if self.directory.selected_id == conversation_id:
            self.directory.clear_selection()
        return True

    # ------------------------------------------------------------------
    # Selected conversation messages

    def _messages_query(self) -> Optional[Query]:
        if self.directory.selected_id is None:
            return None
        return self.repository.message_history(self.directory.selected_id)

    def _on_messages(self, snapshot: QuerySnapshot) -> None:
        self.messages = [self.repository.decode_message(doc) for doc in snapshot.documents]

    def _on_selection_change(self) -> None:
        self.messages = []
        self.message_subscription.reconcile()
