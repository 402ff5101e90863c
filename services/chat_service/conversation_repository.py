"""
Conversation repository - store paths, document codecs and durable writes
shared by the end-user widget and the operator console.
"""

from datetime import datetime
from typing import Awaitable, Callable, List, Optional, TypeVar

from config.app_config import AppConfig, get_config
from infrastructure.monitoring.logging_service import get_logger, log_conversation_event
from infrastructure.resilience.retry_service import CircuitBreaker, get_retry_service
from infrastructure.store.base import (
    SERVER_TIMESTAMP,
    Direction,
    DocumentSnapshot,
    DocumentStore,
    Query,
    document_path,
)
from services.auth_service.models import Identity
from services.chat_service.models import Conversation, ConversationStatus, Message, SenderRole

T = TypeVar("T")


class ConversationRepository:
    """
    Repository for support conversations and their messages.
    Every durable write goes through the store circuit breaker.
    """

    def __init__(self, store: DocumentStore, config: Optional[AppConfig] = None,
                 circuit_breaker: Optional[CircuitBreaker] = None):
        self.store = store
        self.config = config or get_config()
        self.logger = get_logger(__name__)
        self.circuit_breaker = circuit_breaker or get_retry_service().get_store_circuit_breaker(
            failure_threshold=self.config.resilience.failure_threshold,
            recovery_timeout=self.config.resilience.recovery_timeout
        )

    # ------------------------------------------------------------------
    # Paths and queries

    @property
    def conversations_path(self) -> str:
        return self.config.store.conversations_collection

    def conversation_path(self, conversation_id: str) -> str:
        return document_path(self.conversations_path, conversation_id)

    def messages_path(self, conversation_id: str) -> str:
        return f"{self.conversation_path(conversation_id)}/{self.config.store.messages_subcollection}"

    def message_path(self, conversation_id: str, message_id: str) -> str:
        return document_path(self.messages_path(conversation_id), message_id)

    def conversations_for_user(self, user_id: str) -> Query:
        return Query(self.conversations_path).where("user_id", "==", user_id)

    def all_conversations(self) -> Query:
        return Query(self.conversations_path).order_by("timestamp", Direction.DESCENDING)

    def message_history(self, conversation_id: str) -> Query:
        return Query(self.messages_path(conversation_id)).order_by("timestamp")

    def messages_after(self, conversation_id: str, cursor: datetime) -> Query:
        return (Query(self.messages_path(conversation_id))
                .where("timestamp", ">", cursor)
                .order_by("timestamp"))

    # ------------------------------------------------------------------
    # Codecs

    @staticmethod
    def decode_conversation(doc: DocumentSnapshot) -> Conversation:
        try:
            status = ConversationStatus(doc.get("status", ConversationStatus.NEW.value))
        except ValueError:
            status = ConversationStatus.NEW
        return Conversation(
            conversation_id=doc.document_id,
            user_id=doc.get("user_id", ""),
            user_email=doc.get("user_email", ""),
            last_message=doc.get("last_message", ""),
            timestamp=doc.get("timestamp"),
            status=status,
        )

    @staticmethod
    def decode_message(doc: DocumentSnapshot) -> Message:
        try:
            sender = SenderRole(doc.get("sender"))
        except ValueError:
            sender = SenderRole.SYSTEM
        return Message(
            message_id=doc.document_id,
            text=doc.get("text", ""),
            sender=sender,
            created_at=doc.get("timestamp"),
        )

    # ------------------------------------------------------------------
    # Durable writes

    async def _write(self, func: Callable[[], Awaitable[T]]) -> T:
        return await self.circuit_breaker.execute(func)

    async def create_conversation(self, identity: Identity, first_text: str) -> str:
        """
        Create the conversation for an end user and return its id

        With the "user_id" strategy the id is the owning user id and the write
        is a merge, so two concurrent first sends converge on one record.
        """
        data = {
            "user_id": identity.user_id,
            "user_email": identity.contact_label(self.config.chat.anonymous_label),
            "last_message": first_text,
            "timestamp": SERVER_TIMESTAMP,
            "status": ConversationStatus.NEW.value,
        }

        if self.config.chat.conversation_id_strategy == "user_id":
            conversation_id = identity.user_id
            await self._write(lambda: self.store.set(self.conversation_path(conversation_id), data, merge=True))
        else:
            conversation_id = await self._write(lambda: self.store.add(self.conversations_path, data))

        log_conversation_event(self.logger, "created", conversation_id, user_id=identity.user_id)
        return conversation_id

    async def add_message(self, conversation_id: str, text: str, sender: SenderRole) -> str:
        message_id = await self._write(lambda: self.store.add(self.messages_path(conversation_id), {
            "text": text,
            "sender": sender.value,
            "timestamp": SERVER_TIMESTAMP,
        }))
        log_conversation_event(self.logger, "message_added", conversation_id,
                               message_id=message_id, sender=sender.value)
        return message_id

    async def touch_conversation(self, conversation_id: str, last_message: str,
                                 status: Optional[ConversationStatus] = None) -> None:
        """Update the denormalized last message and activity time"""
        fields = {"last_message": last_message, "timestamp": SERVER_TIMESTAMP}
        if status is not None:
            fields["status"] = status.value
        await self._write(lambda: self.store.update(self.conversation_path(conversation_id), fields))

    async def mark_read(self, conversation_id: str) -> None:
        await self._write(lambda: self.store.update(
            self.conversation_path(conversation_id), {"status": ConversationStatus.READ.value}
        ))
        log_conversation_event(self.logger, "marked_read", conversation_id)

    async def delete_conversation_record(self, conversation_id: str) -> None:
        """Delete only the conversation document (its messages are left in place)"""
        await self._write(lambda: self.store.delete(self.conversation_path(conversation_id)))

    async def list_message_paths(self, conversation_id: str) -> List[str]:
        docs = await self.store.query(Query(self.messages_path(conversation_id)))
        return [doc.path for doc in docs]
