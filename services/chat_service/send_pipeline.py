"""
Optimistic send pipeline for end-user messages.
"""

import asyncio
import uuid
from typing import Callable, Optional

from config.app_config import AppConfig
from infrastructure.monitoring.logging_service import get_logger, get_error_tracker
from services.chat_service.conversation_repository import ConversationRepository
from services.chat_service.models import (
    ConversationStatus,
    LocalSendState,
    PendingMessage,
    SenderRole,
    WidgetState,
)
from services.ui_service.notifier import Notifier


class SendPipeline:
    """
    Shows a sent message immediately, then writes it durably.

    Sends are not queued: each call inserts its own pending entries and runs
    its own write sequence. A failed write removes exactly the entries that
    call inserted.
    """

    def __init__(
        self,
        repository: ConversationRepository,
        state: WidgetState,
        notifier: Notifier,
        config: AppConfig,
        adopt_conversation: Callable[[Optional[str]], None],
        clock: Callable
    ):
        self.repository = repository
        self.state = state
        self.notifier = notifier
        self.config = config
        self.logger = get_logger(__name__)
        self._adopt_conversation = adopt_conversation
        self._clock = clock

    def _pending(self, text: str, sender: SenderRole) -> PendingMessage:
        return PendingMessage(local_id=uuid.uuid4().hex, text=text, sender=sender, created_at=self._clock())

    async def send(self, raw_text: str) -> bool:
        """
        Send an end-user message

        Args:
            raw_text: Text as typed; surrounding whitespace is dropped

        Returns:
            True when the durable write completed, False when the send was
            ignored or rolled back
        """
        text = (raw_text or "").strip()
        identity = self.state.identity
        if not text or identity is None:
            return False

        conversation_id = self.state.resolved_id
        first_contact = conversation_id is None

        local = LocalSendState(user_entry=self._pending(text, SenderRole.END_USER))
        if first_contact:
            local.system_entry = self._pending(self.config.chat.auto_reply_message, SenderRole.SYSTEM)
        self.state.messages = self.state.messages + local.entries

        created_here = False
        user_message_written = False
        try:
            if first_contact:
                conversation_id = await self.repository.create_conversation(identity, text)
                created_here = True
                if self.state.identity == identity:
                    self._adopt_conversation(conversation_id)

            await self.repository.add_message(conversation_id, text, SenderRole.END_USER)
            user_message_written = True

            writes = [self.repository.touch_conversation(conversation_id, text, ConversationStatus.NEW)]
            if first_contact:
                writes.append(self.repository.add_message(
                    conversation_id, self.config.chat.auto_reply_message, SenderRole.SYSTEM
                ))
            results = await asyncio.gather(*writes, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    raise result

        except Exception as e:
            get_error_tracker().track_error(e, context="send_message", conversation_id=conversation_id)
            self.notifier.error("Failed to send message.")
            self.state.remove_pending(local.local_ids)
            if created_here and not user_message_written:
                await self._handle_orphan(conversation_id, identity)
            return False

        return True

    async def _handle_orphan(self, conversation_id: str, identity) -> None:
        """Apply the configured policy to an empty conversation left by a failed first send"""
        if self.config.chat.orphan_policy != "cleanup":
            self.logger.warning(f"Keeping conversation {conversation_id} after partial first send")
            return

        try:
            await self.repository.delete_conversation_record(conversation_id)
        except Exception as e:
            get_error_tracker().track_error(e, context="orphan_cleanup", conversation_id=conversation_id)
            return

        self.logger.info(f"Removed orphaned conversation {conversation_id}")
        if self.state.identity == identity and self.state.resolved_id == conversation_id:
            self._adopt_conversation(None)
