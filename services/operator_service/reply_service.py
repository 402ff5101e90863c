"""
Operator reply path.
"""

from typing import Optional

from config.app_config import AppConfig
from infrastructure.monitoring.logging_service import get_logger, get_error_tracker
from services.chat_service.conversation_repository import ConversationRepository
from services.chat_service.models import SenderRole
from services.ui_service.notifier import Notifier


class ReplyService:
    """
    Writes operator replies. There is no optimistic insert: the console's
    message subscription shows the reply once the store confirms it.
    """

    def __init__(self, repository: ConversationRepository, notifier: Notifier, config: AppConfig):
        self.repository = repository
        self.notifier = notifier
        self.config = config
        self.logger = get_logger(__name__)

    async def reply(self, conversation_id: Optional[str], raw_text: str) -> bool:
        """
        Send a reply to a conversation

        The conversation's last message is prefixed so the directory shows who
        wrote it; its status is left alone so the reply does not flag it new.
        """
        text = (raw_text or "").strip()
        if not text or not conversation_id:
            return False

        try:
            await self.repository.add_message(conversation_id, text, SenderRole.OPERATOR)
            await self.repository.touch_conversation(
                conversation_id, f"{self.config.chat.operator_prefix}{text}"
            )
        except Exception as e:
            get_error_tracker().track_error(e, context="operator_reply", conversation_id=conversation_id)
            self.notifier.error("Failed to send reply.")
            return False

        return True
