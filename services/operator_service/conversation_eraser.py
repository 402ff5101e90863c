"""
Conversation eraser - deletes a conversation together with its messages.
"""

from typing import List, Optional

from config.app_config import AppConfig
from infrastructure.monitoring.logging_service import (
    get_logger,
    get_error_tracker,
    log_conversation_event,
    log_execution_time,
)
from infrastructure.resilience.retry_service import RetryService, get_retry_service
from services.chat_service.conversation_repository import ConversationRepository
from services.ui_service.notifier import Notifier


class ConversationEraser:
    """
    Deletes every message of a conversation and then the conversation record.

    When the store has atomic batches and everything fits in one batch, the
    whole deletion is a single commit, so subscribers never see a partial
    state. Otherwise the deletion runs in steps; it is NOT atomic, but each
    step is idempotent, so the whole sequence is retried on transient errors.
    """

    def __init__(self, repository: ConversationRepository, notifier: Notifier, config: AppConfig,
                 retry_service: Optional[RetryService] = None):
        self.repository = repository
        self.notifier = notifier
        self.config = config
        self.retry_service = retry_service or get_retry_service()
        self.logger = get_logger(__name__)

    async def erase(self, conversation_id: Optional[str]) -> bool:
        """
        Delete a conversation and all of its messages

        Returns:
            True on success; False (after an error notice) otherwise
        """
        if not conversation_id:
            return False

        store = self.repository.store
        try:
            with log_execution_time(self.logger, "erase conversation", conversation_id=conversation_id):
                message_paths = await self.repository.list_message_paths(conversation_id)
                if store.supports_atomic_batch and len(message_paths) + 1 <= store.max_batch_size:
                    await self._erase_atomically(conversation_id, message_paths)
                else:
                    await self._erase_in_steps(conversation_id)
        except Exception as e:
            get_error_tracker().track_error(e, context="erase_conversation", conversation_id=conversation_id)
            self.notifier.error("Failed to delete chat.")
            return False

        log_conversation_event(self.logger, "deleted", conversation_id, message_count=len(message_paths))
        self.notifier.success("Chat deleted successfully.")
        return True

    async def _erase_atomically(self, conversation_id: str, message_paths: List[str]) -> None:
        batch = self.repository.store.batch()
        for path in message_paths:
            batch.delete(path)
        batch.delete(self.repository.conversation_path(conversation_id))
        await self.repository.circuit_breaker.execute(batch.commit)

    async def _erase_in_steps(self, conversation_id: str) -> None:
        store = self.repository.store
        self.logger.warning(
            f"Deleting conversation {conversation_id} in steps; a failure can leave it partially deleted"
        )

        async def attempt() -> None:
            # Re-enumerate on every attempt; already-deleted messages simply drop out
            remaining = await self.repository.list_message_paths(conversation_id)
            chunk_size = max(1, store.max_batch_size - 1)
            for start in range(0, len(remaining), chunk_size):
                chunk = remaining[start:start + chunk_size]
                if store.supports_atomic_batch:
                    batch = store.batch()
                    for path in chunk:
                        batch.delete(path)
                    await self.repository.circuit_breaker.execute(batch.commit)
                else:
                    for path in chunk:
                        await self.repository.circuit_breaker.execute(lambda path=path: store.delete(path))
            await self.repository.delete_conversation_record(conversation_id)

        resilience = self.config.resilience
        await self.retry_service.retry_with_backoff(
            attempt,
            max_retries=resilience.delete_max_retries,
            base_delay=resilience.retry_base_delay,
            max_delay=resilience.retry_max_delay
        )
