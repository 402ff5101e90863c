"""
Chat service - end-user side of the support chat.
"""

from .models import (
    SenderRole,
    ConversationStatus,
    Conversation,
    Message,
    PendingMessage,
    SyntheticMessage,
    ChatEntry,
    LocalSendState,
    WidgetState
)
from .subscription import ManagedSubscription, SubscriptionState
from .conversation_repository import ConversationRepository
from .support_widget import SupportWidget

__all__ = [
    'SenderRole',
    'ConversationStatus',
    'Conversation',
    'Message',
    'PendingMessage',
    'SyntheticMessage',
    'ChatEntry',
    'LocalSendState',
    'WidgetState',
    'ManagedSubscription',
    'SubscriptionState',
    'ConversationRepository',
    'SupportWidget'
]
