"""
Chat service data models for conversations and messages.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from services.auth_service.models import Identity


class SenderRole(str, Enum):
    """Who authored a message; values are the stored wire values"""
    END_USER = "user"
    OPERATOR = "admin"
    SYSTEM = "system"


class ConversationStatus(str, Enum):
    """Operator-facing attention flag"""
    NEW = "new"
    READ = "read"


@dataclass
class Conversation:
    """One end user's support thread"""
    conversation_id: str
    user_id: str
    user_email: str
    last_message: str
    timestamp: Optional[datetime]
    status: ConversationStatus = ConversationStatus.NEW

    @property
    def is_new(self) -> bool:
        return self.status is ConversationStatus.NEW


@dataclass(frozen=True)
class Message:
    """Confirmed message read back from the store"""
    message_id: str
    text: str
    sender: SenderRole
    created_at: Optional[datetime]

    @property
    def key(self) -> str:
        return f"confirmed:{self.message_id}"


@dataclass(frozen=True)
class PendingMessage:
    """Optimistic local message not yet confirmed by the store"""
    local_id: str
    text: str
    sender: SenderRole
    created_at: datetime

    @property
    def key(self) -> str:
        return f"pending:{self.local_id}"


@dataclass(frozen=True)
class SyntheticMessage:
    """System text shown locally and never persisted (greeting, welcome back)"""
    name: str
    text: str
    created_at: datetime
    sender: SenderRole = SenderRole.SYSTEM

    @property
    def key(self) -> str:
        return f"synthetic:{self.name}"


ChatEntry = Union[Message, PendingMessage, SyntheticMessage]


@dataclass
class LocalSendState:
    """Optimistic entries inserted by one send, used for exact rollback"""
    user_entry: PendingMessage
    system_entry: Optional[PendingMessage] = None

    @property
    def entries(self) -> List[PendingMessage]:
        if self.system_entry is None:
            return [self.user_entry]
        return [self.user_entry, self.system_entry]

    @property
    def local_ids(self) -> List[str]:
        return [entry.local_id for entry in self.entries]


@dataclass
class WidgetState:
    """
    State shared by the end-user widget components.

    Owned by a single SupportWidget; never shared across widget instances.
    """
    identity: Optional[Identity] = None
    resolved_id: Optional[str] = None
    visible: bool = False
    messages: List[ChatEntry] = field(default_factory=list)

    def remove_pending(self, local_ids: List[str]) -> None:
        """Drop exactly the given optimistic entries, leaving everything else untouched"""
        wanted = set(local_ids)
        self.messages = [
            entry for entry in self.messages
            if not (isinstance(entry, PendingMessage) and entry.local_id in wanted)
        ]

