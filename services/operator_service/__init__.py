"""
Operator service - conversation directory, replies and deletion for support operators.
"""

from .conversation_directory import ConversationDirectory
from .reply_service import ReplyService
from .conversation_eraser import ConversationEraser
from .operator_console import OperatorConsole, AccessDeniedError

__all__ = [
    'ConversationDirectory',
    'ReplyService',
    'ConversationEraser',
    'OperatorConsole',
    'AccessDeniedError'
]
