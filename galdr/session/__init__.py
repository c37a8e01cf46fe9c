"""Session and context storage for galdr."""

from galdr.session.context import ContextManager
from galdr.session.manager import SessionDefaults, SessionManager
from galdr.session.models import (
    CompactionResult,
    ConversationContext,
    Message,
    SessionMetadata,
    StreamItem,
    ToolInfo,
)

__all__ = [
    "CompactionResult",
    "ContextManager",
    "ConversationContext",
    "Message",
    "SessionDefaults",
    "SessionManager",
    "SessionMetadata",
    "StreamItem",
    "ToolInfo",
]
