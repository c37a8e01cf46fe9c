"""Pydantic models for conversation and session storage."""

import threading
import time
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from galdr.providers.ids import ProviderId, SwitchMode

_clock_lock = threading.Lock()
_last_timestamp = 0


def next_timestamp() -> int:
    """Epoch milliseconds, strictly increasing within this process.

    Message timestamps double as message identity, so two messages created in the
    same millisecond must still differ.
    """
    global _last_timestamp
    with _clock_lock:
        now = int(time.time() * 1000)
        if now <= _last_timestamp:
            now = _last_timestamp + 1
        _last_timestamp = now
        return now


class ToolInfo(BaseModel):
    """A tool invocation shown while a response streams."""

    id: str
    name: str
    parameters: Optional[Dict[str, Any]] = None
    status: Literal["running", "success", "failed"] = "running"

    def complete(self, success: bool) -> bool:
        """Move out of ``running`` once. Returns False if already completed."""
        if self.status != "running":
            return False
        self.status = "success" if success else "failed"
        return True


class StreamItem(BaseModel):
    """One entry of the interleaved text/tool/info record of a streamed response."""

    type: Literal["text", "tool", "info"]
    text: Optional[str] = None
    tool: Optional[ToolInfo] = None
    info: Optional[str] = None


class Message(BaseModel):
    """Individual conversation message."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: int = Field(default_factory=next_timestamp)
    provider: Optional[ProviderId] = None
    tools: Optional[List[ToolInfo]] = None
    stream_items: Optional[List[StreamItem]] = None


class ConversationContext(BaseModel):
    """Conversation state of one session."""

    messages: List[Message] = Field(default_factory=list)
    current_provider: ProviderId = ProviderId.CLAUDE
    switch_mode: SwitchMode = SwitchMode.MANUAL
    provider_models: Dict[str, str] = Field(default_factory=dict)
    provider_usage: Dict[str, int] = Field(default_factory=dict)


class SessionMetadata(BaseModel):
    name: str
    created: int = Field(default_factory=next_timestamp)
    last_accessed: int = Field(default_factory=next_timestamp)
    message_count: int = 0
    description: Optional[str] = None


class SessionIndex(BaseModel):
    """Contents of metadata.json: which session is current, and a summary of each."""

    current_session: str = "default"
    sessions: Dict[str, SessionMetadata] = Field(default_factory=dict)


class SessionData(ConversationContext):
    """On-disk form of a session file."""

    metadata: SessionMetadata

    def to_context(self) -> ConversationContext:
        return ConversationContext.model_validate(self.model_dump(exclude={"metadata"}))


class CompactionResult(BaseModel):
    compacted: bool = False
    removed: int = 0
    error: Optional[str] = None


class AddMessageResult(BaseModel):
    message: Message
    compaction: Optional[CompactionResult] = None

    @property
    def auto_compacted(self) -> bool:
        return bool(self.compaction and self.compaction.compacted)


class HistoryStats(BaseModel):
    message_count: int
    total_chars: int
    oldest_timestamp: Optional[int] = None
    newest_timestamp: Optional[int] = None
