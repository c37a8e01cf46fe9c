"""In-memory conversation of the current session, persisted through SessionManager."""

from typing import List, Optional, Protocol, Union

from galdr.providers.ids import ProviderId, SwitchMode
from galdr.session.manager import SessionManager
from galdr.session.models import (
    AddMessageResult,
    CompactionResult,
    ConversationContext,
    HistoryStats,
    Message,
    SessionMetadata,
    StreamItem,
    ToolInfo,
)
from galdr.session.summarizer import format_transcript
from galdr.session.throttle import ThrottledWriter
from galdr.utils.errors import CompactionError, GaldrError, SessionError
from galdr.utils.logging import get_logger

logger = get_logger(__name__)

AUTO_COMPACT_THRESHOLD = 50
AUTO_COMPACT_KEEP = 20


class Summarizer(Protocol):
    async def summarize(self, messages: List[Message]) -> str: ...


class ContextManager:
    """Owns the messages of the current session.

    Every mutation requests a throttled save. Once the history grows past
    ``threshold`` messages, all but the newest ``keep`` are replaced by one summary.
    """

    def __init__(
        self,
        session_manager: SessionManager,
        summarizer: Optional[Summarizer] = None,
        auto_compact: bool = True,
        threshold: int = AUTO_COMPACT_THRESHOLD,
        keep: int = AUTO_COMPACT_KEEP,
        save_interval: float = 0.5,
    ):
        self.sessions = session_manager
        self.summarizer = summarizer
        self.auto_compact_enabled = auto_compact
        self.threshold = threshold
        self.keep = keep
        self.session_name = session_manager.current_session_name
        self.context = self._load(self.session_name)
        self._writer = ThrottledWriter(self._persist, save_interval)
        self._streaming: Optional[Message] = None
        self._compacting = False

    def _load(self, name: str) -> ConversationContext:
        context = self.sessions.load_session(name)
        if context is not None:
            return context
        logger.warning(f"Session '{name}' could not be loaded, starting empty")
        defaults = self.sessions.defaults
        return ConversationContext(
            current_provider=defaults.provider,
            switch_mode=defaults.switch_mode,
            provider_models=dict(defaults.models),
        )

    def _persist(self) -> None:
        self.sessions.save_session(self.session_name, self.context)

    def save(self) -> None:
        self._writer.request()

    def flush(self) -> None:
        """Write any throttled state now"""
        self._writer.flush()

    close = flush

    @property
    def messages(self) -> List[Message]:
        return self.context.messages

    @property
    def current_provider(self) -> ProviderId:
        return self.context.current_provider

    @property
    def switch_mode(self) -> SwitchMode:
        return self.context.switch_mode

    @property
    def is_streaming(self) -> bool:
        return self._streaming is not None

    async def add_message(
        self,
        role: str,
        content: str,
        provider: Optional[ProviderId] = None,
        tools: Optional[List[ToolInfo]] = None,
        stream_items: Optional[List[StreamItem]] = None,
    ) -> AddMessageResult:
        message = Message(role=role, content=content, provider=provider, tools=tools, stream_items=stream_items)
        self.context.messages.append(message)
        self._streaming = None
        self.save()
        return AddMessageResult(message=message, compaction=await self._maybe_auto_compact())

    def begin_streaming_message(self, provider: Optional[ProviderId] = None) -> Message:
        """Append an empty assistant message that stays mutable until finished"""
        message = Message(role="assistant", content="", provider=provider)
        self.context.messages.append(message)
        self._streaming = message
        self.save()
        return message

    def _require_streaming(self) -> Message:
        message = self._streaming
        if message is None or not self.context.messages or self.context.messages[-1] is not message:
            raise SessionError("No assistant response is currently streaming")
        return message

    def update_streaming_message(
        self,
        content: str,
        tools: Optional[List[ToolInfo]] = None,
        stream_items: Optional[List[StreamItem]] = None,
    ) -> None:
        message = self._require_streaming()
        message.content = content
        if tools is not None:
            message.tools = tools
        if stream_items is not None:
            message.stream_items = stream_items
        self.save()

    async def finish_streaming_message(
        self,
        content: Optional[str] = None,
        tools: Optional[List[ToolInfo]] = None,
        stream_items: Optional[List[StreamItem]] = None,
    ) -> Optional[AddMessageResult]:
        """Freeze the streaming message. An empty message is dropped instead."""
        message = self._require_streaming()
        if content is not None:
            message.content = content
        if tools is not None:
            message.tools = tools or None
        if stream_items is not None:
            message.stream_items = stream_items or None
        self._streaming = None

        if not message.content:
            self.context.messages.pop()
            self.save()
            return None

        self.save()
        return AddMessageResult(message=message, compaction=await self._maybe_auto_compact())

    async def _maybe_auto_compact(self) -> Optional[CompactionResult]:
        if not self.auto_compact_enabled or len(self.context.messages) <= self.threshold:
            return None
        if self._streaming is not None:
            return None
        result = await self.compact(self.keep)
        if result.compacted:
            logger.info(f"Auto-compacted {result.removed} messages")
        return result

    async def compact(self, keep: int = 10) -> CompactionResult:
        """Replace all but the newest ``keep`` messages with one summary message.

        On failure the history is left unchanged and the result carries the error.

        Raises:
            ValueError: ``keep`` is negative.
        """
        if keep < 0:
            raise ValueError(f"keep must be >= 0, got {keep}")
        if len(self.context.messages) <= keep:
            return CompactionResult(compacted=False)
        try:
            removed = await self._replace_prefix_with_summary(keep)
        except GaldrError as e:
            logger.warning(f"Compaction failed: {e}")
            return CompactionResult(compacted=False, error=str(e))
        return CompactionResult(compacted=True, removed=removed)

    async def _replace_prefix_with_summary(self, keep: int) -> int:
        if self._compacting:
            raise CompactionError("Compaction already in progress")
        if self.summarizer is None:
            raise CompactionError("No summarizer configured")

        messages = self.context.messages
        cut = len(messages) - keep
        prefix = messages[:cut]
        self._compacting = True
        try:
            summary_text = await self.summarizer.summarize(prefix)
        finally:
            self._compacting = False

        current = self.context.messages
        if len(current) < cut or any(a is not b for a, b in zip(current[:cut], prefix)):
            raise CompactionError("History changed while summarizing; compaction abandoned")

        # Take the last removed message's timestamp so history stays in time order
        summary = Message(role="assistant", content=summary_text, timestamp=prefix[-1].timestamp)
        self.context.messages = [summary, *current[cut:]]
        self.save()
        return cut

    def clear(self) -> None:
        self.context.messages = []
        self.context.provider_usage = {}
        self._streaming = None
        self.save()

    def set_current_provider(self, provider: Union[str, ProviderId]) -> None:
        self.context.current_provider = ProviderId(provider)
        self.save()

    def set_switch_mode(self, mode: Union[str, SwitchMode]) -> None:
        self.context.switch_mode = SwitchMode(mode)
        self.save()

    def set_model(self, provider: Union[str, ProviderId], model: str) -> None:
        self.context.provider_models[ProviderId(provider).value] = model
        self.save()

    def get_model(self, provider: Union[str, ProviderId]) -> str:
        return self.context.provider_models.get(ProviderId(provider).value, "default")

    def increment_provider_usage(self, provider: Union[str, ProviderId]) -> None:
        key = ProviderId(provider).value
        self.context.provider_usage[key] = self.context.provider_usage.get(key, 0) + 1
        self.save()

    def set_auto_compact(self, enabled: bool) -> None:
        self.auto_compact_enabled = enabled

    def history_stats(self) -> HistoryStats:
        messages = self.context.messages
        return HistoryStats(
            message_count=len(messages),
            total_chars=sum(len(m.content) for m in messages),
            oldest_timestamp=messages[0].timestamp if messages else None,
            newest_timestamp=messages[-1].timestamp if messages else None,
        )

    def conversation_history(self) -> str:
        return format_transcript(self.context.messages)

    # Session operations

    def list_sessions(self) -> List[SessionMetadata]:
        return self.sessions.list_sessions()

    def create_session(self, name: str, description: Optional[str] = None) -> bool:
        return self.sessions.create_session(name, description)

    def switch_session(self, name: str) -> bool:
        """Persist the outgoing session, then load ``name`` as the current one"""
        if not self.sessions.session_exists(name):
            return False
        self.flush()
        if not self.sessions.switch_session(name):
            return False
        self.session_name = self.sessions.current_session_name
        self.context = self._load(self.session_name)
        self._streaming = None
        logger.info(f"Switched to session '{self.session_name}'")
        return True

    def delete_session(self, name: str) -> bool:
        return self.sessions.delete_session(name)

    def rename_session(self, old_name: str, new_name: str) -> bool:
        if old_name == self.session_name:
            self.flush()
        renamed = self.sessions.rename_session(old_name, new_name)
        if renamed:
            self.session_name = self.sessions.current_session_name
        return renamed

    def update_session_description(self, name: str, description: Optional[str]) -> bool:
        return self.sessions.update_session_description(name, description)
