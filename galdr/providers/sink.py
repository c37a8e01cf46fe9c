"""Receivers of canonical stream events."""

import asyncio
from collections import deque
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from galdr.chat.splitting import get_accumulated_text
from galdr.providers.events import InfoEvent, StreamEvent, TextEvent, ToolEndEvent, ToolStartEvent
from galdr.session.models import StreamItem, ToolInfo


class StreamSink:
    """Callback-backed sink. Once deactivated every call is a no-op."""

    def __init__(
        self,
        on_text: Optional[Callable[[str], None]] = None,
        on_tool: Optional[Callable[[str, Optional[Dict[str, Any]]], None]] = None,
        on_tool_complete: Optional[Callable[[bool], None]] = None,
        on_info: Optional[Callable[[str], None]] = None,
    ):
        self._on_text = on_text
        self._on_tool = on_tool
        self._on_tool_complete = on_tool_complete
        self._on_info = on_info
        self.active = True

    def activate(self) -> None:
        self.active = True

    def deactivate(self) -> None:
        self.active = False

    def write_text(self, text: str) -> None:
        if self.active and self._on_text:
            self._on_text(text)

    def show_tool(self, name: str, parameters: Optional[Dict[str, Any]] = None) -> None:
        if self.active and self._on_tool:
            self._on_tool(name, parameters)

    def complete_tool(self, success: bool) -> None:
        if self.active and self._on_tool_complete:
            self._on_tool_complete(success)

    def show_info(self, message: str) -> None:
        if self.active and self._on_info:
            self._on_info(message)


class RecordingSink(StreamSink):
    """Builds the ``stream_items``/``tools`` record stored with an assistant message."""

    def __init__(self):
        super().__init__()
        self.items: List[StreamItem] = []
        self.tools: List[ToolInfo] = []
        self._running: Deque[ToolInfo] = deque()

    @property
    def text(self) -> str:
        return get_accumulated_text(self.items)

    def write_text(self, text: str) -> None:
        if not self.active or not text:
            return
        if self.items and self.items[-1].type == "text":
            self.items[-1].text = (self.items[-1].text or "") + text
        else:
            self.items.append(StreamItem(type="text", text=text))

    def show_tool(self, name: str, parameters: Optional[Dict[str, Any]] = None) -> None:
        if not self.active:
            return
        tool = ToolInfo(id=f"tool-{len(self.tools) + 1}", name=name, parameters=parameters)
        self.tools.append(tool)
        self._running.append(tool)
        self.items.append(StreamItem(type="tool", tool=tool))

    def complete_tool(self, success: bool) -> None:
        if not self.active or not self._running:
            return
        self._running.popleft().complete(success)

    def show_info(self, message: str) -> None:
        if self.active:
            self.items.append(StreamItem(type="info", info=message))

    def committed_items(self, text_length: int) -> List[StreamItem]:
        """Copy of ``items`` cut where the recorded text reaches ``text_length`` characters.

        Tool and info items after the cut point are dropped along with the text.
        """
        committed: List[StreamItem] = []
        consumed = 0
        for item in self.items:
            if item.type != "text":
                committed.append(item.model_copy())
                continue
            text = item.text or ""
            remaining = text_length - consumed
            if len(text) > remaining:
                if remaining > 0:
                    committed.append(item.model_copy(update={"text": text[:remaining]}))
                break
            committed.append(item.model_copy())
            consumed += len(text)
        return committed

    def fail_running_tools(self) -> None:
        """Mark tools that never reported completion (e.g. after a cancel) as failed."""
        while self._running:
            self._running.popleft().complete(False)


class QueueSink(StreamSink):
    """Turns sink calls into events on a queue, for relaying into an event stream."""

    def __init__(self):
        super().__init__()
        self.queue: "asyncio.Queue[StreamEvent]" = asyncio.Queue()

    def write_text(self, text: str) -> None:
        if self.active:
            self.queue.put_nowait(TextEvent(text=text))

    def show_tool(self, name: str, parameters: Optional[Dict[str, Any]] = None) -> None:
        if self.active:
            self.queue.put_nowait(ToolStartEvent(name=name, parameters=parameters))

    def complete_tool(self, success: bool) -> None:
        if self.active:
            self.queue.put_nowait(ToolEndEvent(success=success))

    def show_info(self, message: str) -> None:
        if self.active:
            self.queue.put_nowait(InfoEvent(message=message))


class ToolDisplayPolicy:
    """Decides which tool names are shown. Hiding never affects execution."""

    def __init__(self, hidden: Optional[Iterable[str]] = None):
        self.hidden = {name.lower() for name in (hidden or ())}

    def __call__(self, name: str) -> bool:
        return name.lower() not in self.hidden

    def new_filter(self) -> "ToolEventFilter":
        return ToolEventFilter(self)


class ToolEventFilter:
    """Per-stream state that drops hidden tool starts and their matching ends."""

    def __init__(self, policy: Callable[[str], bool]):
        self._policy = policy
        self._shown: Deque[bool] = deque()

    def accept(self, event: StreamEvent) -> bool:
        if isinstance(event, ToolStartEvent):
            shown = self._policy(event.name)
            self._shown.append(shown)
            return shown
        if isinstance(event, ToolEndEvent):
            return self._shown.popleft() if self._shown else True
        return True
