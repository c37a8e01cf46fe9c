"""Parsers turning raw backend output into canonical events."""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from galdr.providers.events import InfoEvent, StreamEvent, TextEvent, ToolEndEvent, ToolStartEvent
from galdr.utils.logging import get_logger

logger = get_logger(__name__)


class StreamParser(ABC):
    """Consumes output chunks in arrival order. ``text`` is everything emitted as text."""

    def __init__(self):
        self._text_parts: List[str] = []

    @property
    def text(self) -> str:
        return "".join(self._text_parts)

    def _emit_text(self, text: str) -> TextEvent:
        self._text_parts.append(text)
        return TextEvent(text=text)

    @abstractmethod
    def feed(self, chunk: str) -> List[StreamEvent]:
        pass

    def finish(self) -> List[StreamEvent]:
        """Flush anything still buffered once the output ends"""
        return []


class PlainTextParser(StreamParser):
    def feed(self, chunk: str) -> List[StreamEvent]:
        return [self._emit_text(chunk)] if chunk else []


class JsonLinesParser(StreamParser):
    """Base for line-delimited JSON output. Incomplete lines wait for the next chunk."""

    def __init__(self):
        super().__init__()
        self._buffer = ""

    def feed(self, chunk: str) -> List[StreamEvent]:
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        events: List[StreamEvent] = []
        for line in lines:
            events.extend(self._handle_line(line, complete=True))
        return events

    def finish(self) -> List[StreamEvent]:
        line, self._buffer = self._buffer, ""
        return self._handle_line(line, complete=False) if line else []

    @staticmethod
    def _parse_object(line: str) -> Optional[Dict[str, Any]]:
        stripped = line.strip()
        if not stripped.startswith("{"):
            return None
        try:
            value = json.loads(stripped)
        except json.JSONDecodeError:
            return None
        return value if isinstance(value, dict) else None

    @abstractmethod
    def _handle_line(self, line: str, complete: bool) -> List[StreamEvent]:
        pass


class CopilotStreamParser(JsonLinesParser):
    """Copilot CLI mixes plain text with JSON tool events, one per line.

    Plain text is forwarded as soon as it arrives; only a line that could still turn
    out to be a JSON event is held back until its newline.
    """

    def __init__(self):
        super().__init__()
        self._line_is_text = False

    def feed(self, chunk: str) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        while chunk:
            newline = chunk.find("\n")
            if newline == -1:
                piece, chunk = chunk, ""
            else:
                piece, chunk = chunk[: newline + 1], chunk[newline + 1 :]

            if self._line_is_text:
                events.append(self._emit_text(piece))
            else:
                self._buffer += piece
                if piece.endswith("\n"):
                    events.extend(self._handle_line(self._buffer[:-1], complete=True))
                    self._buffer = ""
                elif not self._buffer.lstrip().startswith("{") and self._buffer.strip():
                    events.append(self._emit_text(self._buffer))
                    self._buffer = ""
                    self._line_is_text = True

            if piece.endswith("\n"):
                self._line_is_text = False
        return events

    def _handle_line(self, line: str, complete: bool) -> List[StreamEvent]:
        event = self._parse_object(line)
        if event is None:
            text = line + "\n" if complete else line
            return [self._emit_text(text)] if text else []

        kind = event.get("type")
        if kind == "tool_use":
            return [ToolStartEvent(name=event.get("tool_name") or "unknown", parameters=event.get("parameters"))]
        if kind == "tool_result":
            return [ToolEndEvent(success=event.get("status") == "success")]
        return []


class CursorStreamParser(JsonLinesParser):
    """cursor-agent ``--output-format stream-json`` events."""

    def __init__(self):
        super().__init__()
        self._open_calls: Dict[str, str] = {}

    def _handle_line(self, line: str, complete: bool) -> List[StreamEvent]:
        if not line.strip():
            return []
        event = self._parse_object(line)
        if event is None:
            logger.debug(f"Ignoring non-JSON cursor output: {line[:80]}")
            return []

        kind = event.get("type")
        if kind == "assistant":
            content = (event.get("message") or {}).get("content") or []
            parts = [part.get("text") for part in content if isinstance(part, dict) and part.get("type") == "text"]
            text = "".join(p for p in parts if p)
            return [self._emit_text(text)] if text else []

        if kind == "tool_call":
            return self._handle_tool_call(event)

        if kind == "result" and event.get("is_error"):
            message = event.get("result") or event.get("error") or "cursor-agent reported an error"
            return [InfoEvent(message=str(message))]

        return []

    def _handle_tool_call(self, event: Dict[str, Any]) -> List[StreamEvent]:
        call_id = event.get("call_id") or ""
        subtype = event.get("subtype")
        name, payload = self._describe_call(event.get("tool_call") or {})

        if subtype == "started":
            self._open_calls[call_id] = name
            args = payload.get("args")
            return [ToolStartEvent(name=name, parameters=args if isinstance(args, dict) else None)]

        if subtype == "completed" and call_id in self._open_calls:
            del self._open_calls[call_id]
            result = payload.get("result")
            return [ToolEndEvent(success=isinstance(result, dict) and "success" in result)]

        return []

    @staticmethod
    def _describe_call(tool_call: Dict[str, Any]):
        for key, payload in tool_call.items():
            if not isinstance(payload, dict):
                continue
            if key == "function":
                return payload.get("name") or "function", payload
            if key.endswith("ToolCall"):
                base = key[: -len("ToolCall")]
                return (base[:1].upper() + base[1:]) or "Tool", payload
        return "unknown", {}


class ToolCallAccumulator:
    """Reassembles streamed tool-call deltas, keyed by their index."""

    def __init__(self):
        self._calls: Dict[int, Dict[str, Any]] = {}

    def __bool__(self) -> bool:
        return bool(self._calls)

    def add(
        self,
        index: int,
        call_id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: Optional[str] = None,
    ) -> None:
        call = self._calls.setdefault(index, {"id": None, "name": None, "arguments": ""})
        if call_id:
            call["id"] = call_id
        if name:
            call["name"] = name
        if arguments:
            call["arguments"] += arguments

    def completed(self) -> List[Dict[str, Any]]:
        """Calls that have both an id and a name, in index order"""
        return [
            dict(self._calls[index])
            for index in sorted(self._calls)
            if self._calls[index]["id"] and self._calls[index]["name"]
        ]
