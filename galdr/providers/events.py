"""Canonical events every backend's output is normalized into."""

from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel

CANCELLED_MESSAGE = "Operation cancelled"


class ErrorKind(str, Enum):
    UNAVAILABLE = "unavailable"
    QUOTA_EXHAUSTED = "quota_exhausted"
    CANCELLED = "cancelled"
    TRANSPORT = "transport"
    PROCESS = "process"


class ProviderResult(BaseModel):
    """Terminal outcome of one provider invocation."""

    success: bool
    response: Optional[str] = None
    error: Optional[str] = None
    token_limit_reached: bool = False
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, response: str, token_limit_reached: bool = False) -> "ProviderResult":
        return cls(success=True, response=response, token_limit_reached=token_limit_reached)

    @classmethod
    def failure(
        cls, error: str, kind: ErrorKind = ErrorKind.PROCESS, token_limit_reached: bool = False
    ) -> "ProviderResult":
        if token_limit_reached:
            kind = ErrorKind.QUOTA_EXHAUSTED
        return cls(success=False, error=error, token_limit_reached=token_limit_reached, error_kind=kind)

    @classmethod
    def cancelled(cls) -> "ProviderResult":
        return cls(success=False, error=CANCELLED_MESSAGE, error_kind=ErrorKind.CANCELLED)

    @property
    def was_cancelled(self) -> bool:
        return self.error_kind == ErrorKind.CANCELLED


class TextEvent(BaseModel):
    text: str

    def dispatch(self, sink) -> None:
        sink.write_text(self.text)


class ToolStartEvent(BaseModel):
    name: str
    parameters: Optional[Dict[str, Any]] = None

    def dispatch(self, sink) -> None:
        sink.show_tool(self.name, self.parameters)


class ToolEndEvent(BaseModel):
    success: bool

    def dispatch(self, sink) -> None:
        sink.complete_tool(self.success)


class InfoEvent(BaseModel):
    message: str

    def dispatch(self, sink) -> None:
        sink.show_info(self.message)


class ResultEvent(BaseModel):
    """Always the last event of a stream."""

    result: ProviderResult

    def dispatch(self, sink) -> None:
        pass


StreamEvent = Union[TextEvent, ToolStartEvent, ToolEndEvent, InfoEvent, ResultEvent]
