import re
from abc import ABC, abstractmethod
from contextlib import aclosing
from typing import AsyncIterator, Callable, List, Optional, Pattern

from pydantic import BaseModel, Field

from galdr.config.models import ProviderConfig
from galdr.providers.events import (
    ErrorKind,
    ProviderResult,
    ResultEvent,
    StreamEvent,
    TextEvent,
)
from galdr.providers.ids import ProviderId
from galdr.providers.sink import StreamSink, ToolDisplayPolicy
from galdr.session.models import Message
from galdr.utils.cancellation import CancellationToken, OperationCancelled
from galdr.utils.logging import get_logger

logger = get_logger(__name__)


class InvocationSpec(BaseModel):
    """How to launch a CLI-backed provider"""

    executable: str
    args: List[str] = Field(default_factory=list)

    @property
    def argv(self) -> List[str]:
        return [self.executable, *self.args]


class BaseProvider(ABC):
    """Abstract base for all AI providers"""

    provider_id: ProviderId
    quota_patterns: List[Pattern[str]] = []
    uses_tools = False

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        verbose: bool = False,
        display_policy: Optional[ToolDisplayPolicy] = None,
    ):
        self.config = config or ProviderConfig()
        self.verbose = verbose
        self.display_policy = display_policy or ToolDisplayPolicy()
        self.name = self.provider_id.value

    @abstractmethod
    def _stream(
        self,
        prompt: str,
        history: List[Message],
        cancel: Optional[CancellationToken],
        model: Optional[str],
    ) -> AsyncIterator[StreamEvent]:
        """Backend-specific event production. May raise OperationCancelled."""
        pass

    @abstractmethod
    async def check_availability(self) -> bool:
        """Check if the backend can be invoked right now"""
        pass

    def get_command(self, model: Optional[str] = None) -> Optional[InvocationSpec]:
        """Process invocation for CLI-backed providers; None for API-backed ones"""
        return None

    def detect_quota_exhausted(self, raw_output: str) -> bool:
        return any(pattern.search(raw_output) for pattern in self.quota_patterns)

    def resolve_model(self, model: Optional[str] = None) -> Optional[str]:
        """Explicit model, then the configured default; ``default`` means the backend's own."""
        chosen = model or self.config.default_model
        if not chosen or chosen == "default":
            return None
        return chosen

    def _log_verbose(self, message: str) -> None:
        if self.verbose:
            logger.info(f"[{self.name}] {message}")

    async def stream(
        self,
        prompt: str,
        history: Optional[List[Message]] = None,
        cancel: Optional[CancellationToken] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Lazily produce canonical events, ending with exactly one ResultEvent."""
        tool_filter = self.display_policy.new_filter()
        try:
            async with aclosing(self._stream(prompt, list(history or []), cancel, model)) as events:
                async for event in events:
                    if isinstance(event, ResultEvent):
                        yield event
                        return
                    if tool_filter.accept(event):
                        yield event
        except OperationCancelled:
            self._log_verbose("cancelled")
            yield ResultEvent(result=ProviderResult.cancelled())
            return
        except Exception as e:  # every invocation must still end in a result
            logger.exception(f"Provider {self.name} failed unexpectedly")
            yield ResultEvent(result=ProviderResult.failure(f"{self.name} failed: {e}", ErrorKind.PROCESS))
            return

        yield ResultEvent(result=ProviderResult.failure(f"{self.name} ended without a result", ErrorKind.PROCESS))

    async def execute(
        self,
        prompt: str,
        history: Optional[List[Message]] = None,
        sink: Optional[StreamSink] = None,
        on_first_chunk: Optional[Callable[[], None]] = None,
        cancel: Optional[CancellationToken] = None,
        model: Optional[str] = None,
    ) -> ProviderResult:
        """Drain ``stream`` into ``sink`` and return the terminal result"""
        first_chunk_seen = False
        async for event in self.stream(prompt, history, cancel=cancel, model=model):
            if isinstance(event, ResultEvent):
                return event.result
            if not first_chunk_seen and not (isinstance(event, TextEvent) and not event.text.strip()):
                first_chunk_seen = True
                if on_first_chunk:
                    on_first_chunk()
            if sink is not None:
                event.dispatch(sink)
        return ProviderResult.failure(f"{self.name} ended without a result")


def compile_patterns(*patterns: str) -> List[Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]
