import shutil
from contextlib import aclosing
from typing import AsyncIterator, List, Optional

from galdr.config.models import ProviderConfig
from galdr.providers.base import BaseProvider, InvocationSpec
from galdr.providers.events import ErrorKind, ProviderResult, ResultEvent, StreamEvent
from galdr.providers.normalizer import PlainTextParser, StreamParser
from galdr.providers.process import ProcessChunk, ProcessExit, ProcessRunner
from galdr.providers.sink import ToolDisplayPolicy
from galdr.session.models import Message
from galdr.utils.cancellation import CancellationToken
from galdr.utils.logging import get_logger

logger = get_logger(__name__)


def format_history_prompt(history: List[Message], prompt: str) -> str:
    """Fold prior messages into a single transcript ahead of the new request"""
    if not history:
        return prompt

    parts = ["Previous conversation:\n\n"]
    for message in history:
        role = "User" if message.role == "user" else "Assistant"
        parts.append(f"{role}: {message.content}\n\n")
    parts.append(f"Current request:\n{prompt}")
    return "".join(parts)


class CliProvider(BaseProvider):
    """Provider backed by a local command-line tool; the prompt goes over stdin"""

    default_executable: str
    base_args: List[str] = []

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        verbose: bool = False,
        display_policy: Optional[ToolDisplayPolicy] = None,
        runner: Optional[ProcessRunner] = None,
    ):
        super().__init__(config, verbose, display_policy)
        self.executable = self.config.executable or self.default_executable
        self.runner = runner or ProcessRunner(timeout=self.config.timeout, verbose=verbose)

    def get_command(self, model: Optional[str] = None) -> InvocationSpec:
        args = list(self.base_args)
        resolved = self.resolve_model(model)
        if resolved:
            args += ["--model", resolved]
        return InvocationSpec(executable=self.executable, args=args)

    def create_parser(self) -> StreamParser:
        return PlainTextParser()

    def format_prompt(self, prompt: str, history: List[Message]) -> str:
        return format_history_prompt(history, prompt)

    async def check_availability(self) -> bool:
        return shutil.which(self.executable) is not None

    async def _stream(
        self,
        prompt: str,
        history: List[Message],
        cancel: Optional[CancellationToken],
        model: Optional[str],
    ) -> AsyncIterator[StreamEvent]:
        spec = self.get_command(model)
        parser = self.create_parser()
        self._log_verbose(f"command: {' '.join(spec.argv)} ({len(history)} history messages)")

        exit_info: Optional[ProcessExit] = None
        async with aclosing(self.runner.stream(spec, self.format_prompt(prompt, history), cancel)) as items:
            async for item in items:
                if isinstance(item, ProcessChunk):
                    for event in parser.feed(item.text):
                        yield event
                else:
                    exit_info = item

        if exit_info is None or exit_info.cancelled or exit_info.timed_out:
            yield ResultEvent(result=ProviderResult.cancelled())
            return

        if exit_info.spawn_error is not None:
            kind = ErrorKind.UNAVAILABLE if isinstance(exit_info.spawn_error, FileNotFoundError) else ErrorKind.PROCESS
            error = f"Failed to execute {spec.executable}: {exit_info.spawn_error}"
            yield ResultEvent(result=ProviderResult.failure(error, kind))
            return

        for event in parser.finish():
            yield event

        limit_reached = self.detect_quota_exhausted(exit_info.stdout + exit_info.stderr)
        if exit_info.returncode != 0:
            error = exit_info.stderr.strip() or f"Command exited with code {exit_info.returncode}"
            logger.warning(f"{self.name} failed: {error[:200]}")
            yield ResultEvent(result=ProviderResult.failure(error, ErrorKind.PROCESS, limit_reached))
            return

        yield ResultEvent(result=ProviderResult.ok(parser.text, token_limit_reached=limit_reached))
