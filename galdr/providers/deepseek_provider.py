import asyncio
import json
import os
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, cast

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from galdr.config.models import ProviderConfig
from galdr.providers.base import BaseProvider, compile_patterns
from galdr.providers.events import ErrorKind, ProviderResult, ResultEvent, StreamEvent, TextEvent
from galdr.providers.ids import ProviderId
from galdr.providers.normalizer import ToolCallAccumulator
from galdr.providers.sink import QueueSink, ToolDisplayPolicy
from galdr.session.models import Message
from galdr.tools.registry import ToolRegistry
from galdr.utils.cancellation import CancellationToken, OperationCancelled, run_cancellable
from galdr.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.deepseek.com"
DEFAULT_MODEL = "deepseek-chat"

SYSTEM_PROMPT = """You are a helpful AI coding assistant with access to development tools.

Best Practices:
- Read files before editing them to understand the current content
- Prefer targeted edits over rewriting entire files
- Prefer cross-platform commands (git, npm, python) over OS-specific ones
- Provide clear, concise responses
- Use the tools proactively to help solve the user's problems

The working directory is: {cwd}"""

TRANSPORT_ERRORS = (APIConnectionError, httpx.TransportError)


class LoopState(Enum):
    AWAITING_MODEL = "awaiting-model"
    EXECUTING_TOOLS = "executing-tools"
    DONE = "done"


class _ModelTurn:
    """What one streamed completion produced"""

    def __init__(self):
        self.text_parts: List[str] = []
        self.tool_calls = ToolCallAccumulator()

    @property
    def text(self) -> str:
        return "".join(self.text_parts)


async def _next_chunk(iterator):
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return None


class DeepSeekProvider(BaseProvider):
    """DeepSeek chat completions over its OpenAI-compatible API, with tool calling"""

    provider_id = ProviderId.DEEPSEEK
    quota_patterns = compile_patterns(r"^402\b", r"insufficient balance")
    uses_tools = True

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        verbose: bool = False,
        display_policy: Optional[ToolDisplayPolicy] = None,
        tools: Optional[ToolRegistry] = None,
    ):
        super().__init__(config, verbose, display_policy)
        self.tools = tools if tools is not None else ToolRegistry()
        api_key = self.config.resolve_api_key("DEEPSEEK_API_KEY")
        base_url = self.config.base_url or DEFAULT_BASE_URL

        client_kwargs: Dict[str, Any] = {"api_key": api_key, "base_url": base_url}
        if self.config.timeout:
            client_kwargs["timeout"] = self.config.timeout
        self.client = AsyncOpenAI(**client_kwargs) if api_key else None

    async def check_availability(self) -> bool:
        """Available when an API key is configured"""
        return self.client is not None

    def build_messages(self, prompt: str, history: List[Message]) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        if not history:
            messages.append({"role": "system", "content": SYSTEM_PROMPT.format(cwd=os.getcwd())})
        messages.extend({"role": m.role, "content": m.content} for m in history)
        messages.append({"role": "user", "content": prompt})
        return messages

    async def _stream(
        self,
        prompt: str,
        history: List[Message],
        cancel: Optional[CancellationToken],
        model: Optional[str],
    ) -> AsyncIterator[StreamEvent]:
        if self.client is None:
            error = "DeepSeek API key is not set. Set DEEPSEEK_API_KEY or providers.deepseek.api_key in config.yaml"
            yield ResultEvent(result=ProviderResult.failure(error, ErrorKind.UNAVAILABLE))
            return

        messages = self.build_messages(prompt, history)
        model_name = self.resolve_model(model) or DEFAULT_MODEL
        text_parts: List[str] = []
        pending_calls: List[Dict[str, Any]] = []
        state = LoopState.AWAITING_MODEL

        while state is not LoopState.DONE:
            if cancel is not None:
                cancel.raise_if_cancelled()

            if state is LoopState.AWAITING_MODEL:
                turn = _ModelTurn()
                try:
                    async for event in self._stream_completion(messages, model_name, turn, cancel):
                        yield event
                except TRANSPORT_ERRORS as e:
                    partial = "".join(text_parts) + turn.text
                    yield ResultEvent(result=self._transport_result(e, partial, len(messages)))
                    return
                except APIStatusError as e:
                    raw = f"{e.status_code} {e.message}"
                    limit_reached = self.detect_quota_exhausted(raw)
                    self._log_verbose(f"API error response: {raw}")
                    yield ResultEvent(
                        result=ProviderResult.failure(f"DeepSeek API error: {raw}", ErrorKind.TRANSPORT, limit_reached)
                    )
                    return

                text_parts.append(turn.text)
                pending_calls = turn.tool_calls.completed()
                if pending_calls:
                    messages.append(
                        {
                            "role": "assistant",
                            "content": turn.text,
                            "tool_calls": [
                                {
                                    "id": call["id"],
                                    "type": "function",
                                    "function": {"name": call["name"], "arguments": call["arguments"]},
                                }
                                for call in pending_calls
                            ],
                        }
                    )
                    state = LoopState.EXECUTING_TOOLS
                else:
                    state = LoopState.DONE

            elif state is LoopState.EXECUTING_TOOLS:
                self._log_verbose(f"Executing {len(pending_calls)} tool call(s)")
                for call in pending_calls:
                    async for event in self._execute_tool_call(call, cancel):
                        yield event
                    messages.append({"role": "tool", "content": call["output"], "tool_call_id": call["id"]})
                pending_calls = []
                state = LoopState.AWAITING_MODEL

        response = "".join(text_parts)
        self._log_verbose(f"Response complete: {len(response)} characters")
        yield ResultEvent(result=ProviderResult.ok(response))

    async def _stream_completion(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        turn: _ModelTurn,
        cancel: Optional[CancellationToken],
    ) -> AsyncIterator[StreamEvent]:
        request: Dict[str, Any] = {"model": model, "messages": cast(Any, messages), "stream": True}
        definitions = self.tools.definitions()
        if definitions:
            request["tools"] = definitions

        self._log_verbose(f"Request: model={model} messages={len(messages)} tools={len(definitions)}")
        stream = await run_cancellable(self.client.chat.completions.create(**request), cancel)
        try:
            iterator = stream.__aiter__()
            while True:
                chunk = await run_cancellable(_next_chunk(iterator), cancel)
                if chunk is None:
                    break
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    turn.text_parts.append(delta.content)
                    yield TextEvent(text=delta.content)
                for tool_delta in delta.tool_calls or []:
                    function = tool_delta.function
                    turn.tool_calls.add(
                        tool_delta.index,
                        call_id=tool_delta.id,
                        name=function.name if function else None,
                        arguments=function.arguments if function else None,
                    )
        finally:
            await stream.close()

    async def _execute_tool_call(
        self, call: Dict[str, Any], cancel: Optional[CancellationToken]
    ) -> AsyncIterator[StreamEvent]:
        """Run one tool, relaying its display events live. Stores the output on ``call``."""
        try:
            args = json.loads(call["arguments"] or "{}")
        except json.JSONDecodeError as e:
            call["output"] = f"Error executing tool: invalid arguments for {call['name']}: {e}"
            return
        if not isinstance(args, dict):
            call["output"] = f"Error executing tool: arguments for {call['name']} must be an object"
            return

        relay = QueueSink()
        task = asyncio.ensure_future(self.tools.execute_tool(call["name"], args, relay, self.display_policy))
        try:
            while not task.done() or not relay.queue.empty():
                if not relay.queue.empty():
                    yield relay.queue.get_nowait()
                    continue
                getter = asyncio.ensure_future(relay.queue.get())
                try:
                    await run_cancellable(asyncio.wait({task, getter}, return_when=asyncio.FIRST_COMPLETED), cancel)
                finally:
                    if not getter.done():
                        getter.cancel()
                if getter.done() and not getter.cancelled():
                    yield getter.result()
        finally:
            if not task.done():
                task.cancel()
                relay.deactivate()

        call["output"] = task.result()

    def _transport_result(self, error: Exception, partial: str, message_count: int) -> ProviderResult:
        logger.error(
            f"DeepSeek stream terminated: {type(error).__name__}: {error} "
            f"(model={self.config.default_model}, messages={message_count}, partial={len(partial)} chars)"
        )
        if partial:
            logger.warning(f"Returning partial response ({len(partial)} characters)")
            return ProviderResult.ok(partial)
        return ProviderResult.failure(f"DeepSeek API connection terminated: {error}", ErrorKind.TRANSPORT)
