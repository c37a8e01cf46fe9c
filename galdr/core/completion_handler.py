import time
from contextlib import aclosing
from typing import Optional, Union

from pydantic import BaseModel

from galdr.chat.splitting import StreamBuffer
from galdr.core.provider_manager import ProviderManager
from galdr.providers.events import ErrorKind, ProviderResult, ResultEvent, TextEvent
from galdr.providers.ids import ProviderId, SwitchMode
from galdr.providers.sink import RecordingSink, StreamSink
from galdr.session.context import ContextManager
from galdr.session.models import CompactionResult, Message
from galdr.utils.cancellation import CancellationToken
from galdr.utils.logging import get_logger

logger = get_logger(__name__)


class TurnOutcome(BaseModel):
    """Everything the caller needs to report about one turn"""

    provider: ProviderId
    result: ProviderResult
    message: Optional[Message] = None
    switched_to: Optional[ProviderId] = None
    notice: Optional[str] = None
    compaction: Optional[CompactionResult] = None
    duration_ms: int = 0


class CompletionHandler:
    """Runs a conversational turn: record, stream, commit, then apply the switch policy"""

    def __init__(
        self,
        provider_manager: ProviderManager,
        context_manager: ContextManager,
        terminal_height: int = 24,
        terminal_width: int = 80,
        reserved_lines: int = 8,
        verbose: bool = False,
    ):
        self.provider_manager = provider_manager
        self.context = context_manager
        self.terminal_height = terminal_height
        self.terminal_width = terminal_width
        self.reserved_lines = reserved_lines
        self.verbose = verbose

    async def run_turn(
        self,
        prompt: str,
        sink: Optional[StreamSink] = None,
        cancel: Optional[CancellationToken] = None,
        provider: Optional[Union[str, ProviderId]] = None,
    ) -> TurnOutcome:
        """
        Execute one prompt against the current (or given) provider.

        Args:
            prompt: The user prompt.
            sink: Receives text/tool/info events as they stream.
            cancel: Fires to abort the turn; the already-committed prefix is kept.
            provider: Override the session's current provider for this turn.
        """
        provider_id = self.provider_manager.resolve_id(provider or self.context.current_provider)
        start_time = time.time()

        if not await self.provider_manager.check_availability(provider_id):
            error = f"Provider '{provider_id}' is not available"
            logger.error(error)
            return TurnOutcome(
                provider=provider_id,
                result=ProviderResult.failure(error, ErrorKind.UNAVAILABLE),
                notice=f"Install the {provider_id} CLI (or configure its API key), or pick another provider",
            )

        user_result = await self.context.add_message("user", prompt)
        compaction = user_result.compaction
        history = list(self.context.messages[:-1])
        instance = self.provider_manager.get_provider(provider_id)
        model = self.context.get_model(provider_id)
        if self.verbose:
            logger.info(f"Turn: provider={provider_id} model={model} history={len(history)}")

        recorder = RecordingSink()
        buffer = StreamBuffer(self.terminal_height, self.terminal_width, self.reserved_lines)
        self.context.begin_streaming_message(provider_id)

        result: Optional[ProviderResult] = None
        async with aclosing(instance.stream(prompt, history, cancel=cancel, model=model)) as events:
            async for event in events:
                if isinstance(event, ResultEvent):
                    result = event.result
                    break
                event.dispatch(recorder)
                if sink is not None:
                    event.dispatch(sink)
                if isinstance(event, TextEvent) and buffer.append(event.text) is not None:
                    committed = buffer.committed_text
                    self.context.update_streaming_message(
                        committed, recorder.tools, recorder.committed_items(len(committed))
                    )

        if result is None:
            result = ProviderResult.failure(f"{provider_id} ended without a result")

        if result.success:
            content = result.response if result.response is not None else buffer.text
            finished = await self.context.finish_streaming_message(content, recorder.tools, recorder.items)
            self.context.increment_provider_usage(provider_id)
        else:
            recorder.fail_running_tools()
            committed = buffer.committed_text
            finished = await self.context.finish_streaming_message(
                committed, recorder.tools, recorder.committed_items(len(committed))
            )
            if not result.was_cancelled:
                logger.warning(f"{provider_id} failed: {result.error}")

        if finished is not None and finished.compaction is not None:
            compaction = finished.compaction

        switched_to, notice = await self._apply_switch_policy(provider_id, result)
        return TurnOutcome(
            provider=provider_id,
            result=result,
            message=finished.message if finished else None,
            switched_to=switched_to,
            notice=notice,
            compaction=compaction,
            duration_ms=int((time.time() - start_time) * 1000),
        )

    async def _apply_switch_policy(self, provider_id: ProviderId, result: ProviderResult):
        mode = self.context.switch_mode

        if result.token_limit_reached:
            if mode == SwitchMode.MANUAL:
                return None, f"{provider_id} reached its usage limit. Switch with: galdr config --provider <name>"
            next_provider = await self.provider_manager.get_next_available_provider(provider_id)
            if next_provider is None:
                return None, "All providers are unavailable or have reached their limits."
            self.context.set_current_provider(next_provider)
            logger.info(f"Usage limit reached, switched {provider_id} -> {next_provider}")
            return next_provider, f"Usage limit reached: switched from {provider_id} to {next_provider}"

        if result.success and mode == SwitchMode.ROUND_ROBIN:
            next_provider = await self.provider_manager.get_next_available_provider(provider_id)
            if next_provider is not None:
                self.context.set_current_provider(next_provider)
                return next_provider, f"Round-robin: next turn uses {next_provider}"

        return None, None
