from typing import Iterable, List, Optional, Union

from galdr.config.models import DEFAULT_PROVIDER_ORDER
from galdr.providers.ids import ProviderId
from galdr.session.models import Message
from galdr.utils.errors import SummarizationError
from galdr.utils.logging import get_logger

logger = get_logger(__name__)

SUMMARY_PROMPT = """Please provide a concise summary of the following conversation history. Focus on the key topics, decisions, and context that would be important to retain for future reference. Keep the summary under 300 words.

Conversation history:
{conversation}

Summary:"""


def format_transcript(messages: List[Message]) -> str:
    """``[role - provider]: content`` lines separated by blank lines"""
    lines = []
    for message in messages:
        label = f"{message.role} - {message.provider}" if message.provider else message.role
        lines.append(f"[{label}]: {message.content}")
    return "\n\n".join(lines)


class MessageSummarizer:
    """Condenses older messages using the first available backend in priority order"""

    def __init__(self, provider_manager, priority: Optional[Iterable[Union[str, ProviderId]]] = None):
        self.provider_manager = provider_manager
        self.priority = list(priority or DEFAULT_PROVIDER_ORDER)

    async def summarize(self, messages: List[Message]) -> str:
        """Summarize ``messages`` into one string.

        Raises:
            SummarizationError: no backend is available or the backend call failed.
        """
        provider_id = await self.provider_manager.first_available(self.priority)
        if provider_id is None:
            raise SummarizationError(
                "Unable to summarize: No LLM provider available",
                hint="Install one of the claude, gemini, copilot or cursor-agent CLIs, or set DEEPSEEK_API_KEY",
            )

        provider = self.provider_manager.get_provider(provider_id)
        prompt = SUMMARY_PROMPT.format(conversation=format_transcript(messages))
        logger.info(f"Summarizing {len(messages)} messages using {provider_id}")

        # Standalone request: no conversation history
        result = await provider.execute(prompt, [])
        if result.success and result.response and result.response.strip():
            return f"[Summarized {len(messages)} messages using {provider_id}]\n\n{result.response.strip()}"

        raise SummarizationError(f"Failed to generate summary using {provider_id}: {result.error or 'Unknown error'}")
