from typing import Dict, Iterable, List, Optional, Type, Union

from galdr.providers.base import BaseProvider
from galdr.providers.claude_provider import ClaudeProvider
from galdr.providers.copilot_provider import CopilotProvider
from galdr.providers.cursor_provider import CursorProvider
from galdr.providers.deepseek_provider import DeepSeekProvider
from galdr.providers.gemini_provider import GeminiProvider
from galdr.providers.ids import ProviderId
from galdr.providers.sink import ToolDisplayPolicy
from galdr.tools.registry import ToolRegistry
from galdr.utils.errors import ConfigError
from galdr.utils.logging import get_logger

logger = get_logger(__name__)


class ProviderManager:
    """Manages all AI providers"""

    # Registry of provider classes; iteration order is the rotation order
    PROVIDER_CLASSES: Dict[ProviderId, Type[BaseProvider]] = {
        ProviderId.CLAUDE: ClaudeProvider,
        ProviderId.GEMINI: GeminiProvider,
        ProviderId.COPILOT: CopilotProvider,
        ProviderId.CURSOR: CursorProvider,
        ProviderId.DEEPSEEK: DeepSeekProvider,
    }

    def __init__(self, config_manager, tools: Optional[ToolRegistry] = None, verbose: Optional[bool] = None):
        self.config_manager = config_manager
        self.verbose = bool(config_manager.get("logging.verbose", False)) if verbose is None else verbose
        self.tools = tools if tools is not None else ToolRegistry()
        self.display_policy = ToolDisplayPolicy(config_manager.get("display.hidden_tools", []) or [])
        self.providers: Dict[ProviderId, BaseProvider] = {}

    @staticmethod
    def resolve_id(name: Union[str, ProviderId]) -> ProviderId:
        try:
            return ProviderId(name)
        except ValueError:
            known = ", ".join(p.value for p in ProviderId)
            raise ConfigError(f"Unknown provider '{name}'", hint=f"Known providers: {known}") from None

    def _initialize_provider(self, provider_id: ProviderId) -> BaseProvider:
        """Initialize a specific provider"""
        if provider_id in self.providers:
            return self.providers[provider_id]

        provider_class = self.PROVIDER_CLASSES[provider_id]
        kwargs = {
            "config": self.config_manager.get_provider_config(provider_id.value),
            "verbose": self.verbose,
            "display_policy": self.display_policy,
        }
        if provider_class.uses_tools:
            kwargs["tools"] = self.tools
        provider = provider_class(**kwargs)
        self.providers[provider_id] = provider
        logger.debug(f"Initialized provider: {provider_id}")
        return provider

    def get_provider(self, name: Union[str, ProviderId]) -> BaseProvider:
        """Get provider by name"""
        return self._initialize_provider(self.resolve_id(name))

    def is_enabled(self, name: Union[str, ProviderId]) -> bool:
        return self.config_manager.get_provider_config(self.resolve_id(name).value).enabled

    def list_providers(self) -> List[ProviderId]:
        """List all provider ids enabled in config"""
        return [provider_id for provider_id in self.PROVIDER_CLASSES if self.is_enabled(provider_id)]

    async def check_availability(self, name: Union[str, ProviderId]) -> bool:
        provider_id = self.resolve_id(name)
        if not self.is_enabled(provider_id):
            return False
        return await self._initialize_provider(provider_id).check_availability()

    async def check_all_availability(self) -> Dict[ProviderId, bool]:
        results = {}
        for provider_id in self.PROVIDER_CLASSES:
            results[provider_id] = await self.check_availability(provider_id)
        return results

    def get_next_provider(self, current: Union[str, ProviderId]) -> ProviderId:
        """Successor of ``current`` in rotation order, ignoring availability"""
        order = list(self.PROVIDER_CLASSES)
        index = order.index(self.resolve_id(current))
        return order[(index + 1) % len(order)]

    async def get_next_available_provider(self, current: Union[str, ProviderId]) -> Optional[ProviderId]:
        """First available provider after ``current`` in rotation order, never ``current`` itself"""
        order = list(self.PROVIDER_CLASSES)
        index = order.index(self.resolve_id(current))
        for offset in range(1, len(order)):
            candidate = order[(index + offset) % len(order)]
            if await self.check_availability(candidate):
                return candidate
        return None

    async def first_available(self, priority: Iterable[Union[str, ProviderId]]) -> Optional[ProviderId]:
        for name in priority:
            provider_id = self.resolve_id(name)
            if await self.check_availability(provider_id):
                return provider_id
        return None
