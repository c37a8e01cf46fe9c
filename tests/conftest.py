"""
Shared pytest fixtures and helpers for galdr tests.

Providers are replaced by scripted fakes so no backend CLI or network access is
needed. Child-process tests use ``sys.executable`` as the "backend".
"""

import asyncio
from typing import List, Optional

import pytest

from galdr.config.models import ProviderConfig
from galdr.core.provider_manager import ProviderManager
from galdr.providers.base import BaseProvider
from galdr.providers.events import ProviderResult, ResultEvent, TextEvent
from galdr.providers.ids import ProviderId
from galdr.session.manager import SessionManager

# =============================================================================
# Helpers
# =============================================================================


class ScriptedProvider(BaseProvider):
    """Provider that replays a fixed list of events, then a result"""

    provider_id = ProviderId.CLAUDE

    def __init__(
        self,
        events: Optional[List] = None,
        result: Optional[ProviderResult] = None,
        available: bool = True,
        provider_id: Optional[ProviderId] = None,
        **kwargs,
    ):
        if provider_id is not None:
            self.provider_id = provider_id
        super().__init__(**kwargs)
        self.events = list(events or [])
        text = "".join(e.text for e in self.events if isinstance(e, TextEvent))
        self.result = result or ProviderResult.ok(text)
        self.available = available
        self.calls = []

    async def check_availability(self) -> bool:
        return self.available

    async def _stream(self, prompt, history, cancel, model):
        self.calls.append({"prompt": prompt, "history": list(history), "model": model})
        for event in self.events:
            if cancel is not None:
                cancel.raise_if_cancelled()
            yield event
            await asyncio.sleep(0)
        yield ResultEvent(result=self.result)


class StubConfigManager:
    """The slice of ConfigManager that ProviderManager reads"""

    def __init__(self, disabled=()):
        self.disabled = {str(p) for p in disabled}

    def get(self, key, default=None):
        return default

    def get_provider_config(self, name: str) -> ProviderConfig:
        return ProviderConfig(enabled=name not in self.disabled)


class FakeSummarizer:
    def __init__(self, text: str = "SUMMARY", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls = []

    async def summarize(self, messages):
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        return self.text


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def scripted_provider():
    """The ScriptedProvider class, for building fakes inside tests"""
    return ScriptedProvider


@pytest.fixture
def fake_summarizer():
    return FakeSummarizer


@pytest.fixture
def make_provider_manager():
    """Build a ProviderManager whose providers are all scripted.

    Providers not passed in are registered as unavailable.
    """

    def build(*providers: BaseProvider, disabled=(), tools=None) -> ProviderManager:
        pm = ProviderManager(StubConfigManager(disabled), tools=tools, verbose=False)
        for provider_id in ProviderId:
            pm.providers[provider_id] = ScriptedProvider(available=False, provider_id=provider_id)
        for provider in providers:
            pm.providers[provider.provider_id] = provider
        return pm

    return build


@pytest.fixture
def session_manager(tmp_path):
    """Create a SessionManager with a temporary directory."""
    return SessionManager(tmp_path / "sessions")
