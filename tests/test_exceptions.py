"""Tests for the exception hierarchy and exit codes.

Tests cover:
1. Exception hierarchy
2. Exit code attributes
3. Hints attached as exception notes
"""

import pytest

from galdr.utils.errors import (
    CompactionError,
    ConfigError,
    GaldrError,
    PersistenceError,
    ProviderError,
    ProviderUnavailableError,
    ResourceError,
    SessionError,
    SummarizationError,
    UsageError,
)


class TestExceptionHierarchy:
    """Test exception inheritance hierarchy."""

    def test_all_exceptions_inherit_from_galdr_error(self):
        exceptions = [
            ResourceError,
            ConfigError,
            ProviderError,
            ProviderUnavailableError,
            SessionError,
            PersistenceError,
            SummarizationError,
            CompactionError,
            UsageError,
        ]

        for exc_class in exceptions:
            assert issubclass(exc_class, GaldrError), f"{exc_class.__name__} should inherit from GaldrError"

    def test_provider_errors_are_resource_errors(self):
        assert issubclass(ProviderError, ResourceError)
        assert issubclass(ProviderUnavailableError, ProviderError)
        assert not issubclass(ProviderError, ConfigError)

    def test_compaction_failures_are_persistence_errors(self):
        assert issubclass(SummarizationError, PersistenceError)
        assert issubclass(CompactionError, PersistenceError)
        assert not issubclass(SessionError, ResourceError)


class TestExitCodes:
    """Test exit code attributes on exceptions."""

    @pytest.mark.parametrize(
        "exc_class,code",
        [
            (GaldrError, 1),
            (ResourceError, 75),
            (ProviderError, 75),
            (ConfigError, 78),
            (SessionError, 65),
            (PersistenceError, 74),
            (SummarizationError, 74),
            (UsageError, 64),
        ],
    )
    def test_exit_codes(self, exc_class, code):
        assert exc_class("Test error").exit_code == code

    def test_exit_code_override_in_init(self):
        exc = GaldrError("Test", exit_code=42)
        assert exc.exit_code == 42

    def test_exit_code_override_with_none_uses_default(self):
        exc = ConfigError("Test", exit_code=None)
        assert exc.exit_code == 78


class TestHints:
    def test_hint_becomes_note(self):
        exc = ConfigError("Bad config", hint="Check ~/.galdr/config.yaml")

        assert str(exc) == "Bad config"
        assert exc.__notes__ == ["Check ~/.galdr/config.yaml"]

    def test_no_hint_no_notes(self):
        assert not hasattr(SessionError("x"), "__notes__")

    def test_unavailable_provider(self):
        exc = ProviderUnavailableError("gemini", hint="Install the gemini CLI")

        assert str(exc) == "Provider 'gemini' is not available"
        assert exc.provider == "gemini"
        assert exc.exit_code == 75
        assert exc.__notes__ == ["Install the gemini CLI"]
