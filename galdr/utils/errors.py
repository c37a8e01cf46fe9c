"""Exception hierarchy for galdr."""


class GaldrError(Exception):
    """Base exception for all galdr errors."""

    exit_code = 1

    def __init__(self, message: str, exit_code: int | None = None, hint: str | None = None):
        """
        Initialize exception with optional exit code and hint.

        Args:
            message: Error message
            exit_code: Override default exit code
            hint: Helpful hint for resolving the error (uses Python 3.11+ __notes__)
        """
        super().__init__(message)
        if exit_code:
            self.exit_code = exit_code
        if hint:
            if hasattr(self, "add_note"):
                self.add_note(hint)


class ResourceError(GaldrError):
    """External resources unavailable (CLI backends, network, files)."""

    exit_code = 75


class ConfigError(GaldrError):
    """Configuration-related errors (.env, config.yaml, missing keys)."""

    exit_code = 78


class ProviderError(ResourceError):
    """Provider errors (spawn failure, API failure, quota)."""

    pass


class ProviderUnavailableError(ProviderError):
    """Backend executable is not installed or the API key is missing."""

    def __init__(self, provider: str, hint: str | None = None):
        super().__init__(f"Provider '{provider}' is not available", hint=hint)
        self.provider = provider


class SessionError(GaldrError):
    """Session lifecycle errors (unknown name, name taken, deleting the current session)."""

    exit_code = 65


class PersistenceError(ResourceError):
    """Saving or compacting conversation state failed."""

    exit_code = 74


class SummarizationError(PersistenceError):
    """No backend could produce a summary of older messages."""

    pass


class CompactionError(PersistenceError):
    """History changed while a summary was being produced."""

    pass


class UsageError(GaldrError):
    """Invalid CLI arguments or options."""

    exit_code = 64
