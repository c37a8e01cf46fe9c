from pathlib import Path
from typing import Optional

from galdr.config.config_manager import ConfigManager
from galdr.core.completion_handler import CompletionHandler
from galdr.core.provider_manager import ProviderManager
from galdr.providers.ids import SwitchMode
from galdr.session.context import ContextManager
from galdr.session.manager import SessionDefaults, SessionManager
from galdr.session.summarizer import MessageSummarizer
from galdr.tools.registry import ToolRegistry
from galdr.utils.errors import ConfigError
from galdr.utils.logging import get_logger

logger = get_logger(__name__)


class GaldrApp:
    """
    Main application class that manages all components and their lifecycles.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        working_dir: Optional[Path] = None,
        verbose: Optional[bool] = None,
        tools: Optional[ToolRegistry] = None,
    ):
        self.config_manager = ConfigManager(config_path) if config_path else ConfigManager()
        config = self.config_manager.config
        self.verbose = config.logging.verbose if verbose is None else verbose

        self.provider_manager = ProviderManager(self.config_manager, tools=tools, verbose=self.verbose)

        sessions_dir = Path(config.sessions.storage_path).expanduser()
        if not sessions_dir.is_absolute():
            sessions_dir = Path(working_dir or Path.cwd()) / sessions_dir

        try:
            defaults = SessionDefaults(
                provider=self.provider_manager.resolve_id(config.defaults.provider),
                switch_mode=SwitchMode(config.defaults.switch_mode),
                models=dict(config.defaults.models),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid defaults in {self.config_manager.config_path}", hint=str(e)) from e

        self.session_manager = SessionManager(sessions_dir, defaults)
        self.summarizer = MessageSummarizer(self.provider_manager, config.compaction.summarizer_priority)
        self.context_manager = ContextManager(
            self.session_manager,
            summarizer=self.summarizer,
            auto_compact=config.compaction.enabled,
            threshold=config.compaction.threshold,
            keep=config.compaction.keep,
            save_interval=config.sessions.save_interval,
        )
        self.completion_handler = CompletionHandler(
            self.provider_manager,
            self.context_manager,
            terminal_height=config.display.terminal_height,
            terminal_width=config.display.terminal_width,
            reserved_lines=config.display.reserved_lines,
            verbose=self.verbose,
        )
        logger.debug(f"GaldrApp initialized (sessions in {sessions_dir})")

    @classmethod
    def create(cls, config_path: Optional[str] = None, verbose: Optional[bool] = None) -> "GaldrApp":
        """
        Factory method to create a GaldrApp instance.
        """
        return cls(config_path, verbose=verbose)

    def close(self) -> None:
        """Persist anything still throttled"""
        self.context_manager.flush()
