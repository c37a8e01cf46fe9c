import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

DEFAULT_PROVIDER_ORDER = ["claude", "gemini", "copilot", "cursor", "deepseek"]


class ProviderConfig(BaseModel):
    enabled: bool = True
    executable: Optional[str] = None
    api_key: Optional[str] = None
    api_key_env: Optional[str] = None
    base_url: Optional[str] = None
    default_model: str = "default"
    timeout: Optional[float] = None

    def resolve_api_key(self, default_env: Optional[str] = None) -> Optional[str]:
        """Explicit config value first, then the named env var"""
        if self.api_key:
            return self.api_key
        env_name = self.api_key_env or default_env
        return os.getenv(env_name) if env_name else None


class DefaultsConfig(BaseModel):
    provider: str = "claude"
    switch_mode: str = "manual"
    models: Dict[str, str] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    verbose: bool = False
    log_file: Optional[str] = None


class SessionConfig(BaseModel):
    storage_path: str = ".galdr/sessions"
    save_interval: float = 0.5


class CompactionConfig(BaseModel):
    enabled: bool = True
    threshold: int = 50
    keep: int = 20
    manual_keep: int = 10
    summarizer_priority: List[str] = Field(default_factory=lambda: list(DEFAULT_PROVIDER_ORDER))


class DisplayConfig(BaseModel):
    hidden_tools: List[str] = Field(default_factory=lambda: ["Read", "List", "Glob", "Grep", "Find"])
    terminal_height: int = 24
    terminal_width: int = 80
    reserved_lines: int = 8


class GaldrConfig(BaseModel):
    version: str = "1.0"
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    providers: Dict[str, ProviderConfig] = Field(default_factory=dict)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    sessions: SessionConfig = Field(default_factory=SessionConfig)
    compaction: CompactionConfig = Field(default_factory=CompactionConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)

    def get_dot_notation(self, key: str, default: Any = None) -> Any:
        """Get value using dot notation from the config model"""
        parts = key.split(".")
        current = self
        for part in parts:
            if hasattr(current, part):
                current = getattr(current, part)
            elif isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current
