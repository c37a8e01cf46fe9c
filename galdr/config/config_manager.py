import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from galdr.config.models import GaldrConfig, ProviderConfig
from galdr.utils.errors import ConfigError
from galdr.utils.logging import get_logger

logger = get_logger(__name__)

SWITCH_MODES = ("manual", "rollover", "round-robin")


class ConfigManager:
    """Manages configuration from YAML and environment variables"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_dir = Path.home() / ".galdr"
        self.config_dir.mkdir(exist_ok=True)

        # Load environment variables
        load_dotenv()

        # Determine config file location
        if config_path:
            self.config_path = Path(config_path)
        else:
            self.config_path = self.config_dir / "config.yaml"

        # Create default config if doesn't exist
        if not self.config_path.exists():
            self._create_default_config()

        # Load configuration
        self._config_data = self._load_config_file()
        try:
            self.config = GaldrConfig(**self._config_data)
        except ValueError as e:
            raise ConfigError(f"Invalid configuration in {self.config_path}", hint=str(e)) from e
        logger.debug(f"Config loaded from {self.config_path}")

    def _create_default_config(self):
        """Create default configuration file"""
        default_config = {
            "version": "1.0",
            "defaults": {
                "provider": "claude",
                "switch_mode": "manual",
                "models": {
                    "claude": "default",
                    "gemini": "default",
                    "copilot": "default",
                    "cursor": "default",
                    "deepseek": "default",
                },
            },
            "providers": {
                "claude": {"enabled": True, "executable": "claude"},
                "gemini": {"enabled": True, "executable": "gemini"},
                "copilot": {"enabled": True, "executable": "copilot"},
                "cursor": {"enabled": True, "executable": "cursor-agent"},
                "deepseek": {
                    "enabled": True,
                    "api_key_env": "DEEPSEEK_API_KEY",
                    "base_url": "https://api.deepseek.com",
                    "default_model": "deepseek-chat",
                },
            },
            "logging": {"verbose": False, "log_file": None},
            "sessions": {"storage_path": ".galdr/sessions", "save_interval": 0.5},
            "compaction": {"enabled": True, "threshold": 50, "keep": 20, "manual_keep": 10},
        }

        with open(self.config_path, "w") as f:
            yaml.dump(default_config, f, default_flow_style=False)
        logger.info(f"Created default config at {self.config_path}")

    def _load_config_file(self) -> Dict:
        """Load configuration from YAML file"""
        try:
            with open(self.config_path) as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Could not parse {self.config_path}", hint=str(e)) from e

    def get(self, key: str, default=None) -> Any:
        """Get configuration value using dot notation"""
        return self.config.get_dot_notation(key, default)

    def get_provider_config(self, provider: str) -> ProviderConfig:
        """Get configuration for specific provider"""
        return self.config.providers.get(provider) or ProviderConfig()

    def get_default_provider(self) -> str:
        """Get default provider name"""
        return self.config.defaults.provider

    def get_default_switch_mode(self) -> str:
        return self.config.defaults.switch_mode

    def get_default_model(self, provider: str) -> str:
        """Get default model for provider"""
        return self.config.defaults.models.get(provider, "default")

    def set_default_provider(self, provider: str):
        self.config.defaults.provider = provider
        self.save()

    def set_default_switch_mode(self, mode: str):
        if mode not in SWITCH_MODES:
            raise ConfigError(f"Unknown switch mode '{mode}'", hint=f"Choose one of: {', '.join(SWITCH_MODES)}")
        self.config.defaults.switch_mode = mode
        self.save()

    def set_default_model(self, provider: str, model: str):
        self.config.defaults.models[provider] = model
        self.save()

    def save(self):
        """Save current configuration to file atomically"""
        fd, tmp_path = tempfile.mkstemp(dir=self.config_path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                yaml.dump(self.config.model_dump(), f, default_flow_style=False)
            shutil.move(tmp_path, self.config_path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.info(f"Config saved to {self.config_path}")
