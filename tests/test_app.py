"""Tests for GaldrApp wiring."""

import pytest
import yaml

from galdr.core.app import GaldrApp
from galdr.providers.ids import ProviderId, SwitchMode
from galdr.utils.errors import ConfigError


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
    return tmp_path


def write_config(path, data):
    path.write_text(yaml.dump(data))
    return str(path)


class TestGaldrApp:
    def test_sessions_live_under_working_dir(self, home, tmp_path):
        project = tmp_path / "project"
        project.mkdir()

        app = GaldrApp(working_dir=project)

        assert app.session_manager.sessions_dir == project / ".galdr" / "sessions"
        assert (project / ".galdr" / "sessions" / "default.json").exists()

    def test_config_drives_components(self, home, tmp_path):
        config_path = write_config(
            tmp_path / "config.yaml",
            {
                "defaults": {"provider": "gemini", "switch_mode": "rollover", "models": {"gemini": "pro"}},
                "sessions": {"storage_path": str(tmp_path / "store")},
                "compaction": {"threshold": 30, "keep": 5},
                "display": {"terminal_height": 40},
                "logging": {"verbose": True},
            },
        )

        app = GaldrApp(config_path)

        context = app.context_manager
        assert context.current_provider == ProviderId.GEMINI
        assert context.switch_mode == SwitchMode.ROLLOVER
        assert context.get_model("gemini") == "pro"
        assert (context.threshold, context.keep) == (30, 5)
        assert context.summarizer is app.summarizer
        assert app.completion_handler.terminal_height == 40
        assert app.verbose is True
        assert app.provider_manager.get_provider("claude").verbose is True

    def test_verbose_argument_overrides_config(self, home, tmp_path):
        config_path = write_config(tmp_path / "config.yaml", {"logging": {"verbose": True}})
        app = GaldrApp(config_path, working_dir=tmp_path, verbose=False)
        assert app.verbose is False

    def test_invalid_default_provider(self, home, tmp_path):
        config_path = write_config(tmp_path / "config.yaml", {"defaults": {"provider": "openai"}})

        with pytest.raises(ConfigError):
            GaldrApp(config_path, working_dir=tmp_path)

    def test_invalid_switch_mode(self, home, tmp_path):
        config_path = write_config(tmp_path / "config.yaml", {"defaults": {"switch_mode": "sometimes"}})

        with pytest.raises(ConfigError):
            GaldrApp(config_path, working_dir=tmp_path)
