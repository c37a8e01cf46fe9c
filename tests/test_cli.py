"""Tests for the galdr command line."""

import json

import pytest
import yaml
from click.testing import CliRunner

from galdr.cli.main import cli
from galdr.core.provider_manager import ProviderManager
from galdr.providers.events import ProviderResult, TextEvent
from galdr.providers.ids import ProviderId


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Isolated HOME (config) and working directory (sessions)."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def fake_claude(monkeypatch, scripted_provider):
    """Replace the Claude backend with a scripted one."""

    def install(text="Hello from fake", result=None, available=True):
        class FakeClaude(scripted_provider):
            def __init__(self, **kwargs):
                super().__init__(events=[TextEvent(text=text)], result=result, available=available, **kwargs)

        monkeypatch.setitem(ProviderManager.PROVIDER_CLASSES, ProviderId.CLAUDE, FakeClaude)

    return install


def session_file(workspace, name="default"):
    return json.loads((workspace / ".galdr" / "sessions" / f"{name}.json").read_text())


class TestSessionsCommands:
    """Tests for `galdr sessions`."""

    def test_sessions_help(self, runner, workspace):
        result = runner.invoke(cli, ["sessions", "--help"])
        assert result.exit_code == 0
        assert "Manage conversation sessions" in result.output

    def test_list_shows_default(self, runner, workspace):
        result = runner.invoke(cli, ["sessions"])
        assert result.exit_code == 0
        assert "default" in result.output

    def test_create_and_switch(self, runner, workspace):
        result = runner.invoke(cli, ["sessions", "create", "work", "-d", "Work stuff"])
        assert result.exit_code == 0
        assert "Created session 'work'" in result.output

        result = runner.invoke(cli, ["sessions", "switch", "work"])
        assert result.exit_code == 0

        index = json.loads((workspace / ".galdr" / "sessions" / "metadata.json").read_text())
        assert index["current_session"] == "work"
        assert index["sessions"]["work"]["description"] == "Work stuff"

    def test_create_duplicate(self, runner, workspace):
        runner.invoke(cli, ["sessions", "create", "work"])
        result = runner.invoke(cli, ["sessions", "create", "work"])
        assert result.exit_code == 65

    def test_switch_unknown(self, runner, workspace):
        result = runner.invoke(cli, ["sessions", "switch", "nope"])
        assert result.exit_code == 65
        assert "not found" in result.output

    def test_delete_current_refused(self, runner, workspace):
        result = runner.invoke(cli, ["sessions", "delete", "default", "--yes"])
        assert result.exit_code == 65

    def test_delete(self, runner, workspace):
        runner.invoke(cli, ["sessions", "create", "scratch"])
        result = runner.invoke(cli, ["sessions", "delete", "scratch", "--yes"])
        assert result.exit_code == 0
        assert not (workspace / ".galdr" / "sessions" / "scratch.json").exists()

    def test_rename_and_describe(self, runner, workspace):
        runner.invoke(cli, ["sessions", "create", "old"])
        assert runner.invoke(cli, ["sessions", "rename", "old", "new"]).exit_code == 0
        assert runner.invoke(cli, ["sessions", "describe", "new", "Renamed"]).exit_code == 0

        assert session_file(workspace, "new")["metadata"]["description"] == "Renamed"


class TestContextCommands:
    """Tests for `galdr context`."""

    def test_stats(self, runner, workspace):
        result = runner.invoke(cli, ["context"])
        assert result.exit_code == 0
        assert "Messages: 0" in result.output

    def test_show_empty(self, runner, workspace):
        result = runner.invoke(cli, ["context", "show"])
        assert "No messages yet" in result.output

    def test_compact_nothing(self, runner, workspace):
        result = runner.invoke(cli, ["context", "compact"])
        assert result.exit_code == 0
        assert "Nothing to compact" in result.output

    def test_compact_rejects_zero_keep(self, runner, workspace):
        result = runner.invoke(cli, ["context", "compact", "--keep", "0"])
        assert result.exit_code == 2

    def test_clear(self, runner, workspace, fake_claude):
        fake_claude()
        runner.invoke(cli, ["ask", "Hi"])

        result = runner.invoke(cli, ["context", "clear"])

        assert result.exit_code == 0
        assert session_file(workspace)["messages"] == []


class TestConfigCommand:
    """Tests for `galdr config`."""

    def test_set_provider_updates_config_and_session(self, runner, workspace):
        result = runner.invoke(cli, ["config", "-p", "gemini"])

        assert result.exit_code == 0
        config = yaml.safe_load((workspace / "home" / ".galdr" / "config.yaml").read_text())
        assert config["defaults"]["provider"] == "gemini"
        assert session_file(workspace)["current_provider"] == "gemini"

    def test_set_mode(self, runner, workspace):
        result = runner.invoke(cli, ["config", "-m", "rollover"])
        assert result.exit_code == 0
        assert session_file(workspace)["switch_mode"] == "rollover"

    def test_set_model(self, runner, workspace):
        result = runner.invoke(cli, ["config", "--model", "claude=opus"])
        assert result.exit_code == 0
        assert session_file(workspace)["provider_models"]["claude"] == "opus"

    def test_bad_model_setting(self, runner, workspace):
        result = runner.invoke(cli, ["config", "--model", "claude"])
        assert result.exit_code == 64

    def test_unknown_provider_in_model_setting(self, runner, workspace):
        result = runner.invoke(cli, ["config", "--model", "openai=gpt-4o"])
        assert result.exit_code == 78

    def test_show(self, runner, workspace):
        result = runner.invoke(cli, ["config", "--show"])
        assert result.exit_code == 0
        assert "defaults" in result.output


class TestAskCommand:
    """Tests for `galdr ask`."""

    def test_ask_streams_and_records(self, runner, workspace, fake_claude):
        fake_claude()

        result = runner.invoke(cli, ["ask", "Say", "hello"])

        assert result.exit_code == 0, result.output
        assert "Hello from fake" in result.output
        messages = session_file(workspace)["messages"]
        assert [(m["role"], m["content"]) for m in messages] == [
            ("user", "Say hello"),
            ("assistant", "Hello from fake"),
        ]
        assert session_file(workspace)["provider_usage"] == {"claude": 1}

    def test_ask_in_new_session(self, runner, workspace, fake_claude):
        fake_claude()

        result = runner.invoke(cli, ["ask", "-s", "side", "Hi"])

        assert result.exit_code == 0, result.output
        assert len(session_file(workspace, "side")["messages"]) == 2
        assert session_file(workspace)["messages"] == []

    def test_ask_unavailable_provider(self, runner, workspace, fake_claude):
        fake_claude(available=False)

        result = runner.invoke(cli, ["ask", "Hi"])

        assert result.exit_code == 75
        assert "not available" in result.output

    def test_ask_provider_failure(self, runner, workspace, fake_claude):
        fake_claude(result=ProviderResult.failure("backend exploded"))

        result = runner.invoke(cli, ["ask", "Hi"])

        assert result.exit_code == 75
        assert "backend exploded" in result.output
        assert [m["role"] for m in session_file(workspace)["messages"]] == ["user"]


class TestStatusCommand:
    def test_status_lists_providers(self, runner, workspace, fake_claude):
        fake_claude()

        result = runner.invoke(cli, ["status"])

        assert result.exit_code == 0
        for provider_id in ProviderId:
            assert provider_id.value in result.output
