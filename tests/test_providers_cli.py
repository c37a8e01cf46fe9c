"""
Tests for CLI-backed providers.
"""

from unittest.mock import Mock, patch

import pytest

from galdr.config.models import ProviderConfig
from galdr.providers.claude_provider import ClaudeProvider
from galdr.providers.cli_provider import format_history_prompt
from galdr.providers.copilot_provider import CopilotProvider
from galdr.providers.cursor_provider import CursorProvider
from galdr.providers.events import ErrorKind
from galdr.providers.gemini_provider import GeminiProvider
from galdr.providers.process import ProcessChunk, ProcessExit
from galdr.providers.sink import StreamSink, ToolDisplayPolicy
from galdr.session.models import Message


class FakeRunner:
    """Replays canned output instead of spawning a process"""

    def __init__(self, chunks=(), exit_info=None, stderr=""):
        self.chunks = list(chunks)
        if exit_info is None:
            exit_info = ProcessExit(returncode=0, stdout="".join(self.chunks), stderr=stderr)
        self.exit_info = exit_info
        self.calls = []

    async def stream(self, spec, stdin_data=None, cancel=None):
        self.calls.append({"spec": spec, "stdin": stdin_data})
        for chunk in self.chunks:
            yield ProcessChunk(chunk)
        if self.exit_info is not None:
            yield self.exit_info


def recording_sink():
    calls = []
    sink = StreamSink(
        on_text=lambda text: calls.append(("text", text)),
        on_tool=lambda name, params: calls.append(("tool", name)),
        on_tool_complete=lambda ok: calls.append(("done", ok)),
        on_info=lambda message: calls.append(("info", message)),
    )
    return sink, calls


class TestGetCommand:
    """Tests for the invocation of each backend CLI."""

    def test_claude_default_model(self):
        spec = ClaudeProvider().get_command()
        assert spec.argv == ["claude", "--print", "--permission-mode", "bypassPermissions"]

    def test_claude_explicit_model(self):
        spec = ClaudeProvider().get_command("opus")
        assert spec.args[-2:] == ["--model", "opus"]

    def test_default_model_name_is_omitted(self):
        spec = ClaudeProvider(ProviderConfig(default_model="default")).get_command("default")
        assert "--model" not in spec.args

    def test_configured_model_used_when_none_given(self):
        spec = GeminiProvider(ProviderConfig(default_model="gemini-2.5-pro")).get_command()
        assert spec.argv == ["gemini", "--approval-mode", "yolo", "--model", "gemini-2.5-pro"]

    def test_executable_override(self):
        spec = ClaudeProvider(ProviderConfig(executable="/opt/bin/claude")).get_command()
        assert spec.executable == "/opt/bin/claude"

    def test_copilot(self):
        spec = CopilotProvider().get_command()
        assert spec.argv == ["copilot", "--allow-all-tools", "--stream", "on"]

    def test_cursor(self):
        spec = CursorProvider().get_command("gpt-5")
        assert spec.argv == [
            "cursor-agent",
            "--print",
            "--force",
            "--output-format",
            "stream-json",
            "--model",
            "gpt-5",
        ]


class TestFormatHistoryPrompt:
    def test_no_history(self):
        assert format_history_prompt([], "Hi") == "Hi"

    def test_history_precedes_request(self):
        history = [
            Message(role="user", content="What is 2+2?"),
            Message(role="assistant", content="4"),
        ]
        prompt = format_history_prompt(history, "And 3+3?")

        assert prompt == (
            "Previous conversation:\n\n"
            "User: What is 2+2?\n\n"
            "Assistant: 4\n\n"
            "Current request:\nAnd 3+3?"
        )


class TestQuotaDetection:
    @pytest.mark.parametrize(
        "provider_class,output",
        [
            (ClaudeProvider, "Claude AI usage limit reached|1700000000"),
            (ClaudeProvider, "Credit balance is too low"),
            (GeminiProvider, "Error: RESOURCE_EXHAUSTED"),
            (CopilotProvider, "Token limit exceeded for this month"),
            (CursorProvider, "You've hit your usage limit"),
        ],
    )
    def test_detects_limit(self, provider_class, output):
        assert provider_class().detect_quota_exhausted(output) is True

    def test_ordinary_error_is_not_quota(self):
        assert ClaudeProvider().detect_quota_exhausted("Error: file not found") is False


class TestCliProviderExecute:
    """Tests for running a CLI provider turn."""

    @pytest.mark.asyncio
    async def test_success_streams_text(self):
        runner = FakeRunner(["Hel", "lo"])
        provider = ClaudeProvider(runner=runner)
        sink, calls = recording_sink()
        on_first_chunk = Mock()

        result = await provider.execute("Say hello", [], sink=sink, on_first_chunk=on_first_chunk)

        assert result.success is True
        assert result.response == "Hello"
        assert calls == [("text", "Hel"), ("text", "lo")]
        on_first_chunk.assert_called_once()
        assert runner.calls[0]["stdin"] == "Say hello"

    @pytest.mark.asyncio
    async def test_history_is_folded_into_stdin(self):
        runner = FakeRunner(["ok"])
        provider = GeminiProvider(runner=runner)

        await provider.execute("Next", [Message(role="user", content="First")])

        assert runner.calls[0]["stdin"].startswith("Previous conversation:")
        assert runner.calls[0]["stdin"].endswith("Current request:\nNext")

    @pytest.mark.asyncio
    async def test_nonzero_exit_reports_stderr(self):
        runner = FakeRunner(exit_info=ProcessExit(returncode=1, stderr="auth failed\n"))
        result = await ClaudeProvider(runner=runner).execute("Hi")

        assert result.success is False
        assert result.error == "auth failed"
        assert result.error_kind == ErrorKind.PROCESS
        assert result.token_limit_reached is False

    @pytest.mark.asyncio
    async def test_nonzero_exit_without_stderr(self):
        runner = FakeRunner(exit_info=ProcessExit(returncode=2))
        result = await ClaudeProvider(runner=runner).execute("Hi")

        assert result.error == "Command exited with code 2"

    @pytest.mark.asyncio
    async def test_quota_failure(self):
        runner = FakeRunner(exit_info=ProcessExit(returncode=1, stderr="Claude AI usage limit reached|1700000000"))
        result = await ClaudeProvider(runner=runner).execute("Hi")

        assert result.success is False
        assert result.token_limit_reached is True
        assert result.error_kind == ErrorKind.QUOTA_EXHAUSTED

    @pytest.mark.asyncio
    async def test_quota_notice_on_success(self):
        runner = FakeRunner(["Answer. 5-hour limit reached"])
        result = await ClaudeProvider(runner=runner).execute("Hi")

        assert result.success is True
        assert result.token_limit_reached is True

    @pytest.mark.asyncio
    async def test_spawn_failure_is_unavailable(self):
        runner = FakeRunner(exit_info=ProcessExit(returncode=None, spawn_error=FileNotFoundError("claude")))
        result = await ClaudeProvider(runner=runner).execute("Hi")

        assert result.success is False
        assert result.error_kind == ErrorKind.UNAVAILABLE
        assert result.error.startswith("Failed to execute claude")

    @pytest.mark.asyncio
    async def test_cancelled_exit(self):
        runner = FakeRunner(["partial"], exit_info=ProcessExit(returncode=-9, cancelled=True))
        result = await ClaudeProvider(runner=runner).execute("Hi")

        assert result.was_cancelled is True
        assert result.error == "Operation cancelled"

    @pytest.mark.asyncio
    async def test_timeout_is_reported_as_cancelled(self):
        runner = FakeRunner(exit_info=ProcessExit(returncode=-9, timed_out=True))
        result = await ClaudeProvider(runner=runner).execute("Hi")

        assert result.was_cancelled is True

    @pytest.mark.asyncio
    async def test_copilot_hidden_tools_are_filtered(self):
        output = (
            '{"type": "tool_use", "tool_name": "Read", "parameters": {"path": "a.py"}}\n'
            '{"type": "tool_result", "status": "success"}\n'
            '{"type": "tool_use", "tool_name": "Bash", "parameters": {"command": "ls"}}\n'
            '{"type": "tool_result", "status": "error"}\n'
            "Done"
        )
        provider = CopilotProvider(display_policy=ToolDisplayPolicy(["read"]), runner=FakeRunner([output]))
        sink, calls = recording_sink()

        result = await provider.execute("Hi", sink=sink)

        assert calls == [("tool", "Bash"), ("done", False), ("text", "Done")]
        assert result.response == "Done"

    @pytest.mark.asyncio
    async def test_cursor_stream_json(self):
        output = (
            '{"type": "system", "subtype": "init"}\n'
            '{"type": "assistant", "message": {"content": [{"type": "text", "text": "Hi!"}]}}\n'
        )
        provider = CursorProvider(runner=FakeRunner([output]))

        result = await provider.execute("Hi")

        assert result.response == "Hi!"


class TestCheckAvailability:
    @pytest.mark.asyncio
    async def test_available_when_on_path(self):
        with patch("galdr.providers.cli_provider.shutil.which", return_value="/usr/bin/claude") as which:
            assert await ClaudeProvider().check_availability() is True
        which.assert_called_once_with("claude")

    @pytest.mark.asyncio
    async def test_unavailable_when_missing(self):
        with patch("galdr.providers.cli_provider.shutil.which", return_value=None):
            assert await CursorProvider().check_availability() is False
