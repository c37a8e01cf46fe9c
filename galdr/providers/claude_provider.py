from galdr.providers.base import compile_patterns
from galdr.providers.cli_provider import CliProvider
from galdr.providers.ids import ProviderId


class ClaudeProvider(CliProvider):
    """Claude Code CLI in print mode"""

    provider_id = ProviderId.CLAUDE
    default_executable = "claude"
    base_args = ["--print", "--permission-mode", "bypassPermissions"]
    quota_patterns = compile_patterns(
        r"usage limit reached",
        r"5-hour limit reached",
        r"credit balance is too low",
    )
