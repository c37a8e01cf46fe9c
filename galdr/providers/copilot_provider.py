from galdr.providers.base import compile_patterns
from galdr.providers.cli_provider import CliProvider
from galdr.providers.ids import ProviderId
from galdr.providers.normalizer import CopilotStreamParser, StreamParser


class CopilotProvider(CliProvider):
    """GitHub Copilot CLI; tool activity arrives as JSON lines between text"""

    provider_id = ProviderId.COPILOT
    default_executable = "copilot"
    base_args = ["--allow-all-tools", "--stream", "on"]
    quota_patterns = compile_patterns(
        r"token limit exceeded",
        r"exceeded your .*(quota|allowance)",
    )

    def create_parser(self) -> StreamParser:
        return CopilotStreamParser()
