from galdr.providers.base import compile_patterns
from galdr.providers.cli_provider import CliProvider
from galdr.providers.ids import ProviderId
from galdr.providers.normalizer import CursorStreamParser, StreamParser


class CursorProvider(CliProvider):
    provider_id = ProviderId.CURSOR
    default_executable = "cursor-agent"
    base_args = ["--print", "--force", "--output-format", "stream-json"]
    quota_patterns = compile_patterns(
        r"reached .*token limit",
        r"hit your usage limit",
    )

    def create_parser(self) -> StreamParser:
        return CursorStreamParser()
