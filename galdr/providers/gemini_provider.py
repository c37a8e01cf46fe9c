from galdr.providers.base import compile_patterns
from galdr.providers.cli_provider import CliProvider
from galdr.providers.ids import ProviderId


class GeminiProvider(CliProvider):
    provider_id = ProviderId.GEMINI
    default_executable = "gemini"
    base_args = ["--approval-mode", "yolo"]
    quota_patterns = compile_patterns(
        r"RESOURCE_EXHAUSTED",
        r"Quota exceeded for quota metric",
        r"exhausted your (daily )?quota",
    )
