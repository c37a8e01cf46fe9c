from enum import Enum


class ProviderId(str, Enum):
    """The closed set of backends galdr can talk to, in rotation order."""

    CLAUDE = "claude"
    GEMINI = "gemini"
    COPILOT = "copilot"
    CURSOR = "cursor"
    DEEPSEEK = "deepseek"

    def __str__(self) -> str:
        return self.value


class SwitchMode(str, Enum):
    MANUAL = "manual"
    ROLLOVER = "rollover"
    ROUND_ROBIN = "round-robin"

    def __str__(self) -> str:
        return self.value
