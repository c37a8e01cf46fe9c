from .context import context_group
from .sessions import sessions_group

__all__ = [
    "context_group",
    "sessions_group",
]
