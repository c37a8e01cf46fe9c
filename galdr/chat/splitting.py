"""Deciding when a growing streamed message can be frozen into history.

A split point is never placed inside a fenced code block.
"""

import math
from typing import Iterable, List, Optional

FENCE = "```"


def estimate_line_count(text: str, terminal_width: int = 80) -> int:
    """Estimate how many terminal lines ``text`` occupies.

    Prose wraps at ``terminal_width`` minus a margin; fence lines and code inside a
    fence count as one line each.
    """
    if not text:
        return 0

    effective_width = max(terminal_width - 4, 40)
    total = 0
    in_code_block = False
    for line in text.split("\n"):
        if line.strip().startswith(FENCE):
            in_code_block = not in_code_block
            total += 1
        elif in_code_block or not line:
            total += 1
        else:
            total += math.ceil(len(line) / effective_width)
    return total


def _fences_before(text: str, index: int) -> int:
    count = 0
    pos = text.find(FENCE)
    while pos != -1 and pos < index:
        count += 1
        pos = text.find(FENCE, pos + len(FENCE))
    return count


def is_inside_code_block(text: str, index: int) -> bool:
    """True if an odd number of fences starts before ``index``."""
    return _fences_before(text, index) % 2 == 1


def find_last_safe_split_point(text: str) -> int:
    """Index at which ``text`` may be split, or ``len(text)`` if there is none.

    1. Text ending inside an open fence splits at the start of that fence.
    2. Otherwise, just after the last blank line that is outside any fence.
    """
    if not text:
        return 0

    fence_positions = []
    pos = text.find(FENCE)
    while pos != -1:
        fence_positions.append(pos)
        pos = text.find(FENCE, pos + len(FENCE))
    if len(fence_positions) % 2 == 1:
        return fence_positions[-1]

    search_end = len(text)
    while True:
        idx = text.rfind("\n\n", 0, search_end)
        if idx == -1:
            break
        point = idx + 2
        if not is_inside_code_block(text, point):
            return point
        search_end = idx + 1

    return len(text)


def should_split_message(
    text: str,
    terminal_height: int = 24,
    terminal_width: int = 80,
    reserved_lines: int = 8,
) -> bool:
    """Split once the text fills the visible area and a safe point exists inside it."""
    if not text:
        return False

    available = max(terminal_height - reserved_lines, 10)
    if estimate_line_count(text, terminal_width) < available:
        return False

    point = find_last_safe_split_point(text)
    return 0 < point < len(text)


def get_accumulated_text(items: Iterable) -> str:
    """Concatenate the text of ``type == "text"`` stream items."""
    return "".join(item.text for item in items if item.type == "text" and item.text)


class StreamBuffer:
    """Accumulates streamed text and freezes safe prefixes as they fill the screen."""

    def __init__(self, terminal_height: int = 24, terminal_width: int = 80, reserved_lines: int = 8):
        self.terminal_height = terminal_height
        self.terminal_width = terminal_width
        self.reserved_lines = reserved_lines
        self._segments: List[str] = []
        self._pending = ""

    @property
    def committed_text(self) -> str:
        return "".join(self._segments)

    @property
    def pending_text(self) -> str:
        return self._pending

    @property
    def text(self) -> str:
        return self.committed_text + self._pending

    @property
    def segments(self) -> List[str]:
        return list(self._segments)

    def append(self, chunk: str) -> Optional[str]:
        """Add a chunk. Returns the newly frozen segment when a split happens."""
        self._pending += chunk
        if not should_split_message(self._pending, self.terminal_height, self.terminal_width, self.reserved_lines):
            return None

        point = find_last_safe_split_point(self._pending)
        frozen, self._pending = self._pending[:point], self._pending[point:]
        self._segments.append(frozen)
        return frozen
