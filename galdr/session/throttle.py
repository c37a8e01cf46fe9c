"""Rate-limited persistence of in-memory state."""

import asyncio
import time
from typing import Callable, Optional

from galdr.utils.logging import get_logger

logger = get_logger(__name__)


class ThrottledWriter:
    """Coalesces save requests so at most one physical write happens per interval.

    A request arriving inside the interval schedules a single trailing write on the
    running event loop. ``write_fn`` is called at write time, so the trailing write
    always persists the newest state. Without a running loop every request writes
    synchronously. A trailing write stranded by a loop that closed before it fired
    is performed by the next request or by ``flush()``.
    """

    def __init__(self, write_fn: Callable[[], None], interval: float = 0.5):
        self._write_fn = write_fn
        self.interval = interval
        self._last_write: Optional[float] = None
        self._pending: Optional[asyncio.TimerHandle] = None
        self._pending_loop: Optional[asyncio.AbstractEventLoop] = None
        self.write_count = 0

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending_loop.is_closed()

    def request(self) -> None:
        """Ask for the current state to be persisted, subject to throttling."""
        if self._pending is not None:
            if not self._pending_loop.is_closed():
                return
            # the loop that owned the trailing write closed before it fired
            self._clear_pending()
            self._write()
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write()
            return

        now = time.monotonic()
        if self._last_write is None or now - self._last_write >= self.interval:
            self._write()
            return

        delay = self.interval - (now - self._last_write)
        self._pending = loop.call_later(delay, self._trailing_write)
        self._pending_loop = loop

    def flush(self) -> None:
        """Write any pending state immediately."""
        if self._pending is None:
            return
        self._pending.cancel()
        self._clear_pending()
        self._write()

    def _clear_pending(self) -> None:
        self._pending = None
        self._pending_loop = None

    def _trailing_write(self) -> None:
        self._clear_pending()
        self._write()

    def _write(self) -> None:
        self._last_write = time.monotonic()
        try:
            self._write_fn()
            self.write_count += 1
        except OSError as e:
            logger.error(f"Failed to persist session state: {e}")
