"""Single-fire cancellation shared by every suspension point of a turn."""

import asyncio
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class OperationCancelled(Exception):
    """Raised when a cancellation token fires (or a timeout elapses) during an await."""

    def __init__(self, timed_out: bool = False):
        super().__init__("Operation timed out" if timed_out else "Operation cancelled")
        self.timed_out = timed_out


class CancellationToken:
    """Cooperative cancellation flag.

    ``cancel()`` may be called any number of times; only the first call has an effect.
    """

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled()


async def run_cancellable(
    aw: Awaitable[T],
    cancel: Optional[CancellationToken] = None,
    timeout: Optional[float] = None,
) -> T:
    """Await ``aw`` unless ``cancel`` fires or ``timeout`` elapses first.

    The losing awaitable is cancelled. Raises OperationCancelled in both cases.
    """
    task = asyncio.ensure_future(aw)
    if cancel is None and timeout is None:
        return await task

    waiters = {task}
    cancel_task = None
    if cancel is not None:
        if cancel.cancelled:
            task.cancel()
            raise OperationCancelled()
        cancel_task = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_task)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_task is not None and not cancel_task.done():
            cancel_task.cancel()

    if task in done:
        return task.result()

    task.cancel()
    # the abandoned awaitable's outcome is irrelevant once cancelled
    try:
        await task
    except (asyncio.CancelledError, Exception):
        pass
    raise OperationCancelled(timed_out=not done)
