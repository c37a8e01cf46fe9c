"""Child-process lifecycle for CLI-backed providers.

Each child is started in its own process group so that cancelling kills the whole
tree, including anything the backend CLI spawned itself.
"""

import asyncio
import codecs
import os
import signal
import subprocess
import sys
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Union

from galdr.providers.base import InvocationSpec
from galdr.utils.cancellation import CancellationToken, OperationCancelled, run_cancellable
from galdr.utils.logging import get_logger

logger = get_logger(__name__)

IS_WINDOWS = sys.platform == "win32"


@dataclass
class ProcessChunk:
    text: str


@dataclass
class ProcessExit:
    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    cancelled: bool = False
    timed_out: bool = False
    spawn_error: Optional[OSError] = None


ProcessItem = Union[ProcessChunk, ProcessExit]


def _spawn_kwargs() -> dict:
    if IS_WINDOWS:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


async def kill_process_tree(proc: asyncio.subprocess.Process) -> None:
    """Kill ``proc`` and all of its descendants, once.

    POSIX kills the process group; Windows uses ``taskkill /T`` and falls back to
    killing the direct child only if that fails.
    """
    if IS_WINDOWS:
        try:
            result = await asyncio.to_thread(
                subprocess.run,
                ["taskkill", "/F", "/T", "/PID", str(proc.pid)],
                capture_output=True,
            )
            killed = result.returncode == 0
        except OSError as e:
            logger.debug(f"taskkill failed for pid {proc.pid}: {e}")
            killed = False
        if not killed and proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        return

    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        # Group already gone
        pass
    except PermissionError:
        if proc.returncode is None:
            proc.kill()


class ProcessRunner:
    """Runs one invocation and streams its decoded stdout"""

    def __init__(self, timeout: Optional[float] = None, verbose: bool = False, read_size: int = 4096):
        self.timeout = timeout
        self.verbose = verbose
        self.read_size = read_size

    async def stream(
        self,
        spec: InvocationSpec,
        stdin_data: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> AsyncIterator[ProcessItem]:
        """Yield ProcessChunk items as output arrives, then exactly one ProcessExit.

        On cancellation or timeout the process tree is killed and partial output is
        discarded. Abandoning the iterator also kills the tree.
        """
        if self.verbose:
            logger.info(f"Spawning: {' '.join(spec.argv)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *spec.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **_spawn_kwargs(),
            )
        except OSError as e:
            logger.warning(f"Failed to spawn {spec.executable}: {e}")
            yield ProcessExit(returncode=None, spawn_error=e)
            return

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout if self.timeout else None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        stdout_parts = []
        stdin_task = asyncio.ensure_future(self._feed_stdin(proc, stdin_data))
        stderr_task = asyncio.ensure_future(proc.stderr.read())
        interrupted: Optional[OperationCancelled] = None

        try:
            try:
                while True:
                    data = await run_cancellable(proc.stdout.read(self.read_size), cancel, self._remaining(loop, deadline))
                    if not data:
                        break
                    text = decoder.decode(data)
                    if text:
                        stdout_parts.append(text)
                        yield ProcessChunk(text)

                tail = decoder.decode(b"", final=True)
                if tail:
                    stdout_parts.append(tail)
                    yield ProcessChunk(tail)

                returncode = await run_cancellable(proc.wait(), cancel, self._remaining(loop, deadline))
            except OperationCancelled as e:
                interrupted = e

            if interrupted is not None:
                logger.info(f"{'Timed out' if interrupted.timed_out else 'Cancelled'}: killing process tree of pid {proc.pid}")
                await kill_process_tree(proc)
                await proc.wait()
                yield ProcessExit(
                    returncode=proc.returncode,
                    cancelled=not interrupted.timed_out,
                    timed_out=interrupted.timed_out,
                )
                return

            stderr_bytes = await stderr_task
            stderr = stderr_bytes.decode("utf-8", errors="replace")
            if self.verbose:
                logger.info(f"{spec.executable} exited with code {returncode}")
            yield ProcessExit(returncode=returncode, stdout="".join(stdout_parts), stderr=stderr)
        finally:
            if proc.returncode is None:
                await kill_process_tree(proc)
                await proc.wait()
            for task in (stdin_task, stderr_task):
                if not task.done():
                    task.cancel()

    @staticmethod
    def _remaining(loop: asyncio.AbstractEventLoop, deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return max(deadline - loop.time(), 0)

    @staticmethod
    async def _feed_stdin(proc: asyncio.subprocess.Process, data: Optional[str]) -> None:
        try:
            if data:
                proc.stdin.write(data.encode("utf-8"))
                await proc.stdin.drain()
            proc.stdin.close()
        except (BrokenPipeError, ConnectionResetError):
            # Child exited without reading its input
            logger.debug(f"stdin closed early by pid {proc.pid}")
