"""
Game process supervisor.

Keeps at most one game process alive. Replacing it always signals the old
process and awaits its exit before the new one starts; exits are observed by
a watch task, never by blocking the event loop.
"""

import asyncio
import contextlib
import logging
import signal
from typing import Awaitable, Callable

from config import CHILD_KILL_TIMEOUT
from errors import SpawnError
from session.events import ProcessExited

logger = logging.getLogger(__name__)

Spawner = Callable[..., Awaitable[asyncio.subprocess.Process]]


class ProcessSupervisor:
    """Spawns, replaces and watches the single game process."""

    def __init__(
        self,
        on_exit: Callable[[ProcessExited], None],
        spawner: Spawner = asyncio.create_subprocess_exec,
        kill_timeout: float = CHILD_KILL_TIMEOUT,
    ) -> None:
        self._on_exit = on_exit
        self._spawner = spawner
        self._kill_timeout = kill_timeout
        self._process: asyncio.subprocess.Process | None = None
        self._watch_task: asyncio.Task | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def running(self) -> bool:
        return self._process is not None

    async def spawn(self, argv: list[str]) -> int:
        """Replace the current game process with argv. Returns the new pid."""
        await self.stop()

        logger.info(f"Launching {' '.join(argv)}")
        try:
            process = await self._spawner(*argv)
        except OSError as e:
            raise SpawnError(f"Cannot spawn child process {argv[0]}: {e}") from e

        self._process = process
        self._watch_task = asyncio.create_task(self._watch(process))
        logger.info(f"Child PID is {process.pid}")
        return process.pid

    async def stop(self) -> None:
        """Terminate the current game process and wait until it is reaped."""
        process = self._process
        if process is None:
            return

        self._process = None
        if self._watch_task:
            self._watch_task.cancel()
            self._watch_task = None

        if process.returncode is None:
            logger.info(f"Stopping child {process.pid}")
            with contextlib.suppress(ProcessLookupError):
                process.send_signal(signal.SIGINT)
            try:
                await asyncio.wait_for(process.wait(), timeout=self._kill_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Child {process.pid} ignored SIGINT, killing it")
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        logger.info(f"Child {process.pid} exited with {process.returncode}")

    def release(self, pid: int) -> bool:
        """Forget the tracked process if it is pid. False for stale pids."""
        if self._process is None or self._process.pid != pid:
            return False
        self._process = None
        self._watch_task = None
        return True

    async def _watch(self, process: asyncio.subprocess.Process) -> None:
        returncode = await process.wait()
        logger.info(f"Child {process.pid} exited with {returncode}")
        self._on_exit(ProcessExited(pid=process.pid, returncode=returncode))
