"""Process collaborators: spawning, signalling and process-tree queries.

The registry and the tree resolver only talk to the ``ProcessBackend`` and
``ProcessHandle`` protocols, so tests can substitute in-memory doubles.
"""

import asyncio
import logging
import subprocess
import sys
from enum import Enum
from typing import Protocol, Sequence

import psutil

from gamewatch.errors import OSQueryFailedError, SpawnFailedError

logger = logging.getLogger(__name__)


class KillLevel(Enum):
    """How hard to ask a process to stop."""

    GRACEFUL = "graceful"  # SIGTERM / WM_CLOSE equivalent
    FORCE = "force"  # SIGKILL / TerminateProcess


class ProcessHandle(Protocol):
    """Awaitable handle on a spawned process."""

    @property
    def pid(self) -> int: ...

    @property
    def returncode(self) -> int | None: ...

    async def wait(self, timeout: float | None = None) -> int | None:
        """Wait for exit; return the exit code, or None if the timeout expired."""
        ...

    def kill(self, level: KillLevel) -> None: ...


class ProcessBackend(Protocol):
    """Operating-system process operations used by gamewatch."""

    async def spawn(self, argv: Sequence[str], cwd: str | None = None) -> ProcessHandle: ...

    async def parent_process_id(self, pid: int) -> int: ...

    async def kill_tree(self, pid: int) -> int: ...

    async def exists(self, pid: int) -> bool: ...


class AsyncioProcessHandle:
    """ProcessHandle backed by ``asyncio.subprocess.Process``."""

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self._process = process

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    async def wait(self, timeout: float | None = None) -> int | None:
        try:
            return await asyncio.wait_for(self._process.wait(), timeout)
        except asyncio.TimeoutError:
            return None

    def kill(self, level: KillLevel) -> None:
        if self._process.returncode is not None:
            return
        try:
            if level is KillLevel.FORCE:
                self._process.kill()
            else:
                self._process.terminate()
        except ProcessLookupError:
            # Exited between the returncode check and the signal
            pass


def _detach_options() -> dict:
    """Keyword arguments that detach a child from our console and session."""
    if sys.platform == "win32":
        flags = subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
        return {"creationflags": flags}
    return {"start_new_session": True}


class PsutilProcessBackend:
    """
    ProcessBackend using asyncio subprocesses and psutil.

    psutil calls are blocking, so they run in the default thread pool.
    """

    async def spawn(self, argv: Sequence[str], cwd: str | None = None) -> AsyncioProcessHandle:
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                **_detach_options(),
            )
        except OSError as exc:
            raise SpawnFailedError(f"Cannot start {argv[0]}: {exc}") from exc
        logger.debug("Spawned %s as PID %d", argv[0], process.pid)
        return AsyncioProcessHandle(process)

    async def parent_process_id(self, pid: int) -> int:
        def _ppid() -> int:
            return psutil.Process(pid).ppid()

        try:
            return await asyncio.to_thread(_ppid)
        except psutil.Error as exc:
            raise OSQueryFailedError(f"Cannot read parent of PID {pid}: {exc}") from exc

    async def kill_tree(self, pid: int) -> int:
        """Force-kill a process and all of its descendants; return how many died."""

        def _kill() -> int:
            try:
                root = psutil.Process(pid)
                victims = root.children(recursive=True) + [root]
            except psutil.NoSuchProcess:
                return 0
            except psutil.AccessDenied as exc:
                raise OSQueryFailedError(f"Cannot inspect PID {pid}: {exc}") from exc

            killed = 0
            for proc in victims:
                try:
                    proc.kill()
                    killed += 1
                except psutil.NoSuchProcess:
                    continue
            return killed

        try:
            return await asyncio.to_thread(_kill)
        except psutil.AccessDenied as exc:
            raise OSQueryFailedError(f"Cannot kill PID {pid}: {exc}") from exc

    async def exists(self, pid: int) -> bool:
        def _alive() -> bool:
            try:
                return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
            except (psutil.NoSuchProcess, psutil.ZombieProcess):
                return False
            except psutil.AccessDenied:
                # Someone else's process still occupies the PID
                return True

        return await asyncio.to_thread(_alive)
