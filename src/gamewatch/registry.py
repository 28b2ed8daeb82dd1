"""Registry of game processes launched by gamewatch."""

import asyncio
import logging
import math
import threading
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from gamewatch.config import GameWatchConfig
from gamewatch.errors import (
    AlreadyRunningError,
    NotFoundError,
    NotRunningError,
    OSQueryFailedError,
)
from gamewatch.models import ProcessState, TrackedProcess
from gamewatch.processes import KillLevel, ProcessBackend, ProcessHandle
from gamewatch.windows import WindowSnapshotProvider

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProcessEnded:
    """Lifecycle event emitted once when a tracked process goes away."""

    id: str
    process_id: int
    executable_path: str
    play_time_seconds: int


EndedListener = Callable[[ProcessEnded], None]


class TrackedProcessRegistry:
    """
    Owns every process gamewatch launched.

    Entries are keyed by OS PID. All mutations happen under one lock so that
    readers never observe a half-registered or half-removed entry. Each entry
    has two background tasks: one that waits for the process to exit and one
    that polls for its window titles.
    """

    def __init__(
        self,
        backend: ProcessBackend,
        windows: WindowSnapshotProvider | None = None,
        config: GameWatchConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the registry.

        Args:
            backend: Spawns processes and answers process-tree queries.
            windows: Used to discover window titles after launch. Without it
                titles stay empty.
            config: Timeouts, polling schedule and file launchers.
            clock: Wall-clock source for start and play times.
        """
        self._backend = backend
        self._windows = windows
        self._config = config or GameWatchConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[int, TrackedProcess] = {}
        self._pids_by_id: dict[str, int] = {}
        self._handles: dict[str, ProcessHandle] = {}
        self._watchers: dict[str, asyncio.Task] = {}
        self._title_tasks: dict[str, asyncio.Task] = {}
        self._listeners: list[EndedListener] = []

    @property
    def backend(self) -> ProcessBackend:
        return self._backend

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, process_id: int) -> TrackedProcess | None:
        """Look up a tracked process by its OS PID."""
        with self._lock:
            return self._entries.get(process_id)

    def get_by_id(self, game_id: str) -> TrackedProcess | None:
        """Look up a tracked process by its logical id."""
        with self._lock:
            pid = self._pids_by_id.get(game_id)
            return self._entries.get(pid) if pid is not None else None

    def all(self) -> list[TrackedProcess]:
        """Return all tracked processes in launch order."""
        with self._lock:
            return list(self._entries.values())

    def running(self) -> list[TrackedProcess]:
        """Return tracked processes in the RUNNING state, in launch order."""
        return [entry for entry in self.all() if entry.is_running]

    def on_process_ended(self, listener: EndedListener) -> None:
        """Register a callback for ProcessEnded events."""
        self._listeners.append(listener)

    async def launch(
        self,
        executable_path: str | Path,
        label: str,
        game_id: str | None = None,
    ) -> TrackedProcess:
        """
        Launch a game detached and start tracking it.

        Returns as soon as the OS has assigned a PID; window titles are filled
        in later by a background task.

        Raises:
            NotFoundError: The executable (or its configured launcher) is missing.
            AlreadyRunningError: ``game_id`` is already tracked.
            SpawnFailedError: The OS refused to start the process.
        """
        path = Path(executable_path).expanduser().absolute()
        if not path.exists():
            raise NotFoundError(f"Game file does not exist: {path}")

        game_id = game_id or uuid.uuid4().hex
        with self._lock:
            if game_id in self._pids_by_id:
                raise AlreadyRunningError(f"Game {game_id!r} is already running")

        argv = [str(path)]
        launcher = self._config.launcher_for(path)
        if launcher is not None:
            # The child runs in the game's folder, so a relative launcher must be pinned here
            launcher = str(Path(launcher).expanduser().absolute())
            if not Path(launcher).exists():
                raise NotFoundError(f"Launcher for {path.suffix} files does not exist: {launcher}")
            argv = [launcher, str(path)]

        entry = TrackedProcess(
            id=game_id,
            executable_path=str(path),
            label=label,
            start_time=self._clock(),
            launcher_path=launcher,
        )
        logger.info("Launching %s (%s)", label, " ".join(argv))
        handle = await self._backend.spawn(argv, cwd=str(path.parent))

        with self._lock:
            if game_id in self._pids_by_id:
                # Lost a race with a concurrent launch of the same id
                handle.kill(KillLevel.FORCE)
                raise AlreadyRunningError(f"Game {game_id!r} is already running")
            entry.process_id = handle.pid
            entry.state = ProcessState.RUNNING
            self._entries[handle.pid] = entry
            self._pids_by_id[game_id] = handle.pid
            self._handles[game_id] = handle

        self._watchers[game_id] = asyncio.create_task(
            self._watch_exit(entry, handle), name=f"gamewatch-exit-{game_id}"
        )
        self._title_tasks[game_id] = asyncio.create_task(
            self._poll_window_titles(entry), name=f"gamewatch-titles-{game_id}"
        )
        logger.info("Game %s started with PID %d", label, handle.pid)
        return entry

    async def terminate(self, game_id: str) -> int:
        """
        Stop a game: graceful signal, then a forced kill after the grace period.

        Returns:
            Play time in whole seconds.

        Raises:
            NotRunningError: ``game_id`` is not tracked.
            OSQueryFailedError: The forced kill failed and the process survived.
        """
        with self._lock:
            pid = self._pids_by_id.get(game_id)
            entry = self._entries.get(pid) if pid is not None else None
            handle = self._handles.get(game_id)
        if entry is None or handle is None:
            raise NotRunningError(f"Game {game_id!r} is not running")

        # terminate() owns retirement from here on
        watcher = self._watchers.pop(game_id, None)
        if watcher is not None:
            watcher.cancel()

        grace = self._config.terminate_grace
        logger.info("Terminating %s (PID %d)", entry.label, pid)
        handle.kill(KillLevel.GRACEFUL)
        code = await handle.wait(grace)
        if code is None:
            logger.warning("PID %d ignored the stop request for %.1fs, killing it", pid, grace)
            try:
                await self._backend.kill_tree(pid)
            except OSQueryFailedError as exc:
                logger.warning("Killing the process tree of PID %d failed: %s", pid, exc)
            handle.kill(KillLevel.FORCE)
            code = await handle.wait(grace)
            if code is None:
                raise OSQueryFailedError(f"PID {pid} survived a forced kill")

        event = self._retire(entry)
        return event.play_time_seconds if event else self._play_time(entry)

    def add_window_titles(self, game_id: str, titles: Iterable[str]) -> list[str]:
        """Append newly discovered window titles, keeping order and uniqueness."""
        with self._lock:
            pid = self._pids_by_id.get(game_id)
            entry = self._entries.get(pid) if pid is not None else None
            if entry is None:
                raise NotRunningError(f"Game {game_id!r} is not running")
            for title in titles:
                title = title.strip()
                if title and title not in entry.window_titles:
                    entry.window_titles.append(title)
            return list(entry.window_titles)

    async def refresh_window_titles(self, game_id: str) -> list[str]:
        """Query the OS for the game's current window titles and record them."""
        entry = self.get_by_id(game_id)
        if entry is None or entry.process_id is None:
            raise NotRunningError(f"Game {game_id!r} is not running")
        if self._windows is None:
            return list(entry.window_titles)
        titles = await self._windows.window_titles(entry.process_id)
        return self.add_window_titles(game_id, titles)

    async def wait_for_titles(self, game_id: str) -> list[str]:
        """Wait until the post-launch title polling for a game has finished."""
        task = self._title_tasks.get(game_id)
        if task is not None:
            await asyncio.wait([task])
        entry = self.get_by_id(game_id)
        return list(entry.window_titles) if entry else []

    async def minimize_all(self) -> int:
        """Minimise every running game's windows; return how many games were minimised."""
        if self._windows is None:
            return 0
        minimized = 0
        for entry in self.running():
            pid = entry.process_id
            if not await self._backend.exists(pid):
                logger.info("PID %d is gone, dropping %s", pid, entry.label)
                self._retire(entry)
                continue
            try:
                if await self._windows.minimize_windows(pid):
                    minimized += 1
                else:
                    logger.info("%s has no visible window to minimise", entry.label)
            except OSQueryFailedError as exc:
                logger.warning("Minimising %s failed: %s", entry.label, exc)
        return minimized

    async def shutdown(self) -> None:
        """Cancel background tasks. Games keep running."""
        tasks = list(self._watchers.values()) + list(self._title_tasks.values())
        self._watchers.clear()
        self._title_tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _watch_exit(self, entry: TrackedProcess, handle: ProcessHandle) -> None:
        code = await handle.wait()
        logger.info("%s (PID %d) exited with code %s", entry.label, handle.pid, code)
        self._watchers.pop(entry.id, None)
        self._retire(entry)

    async def _poll_window_titles(self, entry: TrackedProcess) -> None:
        if self._windows is None:
            return
        polling = self._config.title_polling
        if polling.initial_delay:
            await asyncio.sleep(polling.initial_delay)

        for attempt in range(polling.attempts):
            if not entry.is_running:
                return
            try:
                titles = await self._windows.window_titles(entry.process_id)
            except OSQueryFailedError as exc:
                logger.debug("Window title query for PID %s failed: %s", entry.process_id, exc)
                titles = []
            if titles:
                try:
                    found = self.add_window_titles(entry.id, titles)
                except NotRunningError:
                    return
                logger.info("Window titles for %s: %s", entry.label, found)
                return
            if attempt < polling.attempts - 1:
                await asyncio.sleep(polling.backoff)

        logger.info("No window titles found for %s (window not created yet, or none)", entry.label)

    def _play_time(self, entry: TrackedProcess) -> int:
        return max(0, math.floor(self._clock() - entry.start_time))

    def _retire(self, entry: TrackedProcess) -> ProcessEnded | None:
        """Remove an entry and emit ProcessEnded; a no-op if already retired."""
        with self._lock:
            if self._entries.get(entry.process_id) is not entry:
                return None
            del self._entries[entry.process_id]
            self._pids_by_id.pop(entry.id, None)
            self._handles.pop(entry.id, None)
            entry.state = ProcessState.EXITED

        title_task = self._title_tasks.pop(entry.id, None)
        if title_task is not None and title_task is not asyncio.current_task():
            title_task.cancel()

        event = ProcessEnded(
            id=entry.id,
            process_id=entry.process_id,
            executable_path=entry.executable_path,
            play_time_seconds=self._play_time(entry),
        )
        logger.info("%s ended after %d s", entry.label, event.play_time_seconds)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("ProcessEnded listener %r failed", listener)
        return event
