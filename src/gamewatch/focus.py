"""Determine which tracked game, if any, holds input focus."""

import logging
from dataclasses import dataclass
from typing import Collection, Sequence

from gamewatch.errors import OSQueryFailedError
from gamewatch.matcher import WindowMatcher
from gamewatch.models import MatchTier, TrackedProcess, WindowSnapshotEntry
from gamewatch.registry import TrackedProcessRegistry
from gamewatch.tree import ProcessTreeResolver
from gamewatch.windows import WindowSnapshotProvider

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class FocusInfo:
    """The tracked process that owns focus and the title of its focused window."""

    process: TrackedProcess
    focused_pid: int | None
    title: str | None
    degraded: bool = False  # Guessed from "only one game is running"


@dataclass(slots=True, frozen=True)
class FocusedWindow:
    """The focused tracked process and the snapshot window attributed to it."""

    process: TrackedProcess
    window: WindowSnapshotEntry | None
    tier: MatchTier | None


class FocusResolver:
    """Resolve focus through the process tree and match it to a window."""

    def __init__(
        self,
        windows: WindowSnapshotProvider,
        tree: ProcessTreeResolver,
        matcher: WindowMatcher | None = None,
    ) -> None:
        self._windows = windows
        self._tree = tree
        self._matcher = matcher or WindowMatcher()

    async def resolve_focus(self, registry: TrackedProcessRegistry) -> FocusInfo | None:
        """
        Find the tracked process that owns the focused window.

        The focused window's title comes from a direct OS query rather than the
        cached titles, which may be stale. When the focused PID cannot be read
        at all, fall back to the only running game, if there is exactly one.
        """
        try:
            pid = await self._windows.focused_process_id()
        except OSQueryFailedError as exc:
            logger.info("Focus query failed (%s), falling back to the only running game", exc)
            return self._degraded(registry)

        owner = await self._tree.resolve_owner(pid, registry)
        if owner is None:
            logger.debug("Focused PID %d does not belong to a tracked game", pid)
            return None

        try:
            title = await self._windows.main_window_title(pid)
        except OSQueryFailedError as exc:
            logger.info("Could not read the focused window title of PID %d: %s", pid, exc)
            title = None
        return FocusInfo(process=owner, focused_pid=pid, title=title)

    async def focused_owner(
        self,
        registry: TrackedProcessRegistry,
        candidates: Sequence[WindowSnapshotEntry],
        exclude_ids: Collection[str] = frozenset(),
    ) -> FocusedWindow | None:
        """Return the focused game and its window among ``candidates``."""
        info = await self.resolve_focus(registry)
        if info is None:
            return None
        extra = [info.title] if info.title else []
        result = self._matcher.match(info.process, candidates, exclude_ids, extra_titles=extra)
        if result is None:
            return FocusedWindow(process=info.process, window=None, tier=None)
        return FocusedWindow(process=info.process, window=result.window, tier=result.tier)

    def _degraded(self, registry: TrackedProcessRegistry) -> FocusInfo | None:
        running = registry.running()
        if len(running) != 1:
            return None
        return FocusInfo(process=running[0], focused_pid=None, title=None, degraded=True)
