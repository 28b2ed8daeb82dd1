"""Screenshot capture of the focused (or only) running game."""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Sequence

from gamewatch.config import GameWatchConfig, ScreenshotSettings
from gamewatch.encoding import encode
from gamewatch.errors import AmbiguousTargetError, NoRunningProcessError, WriteFailedError
from gamewatch.focus import FocusInfo, FocusResolver
from gamewatch.folders import FolderResolver, sanitize
from gamewatch.matcher import WindowMatcher
from gamewatch.models import CaptureResult, MatchResult, TrackedProcess, WindowSnapshotEntry
from gamewatch.registry import TrackedProcessRegistry
from gamewatch.windows import WindowSnapshotProvider, filter_system_windows

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


def _write_new_file(path: Path, data: bytes) -> None:
    # "x" refuses to overwrite a capture taken within the same second
    with open(path, "xb") as f:
        f.write(data)


class ScreenshotCapture:
    """
    Capture a screenshot of a running game's window.

    Each running game is matched to at most one window of the snapshot, the
    focused game first, so two games can never claim the same window. The
    focused game wins; without focus information a capture only proceeds when exactly
    one game has a window. Captures are serialised by a lock.
    """

    def __init__(
        self,
        registry: TrackedProcessRegistry,
        windows: WindowSnapshotProvider,
        focus: FocusResolver,
        matcher: WindowMatcher | None = None,
        folders: FolderResolver | None = None,
        config: GameWatchConfig | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._registry = registry
        self._windows = windows
        self._focus = focus
        self._matcher = matcher or WindowMatcher()
        self._folders = folders or FolderResolver()
        self._config = config or GameWatchConfig()
        self._now = now
        self._lock = asyncio.Lock()

    async def capture(self, settings: ScreenshotSettings | None = None) -> CaptureResult:
        """
        Screenshot the focused game, or the only game with a window.

        Args:
            settings: Output directory, format and quality; defaults to the
                configured screenshot settings.

        Raises:
            NoRunningProcessError: No game is running.
            AmbiguousTargetError: No window, or several games and no focus.
            OSQueryFailedError: The window list could not be read.
            EncodeFailedError: The window bitmap could not be grabbed or encoded.
            WriteFailedError: The folder or file could not be written.
        """
        async with self._lock:
            return await self._capture(settings or self._config.screenshots)

    async def available_windows(self) -> list[WindowSnapshotEntry]:
        """Return the current windows minus system and browser windows."""
        windows = await self._windows.list_windows()
        return self._filter(windows, self._config.screenshots)

    async def active_window(self) -> WindowSnapshotEntry | None:
        """Return the first non-system window in enumeration order."""
        windows = await self.available_windows()
        return windows[0] if windows else None

    async def screenshot_folder(
        self, game_id: str, settings: ScreenshotSettings | None = None
    ) -> Path | None:
        """Return the game's existing screenshot folder without creating one."""
        settings = settings or self._config.screenshots
        return await asyncio.to_thread(self._folders.find, game_id, settings.directory)

    async def _capture(self, settings: ScreenshotSettings) -> CaptureResult:
        running = self._registry.running()
        if not running:
            raise NoRunningProcessError("No game is running")

        candidates = self._filter(await self._windows.list_windows(), settings)
        logger.debug("Capture candidates: %s", [w.title for w in candidates])

        focus = await self._focus.resolve_focus(self._registry)
        matches = self._match_all(running, candidates, focus)
        process, result = self._select_target(running, matches, focus)
        window = result.window
        logger.info(
            "Capturing %r for %s (tier %s)", window.title, process.label, result.tier.value
        )

        try:
            folder = await asyncio.to_thread(
                self._folders.resolve, process.id, process.label, settings.directory
            )
        except OSError as exc:
            raise WriteFailedError(f"Cannot create screenshot folder: {exc}") from exc

        data = await asyncio.to_thread(encode, window.source, settings.format, settings.quality)

        base_name = sanitize(process.label or window.title) or "Screenshot"
        filename = f"{base_name}_{self._now().strftime(TIMESTAMP_FORMAT)}.{settings.extension}"
        filepath = folder / filename
        try:
            await asyncio.to_thread(_write_new_file, filepath, data)
        except OSError as exc:
            raise WriteFailedError(f"Cannot save screenshot {filepath}: {exc}") from exc

        logger.info("Screenshot saved: %s", filepath)
        return CaptureResult(
            filepath=filepath,
            folder=folder.name,
            window_title=window.title,
            game_id=process.id,
            tier=result.tier,
        )

    def _filter(
        self, windows: Sequence[WindowSnapshotEntry], settings: ScreenshotSettings
    ) -> list[WindowSnapshotEntry]:
        return filter_system_windows(windows, self._config.app_name, settings.extra_denylist)

    def _match_all(
        self,
        running: list[TrackedProcess],
        candidates: list[WindowSnapshotEntry],
        focus: FocusInfo | None,
    ) -> dict[str, MatchResult]:
        """
        Match every running game, never reusing a window.

        The focused game is matched first so that a looser title of an
        earlier launched game cannot claim the window the user is looking at.
        The others follow in registry order.
        """
        claimed: set[str] = set()
        matches: dict[str, MatchResult] = {}
        focused_id = focus.process.id if focus else None
        ordered = sorted(running, key=lambda p: p.id != focused_id)

        for process in ordered:
            extra = [focus.title] if process.id == focused_id and focus.title else []
            result = self._matcher.match(process, candidates, claimed, extra_titles=extra)
            if result is not None:
                matches[process.id] = result
                claimed.add(result.window.id)

        # The focused game may take the last unclaimed window
        if focused_id is not None and focused_id not in matches:
            focused = next((p for p in running if p.id == focused_id), None)
            if focused is not None:
                result = self._matcher.match(focused, candidates, claimed, owns_focus=True)
                if result is not None:
                    matches[focused_id] = result

        return matches

    def _select_target(
        self,
        running: list[TrackedProcess],
        matches: dict[str, MatchResult],
        focus: FocusInfo | None,
    ) -> tuple[TrackedProcess, MatchResult]:
        by_id = {p.id: p for p in running}
        if focus is not None and focus.process.id in matches:
            return by_id[focus.process.id], matches[focus.process.id]
        if len(matches) == 1:
            game_id, result = next(iter(matches.items()))
            return by_id[game_id], result
        if not matches:
            raise AmbiguousTargetError("No window belongs to a running game")
        labels = ", ".join(by_id[game_id].label for game_id in matches)
        raise AmbiguousTargetError(
            f"Several games have windows ({labels}) and none of them has focus"
        )
