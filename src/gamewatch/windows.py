"""Window snapshot provider: enumerate on-screen windows, focus and titles.

On Windows the enumeration uses PyGetWindow plus pywin32 for process ids; on
X11 desktops it shells out to ``wmctrl`` and ``xdotool``. Pixels are grabbed
lazily with mss, only for the window that ends up being captured.
"""

import asyncio
import logging
import platform
import subprocess
from dataclasses import dataclass
from typing import Any, Iterable, Protocol, Sequence

import mss
from PIL import Image

from gamewatch.errors import OSQueryFailedError
from gamewatch.models import WindowSnapshotEntry

logger = logging.getLogger(__name__)

SYSTEM_WINDOW_SUBSTRINGS = (
    "desktop",
    "taskbar",
    "start menu",
    "electron",
    "chrome",
    "browser",
    "system",
    "windows",
    "notification",
    "通知",
    "新通知",
)


class WindowSnapshotProvider(Protocol):
    """Read-only view of the desktop's windows."""

    async def list_windows(self) -> list[WindowSnapshotEntry]: ...

    async def focused_process_id(self) -> int: ...

    async def main_window_title(self, pid: int) -> str | None: ...

    async def window_titles(self, pid: int) -> list[str]: ...

    async def minimize_windows(self, pid: int) -> bool: ...


def filter_system_windows(
    windows: Iterable[WindowSnapshotEntry],
    app_name: str = "",
    extra: Sequence[str] = (),
) -> list[WindowSnapshotEntry]:
    """Drop desktop chrome, browsers, notifications and our own window."""
    needles = [s.lower() for s in SYSTEM_WINDOW_SUBSTRINGS]
    needles.extend(s.lower() for s in extra if s)
    if app_name:
        needles.append(app_name.lower())
    kept = []
    for window in windows:
        title = window.title.lower()
        if any(needle in title for needle in needles):
            continue
        kept.append(window)
    return kept


@dataclass(slots=True, frozen=True)
class RegionSource:
    """Capture handle that grabs a screen rectangle with mss."""

    left: int
    top: int
    width: int
    height: int

    def grab(self) -> Image.Image:
        with mss.mss() as sct:
            shot = sct.grab(
                {"left": self.left, "top": self.top, "width": self.width, "height": self.height}
            )
        return Image.frombytes("RGB", shot.size, shot.bgra, "raw", "BGRX")


@dataclass(slots=True)
class _RawWindow:
    id: str
    title: str
    pid: int | None
    left: int
    top: int
    width: int
    height: int
    native: Any = None  # Platform object used for minimising


def _run(argv: list[str]) -> str:
    """Run a helper binary and return its stdout, decoded leniently."""
    try:
        result = subprocess.run(argv, capture_output=True, check=False, timeout=5)
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise OSQueryFailedError(f"{argv[0]} failed: {exc}") from exc
    if result.returncode != 0:
        raise OSQueryFailedError(f"{argv[0]} exited with {result.returncode}")
    # Titles from the window manager may not be valid UTF-8
    return result.stdout.decode("utf-8", errors="replace")


class DesktopWindowProvider:
    """WindowSnapshotProvider for Windows and X11 desktops."""

    def __init__(self, system: str | None = None) -> None:
        """
        Initialize the provider.

        Args:
            system: Platform name as returned by ``platform.system()``;
                detected automatically when omitted.
        """
        self._system = system or platform.system()

    async def list_windows(self) -> list[WindowSnapshotEntry]:
        raw = await asyncio.to_thread(self._enumerate)
        return [
            WindowSnapshotEntry(
                id=w.id,
                title=w.title,
                source=RegionSource(w.left, w.top, w.width, w.height),
                process_id=w.pid,
            )
            for w in raw
        ]

    async def focused_process_id(self) -> int:
        if self._system == "Windows":
            return await asyncio.to_thread(self._foreground_pid_win32)
        active_id = await asyncio.to_thread(self._active_window_id)
        for window in await asyncio.to_thread(self._enumerate):
            if window.id == active_id and window.pid is not None:
                return window.pid
        raise OSQueryFailedError("Focused window has no owning process")

    def _foreground_pid_win32(self) -> int:
        # The foreground window may be untitled, so it is not looked up in the enumeration
        try:
            import win32gui  # type: ignore
            import win32process  # type: ignore
        except ImportError as exc:
            raise OSQueryFailedError("pywin32 is required on Windows") from exc
        hwnd = win32gui.GetForegroundWindow()
        if not hwnd:
            raise OSQueryFailedError("No window has focus")
        _, pid = win32process.GetWindowThreadProcessId(hwnd)
        if not pid:
            raise OSQueryFailedError(f"Focused window {hwnd} has no owning process")
        return pid

    async def main_window_title(self, pid: int) -> str | None:
        windows = [w for w in await asyncio.to_thread(self._enumerate) if w.pid == pid]
        if not windows:
            return None
        try:
            active_id = await asyncio.to_thread(self._active_window_id)
        except OSQueryFailedError:
            active_id = None
        for window in windows:
            if window.id == active_id:
                return window.title
        return windows[0].title

    async def window_titles(self, pid: int) -> list[str]:
        windows = await asyncio.to_thread(self._enumerate)
        titles = {w.title.strip() for w in windows if w.pid == pid and w.title.strip()}
        return sorted(titles)

    async def minimize_windows(self, pid: int) -> bool:
        windows = [w for w in await asyncio.to_thread(self._enumerate) if w.pid == pid]
        if not windows:
            return False
        for window in windows:
            await asyncio.to_thread(self._minimize, window)
        return True

    # Platform primitives

    def _enumerate(self) -> list[_RawWindow]:
        if self._system == "Windows":
            return self._enumerate_win32()
        if self._system == "Linux":
            return self._enumerate_x11()
        raise OSQueryFailedError(f"Window enumeration is not supported on {self._system}")

    def _active_window_id(self) -> str | None:
        if self._system == "Windows":
            try:
                import win32gui  # type: ignore
            except ImportError as exc:
                raise OSQueryFailedError("pywin32 is required on Windows") from exc
            hwnd = win32gui.GetForegroundWindow()
            return str(hwnd) if hwnd else None
        if self._system == "Linux":
            out = _run(["xdotool", "getactivewindow"]).strip()
            return f"0x{int(out):08x}" if out else None
        raise OSQueryFailedError(f"Focus queries are not supported on {self._system}")

    def _minimize(self, window: _RawWindow) -> None:
        if self._system == "Windows":
            window.native.minimize()
        else:
            _run(["xdotool", "windowminimize", str(int(window.id, 16))])

    def _enumerate_win32(self) -> list[_RawWindow]:
        try:
            import pygetwindow  # type: ignore
            import win32gui  # type: ignore
            import win32process  # type: ignore
        except ImportError as exc:
            raise OSQueryFailedError("PyGetWindow and pywin32 are required on Windows") from exc

        windows: list[_RawWindow] = []
        try:
            for win in pygetwindow.getAllWindows():
                hwnd = win._hWnd
                title = win.title
                if not title or not win32gui.IsWindowVisible(hwnd):
                    continue
                if win.width <= 1 or win.height <= 1:
                    continue
                _, pid = win32process.GetWindowThreadProcessId(hwnd)
                windows.append(
                    _RawWindow(
                        id=str(hwnd),
                        title=title,
                        pid=pid or None,
                        left=int(win.left),
                        top=int(win.top),
                        width=int(win.width),
                        height=int(win.height),
                        native=win,
                    )
                )
        except Exception as exc:
            raise OSQueryFailedError(f"Cannot enumerate windows: {exc}") from exc
        return windows

    def _enumerate_x11(self) -> list[_RawWindow]:
        windows: list[_RawWindow] = []
        for line in _run(["wmctrl", "-lpG"]).splitlines():
            # id desktop pid x y w h host title...
            parts = line.split(None, 8)
            if len(parts) < 9:
                continue
            win_id, _desktop, pid, x, y, w, h, _host, title = parts
            try:
                width, height = int(w), int(h)
                window = _RawWindow(
                    id=f"0x{int(win_id, 16):08x}",
                    title=title,
                    pid=int(pid) or None,
                    left=int(x),
                    top=int(y),
                    width=width,
                    height=height,
                )
            except ValueError:
                logger.debug("Skipping unparsable wmctrl line: %r", line)
                continue
            if width > 1 and height > 1:
                windows.append(window)
        return windows
