"""gamewatch - Textual front-end and command line entry point."""

import argparse
import hashlib
import logging
import time
from dataclasses import dataclass
from pathlib import Path

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from gamewatch.capture import ScreenshotCapture
from gamewatch.config import GameWatchConfig, load_config
from gamewatch.errors import GameWatchError
from gamewatch.focus import FocusResolver
from gamewatch.log_config import setup_logging
from gamewatch.models import TrackedProcess
from gamewatch.processes import PsutilProcessBackend
from gamewatch.registry import ProcessEnded, TrackedProcessRegistry
from gamewatch.tree import ProcessTreeResolver
from gamewatch.windows import DesktopWindowProvider

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class GameSpec:
    """A game to launch, as given on the command line."""

    game_id: str
    label: str
    path: Path


def parse_game_arg(text: str) -> GameSpec:
    """
    Parse ``LABEL=PATH`` or ``PATH``.

    The id is derived from the resolved path so that it stays the same across
    runs and label changes.
    """
    label, sep, path_text = text.partition("=")
    if not sep:
        path_text, label = text, ""
    path = Path(path_text).expanduser().resolve()
    label = label.strip() or path.stem
    digest = hashlib.sha1(str(path).encode("utf-8")).hexdigest()[:8]
    return GameSpec(game_id=digest, label=label, path=path)


def format_duration(seconds: float) -> str:
    """Format a play time as H:MM:SS."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"


def build_services(config: GameWatchConfig) -> tuple[TrackedProcessRegistry, ScreenshotCapture]:
    """Wire the registry and capture engine to the real OS backends."""
    backend = PsutilProcessBackend()
    windows = DesktopWindowProvider()
    registry = TrackedProcessRegistry(backend, windows, config)
    tree = ProcessTreeResolver(backend, config.tree_walk)
    capture = ScreenshotCapture(registry, windows, FocusResolver(windows, tree), config=config)
    return registry, capture


class GameTable(Container):
    """Container for the table of tracked games."""

    DEFAULT_CSS = """
    GameTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize GameTable."""
        super().__init__(*args, **kwargs)
        self._current_ids: set[str] = set()

    def compose(self) -> ComposeResult:
        """Compose the game table."""
        yield DataTable(id="game-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#game-table", DataTable)
        table.cursor_type = "row"

        table.add_column("ID", key="id", width=10)
        table.add_column("GAME", key="label", width=24)
        table.add_column("PID", key="pid", width=8)
        table.add_column("STATE", key="state", width=10)
        table.add_column("TIME", key="time", width=10)
        table.add_column("WINDOW", key="window")

    @property
    def selected_id(self) -> str | None:
        """Id of the game under the cursor, if any."""
        table = self.query_one("#game-table", DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return row_key.value

    def update_games(self, games: list[TrackedProcess], now: float) -> None:
        """Add, update and remove rows to mirror the registry."""
        table = self.query_one("#game-table", DataTable)
        new_ids = {game.id for game in games}

        for game_id in self._current_ids - new_ids:
            table.remove_row(game_id)

        for game in games:
            cells = self._cells(game, now)
            if game.id in self._current_ids:
                for key, value in cells.items():
                    table.update_cell(game.id, key, value)
            else:
                table.add_row(*cells.values(), key=game.id)

        self._current_ids = new_ids

    @staticmethod
    def _cells(game: TrackedProcess, now: float) -> dict[str, str]:
        return {
            "id": game.id[:10],
            "label": game.label[:24],
            "pid": str(game.process_id or "-"),
            "state": game.state.value,
            "time": format_duration(now - game.start_time),
            "window": game.window_titles[0] if game.window_titles else "",
        }


class GameWatchApp(App):
    """Main gamewatch application."""

    TITLE = "gamewatch"
    SUB_TITLE = "Game Launcher & Screenshots"

    CSS = """
    Screen {
        layout: vertical;
    }

    #status {
        dock: top;
        height: 1;
        padding: 0 1;
        background: $surface;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("s", "screenshot", "Screenshot"),
        ("t", "terminate", "Terminate"),
        ("m", "minimize", "Minimize all"),
        ("w", "windows", "Windows"),
        ("r", "refresh_titles", "Refresh titles"),
        ("f", "folder", "Folder"),
    ]

    def __init__(
        self,
        registry: TrackedProcessRegistry | None = None,
        capture: ScreenshotCapture | None = None,
        games: list[GameSpec] | None = None,
        config: GameWatchConfig | None = None,
    ) -> None:
        """Initialize the GameWatchApp."""
        super().__init__()
        self._config = config or GameWatchConfig()
        if registry is None or capture is None:
            registry, capture = build_services(self._config)
        self._process_registry = registry
        self._capture = capture
        self._pending_games = list(games or [])
        self.status_text = "No screenshots yet"
        self._process_registry.on_process_ended(self._on_process_ended)

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield Static(self.status_text, id="status")
        yield GameTable()
        yield Footer()

    async def on_mount(self) -> None:
        """Launch the requested games and start refreshing the table."""
        for spec in self._pending_games:
            try:
                await self._process_registry.launch(spec.path, spec.label, spec.game_id)
            except GameWatchError as exc:
                self.notify(str(exc), title=f"Cannot launch {spec.label}", severity="error")
        self._pending_games.clear()
        self._refresh_games()
        self.set_interval(1.0, self._refresh_games)

    def _refresh_games(self) -> None:
        self.query_one(GameTable).update_games(self._process_registry.all(), time.time())

    def _set_status(self, text: str) -> None:
        self.status_text = text
        self.query_one("#status", Static).update(text)

    def _on_process_ended(self, event: ProcessEnded) -> None:
        self.notify(f"Played for {format_duration(event.play_time_seconds)}", title="Game ended")
        self._refresh_games()

    async def action_screenshot(self) -> None:
        """Capture the focused game's window."""
        try:
            result = await self._capture.capture()
        except GameWatchError as exc:
            self.notify(str(exc), title="Screenshot failed", severity="error")
            return
        self._set_status(f"Saved {result.filepath}")
        self.notify(f"{result.window_title}\n{result.folder}", title="Screenshot saved")

    async def action_terminate(self) -> None:
        """Stop the game under the cursor."""
        game_id = self.query_one(GameTable).selected_id
        if game_id is None:
            self.notify("No game selected", severity="warning")
            return
        try:
            await self._process_registry.terminate(game_id)
        except GameWatchError as exc:
            self.notify(str(exc), title="Terminate failed", severity="error")
        self._refresh_games()

    async def action_minimize(self) -> None:
        """Minimise every running game's windows."""
        count = await self._process_registry.minimize_all()
        self.notify(f"Minimized {count} game(s)")

    async def action_windows(self) -> None:
        """Show the windows a screenshot could be taken of."""
        try:
            windows = await self._capture.available_windows()
            active = await self._capture.active_window()
        except GameWatchError as exc:
            self.notify(str(exc), title="Cannot list windows", severity="error")
            return
        active_title = active.title if active else "none"
        self._set_status(f"{len(windows)} window(s), active: {active_title}")
        if windows:
            self.notify("\n".join(w.title for w in windows), title="Windows")

    async def action_refresh_titles(self) -> None:
        """Re-read the selected game's window titles from the OS."""
        game_id = self.query_one(GameTable).selected_id
        if game_id is None:
            self.notify("No game selected", severity="warning")
            return
        try:
            titles = await self._process_registry.refresh_window_titles(game_id)
        except GameWatchError as exc:
            self.notify(str(exc), title="Refresh failed", severity="error")
            return
        self._set_status(f"{len(titles)} title(s): {', '.join(titles)}")
        self._refresh_games()

    async def action_folder(self) -> None:
        """Show where the selected game's screenshots are saved."""
        game_id = self.query_one(GameTable).selected_id
        if game_id is None:
            self.notify("No game selected", severity="warning")
            return
        folder = await self._capture.screenshot_folder(game_id)
        if folder is None:
            self._set_status("No screenshots yet")
        else:
            self._set_status(f"Screenshots in {folder}")

    async def action_quit(self) -> None:
        """Handle quit action with graceful cleanup. Games keep running."""
        await self._process_registry.shutdown()
        self.exit()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gamewatch",
        description="Launch games, track their windows and take screenshots.",
    )
    parser.add_argument("games", nargs="*", metavar="GAME", help="PATH or LABEL=PATH to launch")
    parser.add_argument("--config", type=Path, help="config.yaml, or a directory holding one")
    parser.add_argument("--env", help="merge config_<ENV>.yaml over the base config")
    parser.add_argument("--log-file", type=Path, help="write a debug log to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="log at DEBUG level")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the gamewatch application."""
    args = build_parser().parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_file=args.log_file,
        console=False,
    )
    config = load_config(args.config, args.env) if args.config else GameWatchConfig()
    games = [parse_game_arg(text) for text in args.games]
    app = GameWatchApp(games=games, config=config)
    app.run()


if __name__ == "__main__":
    main()
