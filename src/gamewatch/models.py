"""Data models for gamewatch."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol


class ProcessState(Enum):
    """Lifecycle states of a tracked process."""

    LAUNCHING = "launching"
    RUNNING = "running"
    EXITED = "exited"


class MatchTier(Enum):
    """Window matching strategies, strictest first."""

    EXACT = "exact"
    CONTAINS = "contains"
    BYTES = "bytes"
    ASCII = "ascii"
    SOLE = "sole"  # Only unclaimed window left for the focused game


class CaptureSource(Protocol):
    """Anything that can produce a bitmap of a window on demand."""

    def grab(self) -> Any:
        """Return the current pixels as a PIL image."""
        ...


@dataclass(slots=True)
class TrackedProcess:
    """A game process launched and supervised by gamewatch.

    Instances are owned by the registry; other components only read them.
    """

    id: str
    executable_path: str
    label: str
    start_time: float
    process_id: int | None = None
    window_titles: list[str] = field(default_factory=list)
    state: ProcessState = ProcessState.LAUNCHING
    launcher_path: str | None = None  # Player used for non-executable files

    @property
    def is_running(self) -> bool:
        """Check whether the process is in the RUNNING state."""
        return self.state is ProcessState.RUNNING


@dataclass(slots=True, frozen=True)
class WindowSnapshotEntry:
    """Immutable view of one on-screen window, valid for a single capture."""

    id: str
    title: str
    source: CaptureSource
    process_id: int | None = None


@dataclass(slots=True, frozen=True)
class MatchResult:
    """Outcome of matching one tracked process against a window snapshot."""

    window: WindowSnapshotEntry
    tier: MatchTier
    tied: int = 1  # Number of candidates that matched within the winning tier


@dataclass(slots=True, frozen=True)
class CaptureResult:
    """Result of a successful screenshot capture."""

    filepath: Path
    folder: str
    window_title: str
    game_id: str
    tier: MatchTier
