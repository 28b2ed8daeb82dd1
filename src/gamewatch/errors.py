"""Error taxonomy for gamewatch.

Every error carries a human-readable message suitable for showing to the user.
"""


class GameWatchError(Exception):
    """Base class for all gamewatch errors."""


class NotFoundError(GameWatchError):
    """An executable or launcher path does not exist."""


class NotRunningError(GameWatchError):
    """The requested game is not currently tracked."""


class AlreadyRunningError(GameWatchError):
    """A game with the same id is already tracked."""


class NoRunningProcessError(GameWatchError):
    """A capture was requested while no game is running."""


class AmbiguousTargetError(GameWatchError):
    """A capture could not decide which game window to screenshot."""


class OSQueryFailedError(GameWatchError):
    """A query against the operating system failed."""


class SpawnFailedError(OSQueryFailedError):
    """The operating system refused to start a process."""


class EncodeFailedError(GameWatchError):
    """A window bitmap could not be grabbed or encoded."""


class WriteFailedError(GameWatchError):
    """An encoded screenshot could not be written to disk."""


class ConfigError(GameWatchError):
    """The configuration file is invalid."""
