"""Identity-addressed screenshot folders.

A game's folder is named ``{id}_{label}`` but is always looked up by the
``{id}_`` prefix, so renaming a game does not orphan its screenshots.
"""

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*]')


def sanitize(name: str) -> str:
    """Replace characters that are invalid in file names and trim whitespace."""
    return _UNSAFE_CHARS.sub("_", name).strip()


class FolderResolver:
    """Locate, rename or create the screenshot folder of a game."""

    def find(self, game_id: str, base_dir: Path) -> Path | None:
        """Return the existing folder for ``game_id`` without creating anything."""
        base_dir = Path(base_dir)
        if not base_dir.is_dir():
            return None
        prefix = f"{sanitize(game_id)}_"
        for entry in sorted(base_dir.iterdir()):
            if entry.is_dir() and entry.name.startswith(prefix):
                return entry
        return None

    def resolve(self, game_id: str, label: str, base_dir: Path) -> Path:
        """
        Return the folder for ``game_id``, renaming it to the current label.

        Rename failures are logged and the existing folder is used as is.
        """
        base_dir = Path(base_dir)
        expected = base_dir / f"{sanitize(game_id)}_{sanitize(label)}"
        if expected.is_dir():
            return expected

        existing = self.find(game_id, base_dir)
        if existing is None:
            expected.mkdir(parents=True, exist_ok=True)
            logger.info("Created screenshot folder %s", expected)
            return expected

        try:
            existing.rename(expected)
        except OSError as exc:
            logger.warning("Could not rename %s to %s: %s", existing.name, expected.name, exc)
            return existing
        logger.info("Renamed screenshot folder %s -> %s", existing.name, expected.name)
        return expected
