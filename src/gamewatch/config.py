"""Configuration for gamewatch.

Settings are plain dataclasses with working defaults. ``load_config`` reads a
``config.yaml`` from a directory and merges an optional ``config_<env>.yaml``
over it.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from gamewatch.errors import ConfigError

SUPPORTED_FORMATS = ("png", "jpg", "jpeg", "webp")


@dataclass(slots=True)
class TitlePolling:
    """Bounded retry schedule used to discover window titles after launch."""

    initial_delay: float = 0.0
    attempts: int = 3
    backoff: float = 2.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ConfigError("title_polling.attempts must be at least 1")
        if self.initial_delay < 0 or self.backoff < 0:
            raise ConfigError("title_polling delays must not be negative")


@dataclass(slots=True)
class TreeWalk:
    """Limits for walking the parent-process chain."""

    max_hops: int = 10
    system_pid_floor: int = 100  # PIDs below this are treated as OS processes


@dataclass(slots=True)
class ScreenshotSettings:
    """Output settings for captured screenshots."""

    directory: Path = field(default_factory=lambda: Path.home() / "GameWatch" / "Screenshots")
    format: str = "png"
    quality: int = 90  # 1-100, ignored for PNG
    extra_denylist: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.directory = Path(self.directory).expanduser()
        self.format = self.format.lower()
        if self.format not in SUPPORTED_FORMATS:
            raise ConfigError(
                f"Unsupported screenshot format {self.format!r}, "
                f"expected one of {', '.join(SUPPORTED_FORMATS)}"
            )
        if not 1 <= self.quality <= 100:
            raise ConfigError(f"Screenshot quality must be between 1 and 100, got {self.quality}")

    @property
    def extension(self) -> str:
        """File extension for the configured format."""
        return self.format


@dataclass(slots=True)
class GameWatchConfig:
    """Top-level configuration."""

    app_name: str = "gamewatch"
    terminate_grace: float = 3.0
    title_polling: TitlePolling = field(default_factory=TitlePolling)
    tree_walk: TreeWalk = field(default_factory=TreeWalk)
    screenshots: ScreenshotSettings = field(default_factory=ScreenshotSettings)
    launchers: dict[str, str] = field(default_factory=dict)  # ".swf" -> player path

    def launcher_for(self, path: str | Path) -> str | None:
        """Return the configured player for a file, if its suffix has one."""
        suffix = Path(path).suffix.lower()
        if not suffix:
            return None
        for ext, player in self.launchers.items():
            if ext.lower() == suffix:
                return player
        return None


def _build(cls: type, data: dict[str, Any], section: str) -> Any:
    """Instantiate a config dataclass, rejecting unknown keys."""
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in {section}: {', '.join(sorted(unknown))}")
    try:
        return cls(**data)
    except TypeError as exc:
        raise ConfigError(f"Invalid {section} section: {exc}") from exc


def config_from_dict(data: dict[str, Any]) -> GameWatchConfig:
    """Build a GameWatchConfig from parsed YAML data."""
    data = dict(data or {})
    nested = {
        "title_polling": TitlePolling,
        "tree_walk": TreeWalk,
        "screenshots": ScreenshotSettings,
    }
    for key, cls in nested.items():
        if key in data:
            value = data[key] or {}
            if not isinstance(value, dict):
                raise ConfigError(f"Section {key} must be a mapping")
            data[key] = _build(cls, value, key)
    return _build(GameWatchConfig, data, "config")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


def load_config(config_path: Path, env: str | None = None) -> GameWatchConfig:
    """
    Load configuration from YAML.

    Args:
        config_path: Either a YAML file, or a directory holding ``config.yaml``.
        env: Optional environment name; ``config_<env>.yaml`` next to the base
            file is merged over it (top-level keys replace base keys).

    Returns:
        The parsed configuration.
    """
    config_path = Path(config_path)
    base_file = config_path / "config.yaml" if config_path.is_dir() else config_path
    if not base_file.exists():
        raise ConfigError(f"Config file not found: {base_file}")

    data = _read_yaml(base_file)
    if env:
        env_file = base_file.parent / f"config_{env}.yaml"
        if not env_file.exists():
            raise ConfigError(f"Config file not found: {env_file}")
        data.update(_read_yaml(env_file))

    return config_from_dict(data)
