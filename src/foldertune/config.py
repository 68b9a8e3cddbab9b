"""Load foldertune configuration from a TOML file."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "foldertune.toml"


@dataclass
class Config:
    """Foldertune configuration."""

    server_url: str = "http://localhost:8080"
    timeout: float = 10.0
    start_dir: str = ""
    volume: float = 1.0


def _number(table: dict, key: str, default: float) -> float:
    value = table.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' must be a number, got {value!r}")
    return float(value)


def load_config(path: Path | str) -> Config:
    """Load configuration from a TOML file.

    Returns a :class:`Config` with defaults for any missing keys.
    If the file does not exist, returns a default :class:`Config`.
    Raises ``ValueError`` if a numeric key holds a non-number.
    """
    path = Path(path)
    if not path.is_file():
        return Config()

    with open(path, "rb") as f:
        data = tomllib.load(f)

    playback = data.get("playback", {})

    return Config(
        server_url=data.get("server-url", Config.server_url),
        timeout=_number(data, "timeout", Config.timeout),
        start_dir=data.get("start-dir", Config.start_dir),
        volume=_number(playback, "volume", Config.volume),
    )
