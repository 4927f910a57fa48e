"""Loading optional TOML configuration files."""

from __future__ import annotations

import tomllib
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

T = TypeVar("T")


class ConfigFileError(Exception):
    """A configuration file could not be read or parsed."""

    def __init__(self, message: str, file_path: str) -> None:
        super().__init__(message)
        self.file_path = file_path


def load_config_file(config_file: str | Path | None, factory: Callable[..., T]) -> T:
    """Build a config with ``factory`` from a TOML file, or with its defaults if no file."""
    if config_file is None:
        return factory()

    path = str(config_file)
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as err:
        raise ConfigFileError(
            f"Error while loading configuration file {path}, error: {err}", path
        ) from err

    try:
        data = tomllib.loads(text)
        return factory(**data)
    except (tomllib.TOMLDecodeError, TypeError, ValueError) as err:
        raise ConfigFileError(
            f"Error while parsing configuration file {path}, error: {err}", path
        ) from err