"""Environment-file loading (.env style and JSON)."""

from __future__ import annotations

import json
import os
from pathlib import Path

import structlog
from dotenv import dotenv_values

from monoinject.core.jsonfile import load_json
from monoinject.exceptions import InvalidConfigurationError

log = structlog.get_logger("monoinject.env")


def env_file_arg(value: str) -> str:
    """Treat values without a period or slash as a name: ``local`` -> ``.env.local``."""
    if "." in value or "/" in value or "\\" in value:
        return value
    return f".env.{value}"


def load_env_file(path: Path) -> dict[str, str]:
    """Load one env file into ``os.environ`` and return the values that were set.

    Missing files are skipped. JSON files are flattened one level: object and
    array values are stored JSON-encoded, nulls are skipped.
    """
    if not path.is_file():
        return {}

    loaded: dict[str, str] = {}
    if path.suffix.lower() == ".json":
        data = load_json(path)
        if not isinstance(data, dict):
            raise InvalidConfigurationError(f"{path} must contain a JSON object of variables")
        for name, value in data.items():
            if value is None:
                continue
            if isinstance(value, (dict, list)):
                loaded[name] = json.dumps(value)
            elif isinstance(value, bool):
                loaded[name] = "true" if value else "false"
            else:
                loaded[name] = str(value)
    else:
        for name, value in dotenv_values(path).items():
            if value is not None:
                loaded[name] = value

    for name, value in loaded.items():
        log.debug("env.set", path=str(path), name=name)
        os.environ[name] = value
    return loaded


def load_env_files(root: Path, names: list[str] | tuple[str, ...]) -> dict[str, str]:
    loaded: dict[str, str] = {}
    for name in names:
        loaded.update(load_env_file(root / name))
    return loaded
