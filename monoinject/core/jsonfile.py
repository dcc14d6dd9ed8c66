"""JSON and text file helpers shared by every component."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from monoinject.exceptions import InvalidConfigurationError, NotFoundError

log = structlog.get_logger("monoinject.core")

_MISSING = object()


def load_text(path: Path) -> str:
    """Read a file as text, raising NotFoundError when it does not exist."""
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise NotFoundError(f"File not found: {path}") from None


def load_text_or_default(path: Path, default: str = "") -> str:
    if not path.is_file():
        return default
    return load_text(path)


def load_json(path: Path) -> Any:
    """Read and parse a JSON file.

    Raises:
        NotFoundError: the file does not exist.
        InvalidConfigurationError: the file is not valid JSON.
    """
    text = load_text(path)
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        log.error("json.parse_failed", path=str(path), error=str(e))
        raise InvalidConfigurationError(f"Unable to parse {path}: {e}") from e


def load_json_or_default(path: Path, default: Any = _MISSING) -> Any:
    """Like :func:`load_json` but returns *default* (``{}`` if omitted) for a missing file."""
    if not path.is_file():
        return {} if default is _MISSING else default
    return load_json(path)


def dump_json(data: Any) -> str:
    return json.dumps(data, indent=4) + "\n"


def write_json(path: Path, data: Any) -> None:
    path.write_text(dump_json(data), encoding="utf-8")


def sort_keys(mapping: dict[str, Any] | None) -> dict[str, Any] | None:
    """Return a copy of *mapping* with keys in lexicographic order."""
    if mapping is None:
        return None
    return {k: mapping[k] for k in sorted(mapping)}
