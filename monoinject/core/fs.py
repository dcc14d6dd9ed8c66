"""Filesystem walking and repo-relative path helpers."""

from __future__ import annotations

import os
import posixpath
from collections.abc import Iterable, Iterator
from pathlib import Path


def walk_tree(root: Path, ignore: Iterable[str]) -> Iterator[tuple[str, bool]]:
    """Yield ``(relative_path, is_dir)`` for everything below *root*.

    Entries whose base name is in *ignore* are skipped together with their
    subtrees. Directories are yielded before their contents and siblings are
    visited in sorted order. Relative paths use ``/`` separators.
    """
    skip = set(ignore)
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in skip)
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else rel_dir + "/"
        for d in dirnames:
            yield prefix + d, True
        for f in sorted(filenames):
            if f not in skip:
                yield prefix + f, False


def join_paths(*parts: str) -> str:
    """Join repo-relative path segments with ``/`` and normalize the result."""
    joined = posixpath.join(*(p.replace("\\", "/") for p in parts if p))
    return posixpath.normpath(joined) if joined else ""


def package_dir_arg(value: str, packages_dir: str = "packages") -> str:
    """Map a bare package name (no slash) to ``packages/<name>``."""
    if "/" in value or "\\" in value:
        return value
    return f"{packages_dir}/{value}"
