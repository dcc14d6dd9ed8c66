"""Package scanner — walk a package tree and collect dependencies and assets."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from monoinject.core.fs import join_paths, walk_tree
from monoinject.exceptions import NotFoundError
from monoinject.models.package import PackageDescriptor
from monoinject.scanner.imports import alias_paths, find_dependencies
from monoinject.settings import RunSettings

log = structlog.get_logger("monoinject.scanner")

_SOURCE_RE = re.compile(r"\.(ts|tsx|js|jsx|mjs|cjs|mts|cts)$", re.IGNORECASE)
_TEST_RE = re.compile(r"\.(spec|test)\.", re.IGNORECASE)

ASSET_EXTENSIONS = {".md", ".png", ".jpg", ".jpeg", ".gif"}

BIN_DIR = "src/bin"


@dataclass
class ScanResult:
    """Dependencies and assets discovered in one package."""

    internal: list[str] = field(default_factory=list)
    external: list[str] = field(default_factory=list)
    assets: list[str] = field(default_factory=list)
    bin_dir: str | None = None


def is_source_file(name: str) -> bool:
    return bool(_SOURCE_RE.search(name)) and not _TEST_RE.search(name)


def scan_package(
    pkg: PackageDescriptor,
    root_package_json: Mapping[str, Any] | None,
    alias_config: Mapping[str, Any] | None,
    settings: RunSettings,
) -> ScanResult:
    """Scan the source tree of *pkg*.

    Asset paths and ``bin_dir`` are repo-relative (prefixed with ``pkg.dir``).
    All lists are sorted and free of duplicates.
    """
    root = settings.path(pkg.dir)
    if not root.is_dir():
        raise NotFoundError(f"Package directory not found: {pkg.dir}")

    aliases = alias_paths(alias_config)
    internal: set[str] = set()
    external: set[str] = set()
    assets: list[str] = []

    for rel, is_dir in walk_tree(root, settings.ignore):
        if is_dir:
            continue
        name = rel.rsplit("/", 1)[-1]
        if is_source_file(name):
            source = (root / rel).read_text(encoding="utf-8", errors="replace")
            found_internal, found_external = find_dependencies(
                source, root_package_json, aliases, self_name=pkg.name
            )
            internal |= found_internal
            external |= found_external
        suffix = name[name.rfind("."):].lower() if "." in name else ""
        if suffix in ASSET_EXTENSIONS:
            assets.append(join_paths(pkg.dir, rel))

    log.debug(
        "scan.package",
        package=pkg.dir,
        internal=len(internal),
        external=len(external),
        assets=len(assets),
    )
    return ScanResult(
        internal=sorted(internal),
        external=sorted(external),
        assets=sorted(set(assets)),
        bin_dir=join_paths(pkg.dir, BIN_DIR) if (root / BIN_DIR).is_dir() else None,
    )


async def scan_package_async(
    pkg: PackageDescriptor,
    root_package_json: Mapping[str, Any] | None,
    alias_config: Mapping[str, Any] | None,
    settings: RunSettings,
) -> ScanResult:
    """Run :func:`scan_package` in a worker thread."""
    return await asyncio.to_thread(scan_package, pkg, root_package_json, alias_config, settings)
