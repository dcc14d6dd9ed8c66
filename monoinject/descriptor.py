"""Descriptor resolver — load a package's identity and metadata from its directory."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any

import structlog

from monoinject.core.fs import join_paths
from monoinject.core.jsonfile import load_json_or_default
from monoinject.exceptions import InvalidConfigurationError, NotFoundError
from monoinject.models.config import InjectEntry, ProjectConfig, load_project_config
from monoinject.models.package import DEFAULT_INDEX_PATH, PackageDescriptor, derive_key
from monoinject.settings import CONFIG_FILE_NAME, RunSettings

log = structlog.get_logger("monoinject.descriptor")


async def resolve_descriptor(
    directory: str,
    settings: RunSettings,
    entry: InjectEntry | None = None,
) -> PackageDescriptor:
    """Build the descriptor for the package in *directory*.

    ``package.json``, the package-local config file and ``tsconfig.json`` are
    read concurrently. Values given in *entry* take precedence over values
    read from disk. The descriptor is only constructed once every read has
    succeeded.

    Raises:
        NotFoundError: *directory* does not exist.
        InvalidConfigurationError: one of the JSON files is malformed.
    """
    src = settings.path(directory)
    if not src.is_dir():
        raise NotFoundError(f"Package directory not found: {directory}")

    package_json, local_config, tsconfig = await asyncio.gather(
        asyncio.to_thread(load_json_or_default, src / "package.json", None),
        asyncio.to_thread(_load_local_config, src / CONFIG_FILE_NAME),
        asyncio.to_thread(load_json_or_default, src / "tsconfig.json", None),
    )

    if package_json is not None and not isinstance(package_json, dict):
        raise InvalidConfigurationError(f"{src / 'package.json'} must contain a JSON object")

    entry = entry or InjectEntry(dir=directory)
    name = entry.npm_name
    if not name and package_json and isinstance(package_json.get("name"), str):
        name = package_json["name"]

    dest = entry.dest or f"{settings.packages_dir}/{Path(directory.rstrip('/')).name}"

    return PackageDescriptor(
        dir=directory,
        dest=dest,
        key=derive_key(dest),
        name=name,
        index_path=entry.index_path or (DEFAULT_INDEX_PATH if name else None),
        disable_gitignore=entry.disable_git_ignore,
        disable_alias=entry.disable_ts_config_path,
        disable_manifest_update=entry.disable_npm_package_update,
        is_dev_dependency=entry.is_npm_dev_dep,
        disable_publish=entry.disable_publish,
        package_json=package_json or {},
        tsconfig=tsconfig,
        tsconfig_path=join_paths(directory, "tsconfig.json") if tsconfig is not None else None,
        config=local_config,
    )


def _load_local_config(path: Path) -> ProjectConfig | None:
    if not path.is_file():
        return None
    return load_project_config(path)


async def load_targets(
    paths: list[str] | tuple[str, ...],
    settings: RunSettings,
) -> tuple[list[PackageDescriptor], RunSettings]:
    """Resolve inject/eject targets from config files and package directories.

    A path naming a file is read as a config file: its ``inject`` entries are
    resolved and its ``ignore`` names extend the ignore list of the returned
    settings. A path naming a directory is resolved as a single package. With
    no paths the root config file is used.
    """
    targets: list[Any] = []
    for path in paths or [settings.config_file]:
        full = settings.path(path)
        if full.is_file():
            config = load_project_config(full)
            settings = settings.with_ignore(config.ignore)
            targets.extend(config.inject)
        elif full.is_dir():
            targets.append(InjectEntry(dir=path))
        else:
            log.error("descriptor.target_missing", path=path)
            raise NotFoundError(f"Unable to get package info from {path}: no such file or directory")

    resolved = await asyncio.gather(
        *(resolve_descriptor(entry.dir, settings, entry) for entry in targets)
    )
    return _dedupe(resolved, settings), settings


def _dedupe(descriptors: list[PackageDescriptor], settings: RunSettings) -> list[PackageDescriptor]:
    """Drop repeated source directories and reject two sources sharing one key."""
    by_source: dict[str, PackageDescriptor] = {}
    by_key: dict[str, PackageDescriptor] = {}
    for pkg in descriptors:
        source = os.path.realpath(settings.path(pkg.dir)).lower().rstrip("/")
        if source in by_source:
            continue
        other = by_key.get(pkg.key)
        if other is not None:
            raise InvalidConfigurationError(
                f"Packages {other.dir} and {pkg.dir} both resolve to destination {pkg.dest}"
            )
        by_source[source] = pkg
        by_key[pkg.key] = pkg
    return list(by_source.values())
