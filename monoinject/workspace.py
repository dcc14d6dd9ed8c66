"""Workspace loader — resolve, scan and annotate every package under ``packages/``.

Scans run concurrently and each returns its own :class:`ScanResult`; nothing
shared is touched until :func:`merge_scans` folds the results together.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

import structlog

from monoinject.core.jsonfile import load_json, load_json_or_default
from monoinject.descriptor import resolve_descriptor
from monoinject.graph import generate_manifest, index_by_name
from monoinject.models.package import PackageDescriptor
from monoinject.process import run_bounded
from monoinject.scanner import ScanResult, scan_package_async
from monoinject.settings import RunSettings

log = structlog.get_logger("monoinject.workspace")


@dataclass
class Workspace:
    root_package_json: dict[str, Any]
    alias_config: dict[str, Any]
    packages: list[PackageDescriptor] = field(default_factory=list)
    manifests: dict[str, dict[str, Any]] = field(default_factory=dict)

    def get(self, directory: str) -> PackageDescriptor | None:
        for pkg in self.packages:
            if pkg.dir == directory:
                return pkg
        return None

    def select(self, dirs: list[str] | tuple[str, ...] | None) -> list[PackageDescriptor]:
        """Packages whose dir is in *dirs*, or all packages when *dirs* is empty."""
        if not dirs:
            return list(self.packages)
        wanted = {d.rstrip("/") for d in dirs}
        return [pkg for pkg in self.packages if pkg.dir in wanted]


def discover_packages(settings: RunSettings) -> list[str]:
    """Repo-relative dirs under the packages dir that contain a ``tsconfig.json``."""
    base = settings.path(settings.packages_dir)
    if not base.is_dir():
        return []
    return sorted(
        f"{settings.packages_dir}/{child.name}"
        for child in base.iterdir()
        if child.is_dir() and child.name not in settings.ignore and (child / "tsconfig.json").is_file()
    )


def annotate(pkg: PackageDescriptor, scan: ScanResult) -> PackageDescriptor:
    return replace(
        pkg,
        internal_deps=tuple(scan.internal),
        external_deps=tuple(scan.external),
        assets=tuple(scan.assets),
        bin_dir=scan.bin_dir,
    )


def merge_scans(
    descriptors: list[PackageDescriptor],
    scans: list[ScanResult | None],
    root_package_json: Mapping[str, Any],
    alias_config: Mapping[str, Any],
    peer_internal_only: bool = False,
) -> tuple[list[PackageDescriptor], dict[str, dict[str, Any]]]:
    """Combine per-package scan results into annotated descriptors and generated manifests.

    Packages whose scan failed (``None``) are dropped.
    """
    packages = [annotate(pkg, scan) for pkg, scan in zip(descriptors, scans) if scan is not None]
    by_name = index_by_name(packages)
    manifests = {
        pkg.dir: generate_manifest(pkg, root_package_json, alias_config, by_name, peer_internal_only)
        for pkg in packages
    }
    return packages, manifests


async def load_workspace(settings: RunSettings) -> Workspace:
    """Load the root manifest, alias table and every buildable package."""
    root_package_json, alias_config = await asyncio.gather(
        asyncio.to_thread(load_json, settings.path(settings.package_json_file)),
        asyncio.to_thread(load_json_or_default, settings.path(settings.alias_file), {}),
    )
    dirs = discover_packages(settings)
    descriptors = list(await asyncio.gather(*(resolve_descriptor(d, settings) for d in dirs)))

    async def _scan(pkg: PackageDescriptor) -> ScanResult | None:
        try:
            return await scan_package_async(pkg, root_package_json, alias_config, settings)
        except Exception as exc:
            log.error("scan.failed", package=pkg.dir, error=str(exc))
            return None

    scans = await run_bounded(descriptors, _scan, settings.max_concurrency)
    packages, manifests = merge_scans(
        descriptors, scans, root_package_json, alias_config, settings.peer_internal_only
    )
    log.info("workspace.loaded", packages=len(packages), failed=len(descriptors) - len(packages))
    return Workspace(
        root_package_json=root_package_json,
        alias_config=alias_config,
        packages=packages,
        manifests=manifests,
    )


def list_dependencies(workspace: Workspace) -> tuple[dict[str, tuple[list[str], list[str]]], list[str]]:
    """Per-package ``(internal, external)`` lists plus the union across all packages."""
    per_package: dict[str, tuple[list[str], list[str]]] = {}
    everything: set[str] = set()
    for pkg in workspace.packages:
        per_package[pkg.dir] = (list(pkg.internal_deps), list(pkg.external_deps))
        everything.update(pkg.internal_deps)
        everything.update(pkg.external_deps)
    return per_package, sorted(everything)
