"""Build graph — project references, dependency classification and build order.

Everything produced here is sorted before it is persisted so generated
config files diff cleanly regardless of discovery order.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Literal

import structlog

from monoinject.core.fs import join_paths
from monoinject.core.jsonfile import (
    dump_json,
    load_json_or_default,
    load_text_or_default,
    sort_keys,
    write_json,
)
from monoinject.linker.manifest import ManifestStore
from monoinject.models.package import PackageDescriptor
from monoinject.scanner.imports import alias_paths
from monoinject.settings import RunSettings

log = structlog.get_logger("monoinject.graph")

DependencyField = Literal["dependencies", "peerDependencies"]

ROOT_TSCONFIG = "tsconfig.json"


def index_by_name(pkgs: Iterable[PackageDescriptor]) -> dict[str, PackageDescriptor]:
    by_name: dict[str, PackageDescriptor] = {}
    for pkg in pkgs:
        if pkg.name and pkg.name not in by_name:
            by_name[pkg.name] = pkg
    return by_name


def project_references(
    pkg: PackageDescriptor,
    by_name: Mapping[str, PackageDescriptor],
) -> list[dict[str, str]]:
    """One ``{"path": "../../<dir>"}`` per internal dependency, sorted by path."""
    paths = {
        join_paths("../..", by_name[dep].dir)
        for dep in pkg.internal_deps
        if dep in by_name and by_name[dep].dir != pkg.dir
    }
    return [{"path": p} for p in sorted(paths)]


def classify_dependency(
    name: str,
    root_package_json: Mapping[str, Any] | None,
    aliases: Mapping[str, Any],
    peer_internal_only: bool,
) -> DependencyField:
    """Peer only in peer-internal-only mode for root peers and alias-table names."""
    if peer_internal_only:
        root_peers = (root_package_json or {}).get("peerDependencies") or {}
        if name in aliases or name in root_peers:
            return "peerDependencies"
    return "dependencies"


def select_version(
    name: str,
    root_package_json: Mapping[str, Any] | None,
    by_name: Mapping[str, PackageDescriptor],
) -> str | None:
    """Root peer version, root dependency version, ``^<internal version>``, else None."""
    root = root_package_json or {}
    for dep_field in ("peerDependencies", "dependencies"):
        version = (root.get(dep_field) or {}).get(name)
        if version is not None:
            return version
    local = by_name.get(name)
    if local is not None and local.version:
        return f"^{local.version}"
    return None


def generate_manifest(
    pkg: PackageDescriptor,
    root_package_json: Mapping[str, Any] | None,
    alias_config: Mapping[str, Any] | None,
    by_name: Mapping[str, PackageDescriptor],
    peer_internal_only: bool = False,
) -> dict[str, Any]:
    """Return a copy of the package's ``package.json`` with internal dependencies declared."""
    aliases = alias_paths(alias_config)
    manifest = dict(pkg.package_json)
    for name in pkg.internal_deps:
        version = select_version(name, root_package_json, by_name)
        if version is None:
            continue
        dep_field = classify_dependency(name, root_package_json, aliases, peer_internal_only)
        manifest[dep_field] = sort_keys({**(manifest.get(dep_field) or {}), name: version})
    return manifest


def build_layers(pkgs: Iterable[PackageDescriptor]) -> list[list[PackageDescriptor]]:
    """Group packages into layers; every package comes after its internal dependencies.

    Packages caught in a dependency cycle are emitted together as a final
    layer.
    """
    pkgs = list(pkgs)
    by_name = index_by_name(pkgs)
    remaining = {pkg.dir: pkg for pkg in pkgs}
    requires = {
        pkg.dir: {
            by_name[dep].dir
            for dep in pkg.internal_deps
            if dep in by_name and by_name[dep].dir != pkg.dir
        }
        for pkg in pkgs
    }

    layers: list[list[PackageDescriptor]] = []
    done: set[str] = set()
    while remaining:
        ready = sorted(d for d in remaining if requires[d] <= done)
        if not ready:
            cycle = sorted(remaining)
            log.warning("graph.cycle", packages=cycle)
            layers.append([remaining.pop(d) for d in cycle])
            break
        layers.append([remaining.pop(d) for d in ready])
        done.update(ready)
    return layers


def package_tsconfig(
    pkg: PackageDescriptor,
    by_name: Mapping[str, PackageDescriptor],
) -> dict[str, Any]:
    tsconfig = dict(pkg.tsconfig or {})
    compiler_options = dict(tsconfig.get("compilerOptions") or {})
    compiler_options["composite"] = True
    tsconfig["compilerOptions"] = compiler_options
    tsconfig["references"] = project_references(pkg, by_name)
    return tsconfig


def root_tsconfig(existing: Mapping[str, Any], pkgs: Iterable[PackageDescriptor]) -> dict[str, Any]:
    tsconfig = dict(existing)
    tsconfig.setdefault("files", [])
    paths = {join_paths(".", pkg.dir) for pkg in pkgs}
    tsconfig["references"] = [{"path": f"./{p}"} for p in sorted(paths)]
    return tsconfig


def update_tsconfigs(pkgs: list[PackageDescriptor], settings: RunSettings) -> list[str]:
    """Write project references for every package and the root ``tsconfig.json``.

    Packages whose directory is an inject destination are left alone: their
    ``tsconfig.json`` is a mirror of the external source. Files whose content
    would not change are not rewritten.

    Returns the repo-relative paths that were (or, in dry-run, would be) written.
    """
    by_name = index_by_name(pkgs)
    store = ManifestStore.load(settings.path(settings.manifest_file), settings.dry_run)
    injected = {join_paths(entry.dest) for entry in store.entries()}
    written: list[str] = []

    for pkg in pkgs:
        if pkg.tsconfig is None or not pkg.tsconfig_path:
            continue
        if join_paths(pkg.dir) in injected:
            log.debug("tsconfig.skip_injected", path=pkg.tsconfig_path)
            continue
        if _write(pkg.tsconfig_path, package_tsconfig(pkg, by_name), settings):
            written.append(pkg.tsconfig_path)

    existing = load_json_or_default(settings.path(ROOT_TSCONFIG), {})
    if _write(ROOT_TSCONFIG, root_tsconfig(existing, pkgs), settings):
        written.append(ROOT_TSCONFIG)
    return written


def _write(rel_path: str, data: dict[str, Any], settings: RunSettings) -> bool:
    content = dump_json(data)
    if load_text_or_default(settings.path(rel_path), "") == content:
        return False
    if settings.dry_run:
        log.info("tsconfig.write", path=rel_path, dry_run=True, content=content)
        return True
    log.debug("tsconfig.write", path=rel_path)
    write_json(settings.path(rel_path), data)
    return True
