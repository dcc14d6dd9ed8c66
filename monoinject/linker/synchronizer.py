"""Inject/eject engine.

A destination is only ever overwritten or deleted when the manifest says it
was created by inject. Eject verifies the whole destination tree before it
mutates anything.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal

import structlog

from monoinject.core.fs import join_paths, walk_tree
from monoinject.exceptions import (
    BrokenLinkDetected,
    LinkError,
    MissingSourceError,
    UnlinkedFileOnEject,
    UntrackedConflictError,
)
from monoinject.linker.host import AliasTable, HostManifest, append_ignore
from monoinject.linker.manifest import ManifestStore
from monoinject.linker.modes import is_linked, link_file
from monoinject.models.manifest import ManifestEntry
from monoinject.models.package import PackageDescriptor
from monoinject.settings import RunSettings

log = structlog.get_logger("monoinject.linker")

LinkState = Literal["untracked", "linked", "broken", "absent"]


@dataclass
class InjectResult:
    descriptor: PackageDescriptor
    linked: int = 0
    broken_links: list[BrokenLinkDetected] = field(default_factory=list)
    host_changed: bool = False


@dataclass
class EjectResult:
    descriptor: PackageDescriptor
    removed: bool = False
    host_changed: bool = False


class LinkSynchronizer:
    """Mirror package trees into the monorepo and track them in the manifest."""

    def __init__(self, settings: RunSettings):
        self.settings = settings

    @property
    def dry_run(self) -> bool:
        return self.settings.dry_run

    def _load_manifest(self) -> ManifestStore:
        return ManifestStore.load(self.settings.path(self.settings.manifest_file), self.dry_run)

    def _exists(self, path: Path) -> bool:
        return path.exists() or path.is_symlink()

    def _is_linked(self, src: Path, dest: Path) -> bool:
        # Dangling symlinks and directories count as broken
        if not dest.exists() or dest.is_dir():
            return False
        return is_linked(src, dest, self.settings.link_mode)

    def _alias_index(self, pkg: PackageDescriptor) -> str:
        return join_paths(pkg.dest, pkg.index_path or "")

    # -- inject ---------------------------------------------------------

    def inject(self, pkg: PackageDescriptor) -> InjectResult:
        """Link *pkg* into its destination and register it with the host.

        Raises:
            MissingSourceError: the source directory does not exist.
            UntrackedConflictError: the destination exists but has no manifest entry.
            LinkError: the filesystem refused to create or replace a mirrored file.
        """
        log.info("inject.start", package=pkg.dir, dest=pkg.dest)
        src = self.settings.path(pkg.dir)
        dest = self.settings.path(pkg.dest)
        if not src.is_dir():
            raise MissingSourceError(pkg.dir)

        store = self._load_manifest()
        current = store.get(pkg.key)
        if self._exists(dest) and current is None:
            raise UntrackedConflictError(pkg.dir, pkg.dest, "inject")

        result = InjectResult(descriptor=pkg)
        fresh = not self._exists(dest)
        if not dest.is_dir():
            log.info("inject.mkdir", path=pkg.dest, dry_run=self.dry_run)
            if not self.dry_run:
                dest.mkdir(parents=True, exist_ok=True)

        try:
            self._mirror(src, dest, result)
        except LinkError:
            # A fresh destination holds only what this call created
            if fresh and not self.dry_run:
                log.warning("inject.rollback", dest=pkg.dest)
                shutil.rmtree(dest, ignore_errors=True)
            raise

        if not pkg.disable_gitignore:
            append_ignore(self.settings.path(self.settings.gitignore_file), pkg.dest, self.dry_run)

        if pkg.name and not pkg.disable_alias:
            aliases = AliasTable(self.settings.path(self.settings.alias_file), self.dry_run)
            aliases.add(pkg.name, self._alias_index(pkg))
            aliases.save()

        if pkg.name and not pkg.disable_manifest_update:
            host = HostManifest(self.settings.path(self.settings.package_json_file), self.dry_run)
            version, is_dev = host.remove_dependency(pkg.name)
            if version is not None:
                pkg = replace(
                    pkg,
                    installed_version=version,
                    is_dev_dependency=pkg.is_dev_dependency or is_dev,
                )
            result.host_changed = host.save()

        if current is not None:
            pkg = current.merge_into(pkg)

        store.upsert(ManifestEntry.from_descriptor(pkg))
        store.save()

        result.descriptor = pkg
        log.info(
            "inject.done",
            package=pkg.dir,
            dest=pkg.dest,
            linked=result.linked,
            broken=len(result.broken_links),
        )
        return result

    def _mirror(self, src: Path, dest: Path, result: InjectResult) -> None:
        mode = self.settings.link_mode
        for rel, is_dir in walk_tree(src, self.settings.ignore):
            src_path = src / rel
            dest_path = dest / rel
            if is_dir:
                if not dest_path.is_dir():
                    log.info("inject.mkdir", path=str(dest_path), dry_run=self.dry_run)
                    if not self.dry_run:
                        try:
                            dest_path.mkdir(parents=True, exist_ok=True)
                        except OSError as e:
                            raise LinkError(
                                str(src_path), str(dest_path), "create directory", e.strerror or str(e)
                            ) from e
                continue

            if self._exists(dest_path):
                if self._is_linked(src_path, dest_path):
                    continue
                broken = BrokenLinkDetected(str(src_path), str(dest_path))
                if not self.settings.delete_unlinked:
                    log.warning(
                        "inject.broken_link",
                        src=str(src_path),
                        dest=str(dest_path),
                        hint="use --delete-unlinked to replace broken links",
                    )
                    result.broken_links.append(broken)
                    continue
                broken.deleted = True
                result.broken_links.append(broken)
                log.warning("inject.broken_link_delete", src=str(src_path), dest=str(dest_path))
                if not self.dry_run:
                    try:
                        dest_path.unlink()
                    except OSError as e:
                        raise LinkError(str(src_path), str(dest_path), "replace", e.strerror or str(e)) from e

            log.info("inject.link", mode=mode.value, src=str(src_path), dest=str(dest_path), dry_run=self.dry_run)
            if not self.dry_run:
                try:
                    link_file(src_path, dest_path, mode)
                except OSError as e:
                    raise LinkError(str(src_path), str(dest_path), mode.value, e.strerror or str(e)) from e
            result.linked += 1

    # -- eject ----------------------------------------------------------

    def eject(self, pkg: PackageDescriptor) -> EjectResult:
        """Verify, unregister and delete the injected copy of *pkg*.

        Nothing is changed unless every destination file still matches its
        source.

        Raises:
            MissingSourceError: the source directory does not exist.
            UntrackedConflictError: the destination exists but has no manifest entry.
            UnlinkedFileOnEject: a destination file is missing from, or differs from, the source.
        """
        log.info("eject.start", package=pkg.dir, dest=pkg.dest)
        src = self.settings.path(pkg.dir)
        dest = self.settings.path(pkg.dest)
        if not src.is_dir():
            raise MissingSourceError(pkg.dir)

        store = self._load_manifest()
        current = store.get(pkg.key)
        dest_exists = self._exists(dest)
        if dest_exists and current is None:
            raise UntrackedConflictError(pkg.dir, pkg.dest, "eject")
        if current is not None:
            pkg = current.merge_into(pkg)

        if dest_exists:
            self._verify(src, dest)

        result = EjectResult(descriptor=pkg)

        if pkg.name and not pkg.disable_alias:
            aliases = AliasTable(self.settings.path(self.settings.alias_file), self.dry_run)
            aliases.remove(pkg.name, self._alias_index(pkg))
            aliases.save()

        if (
            pkg.name
            and not pkg.disable_manifest_update
            and current is not None
            and pkg.installed_version is not None
        ):
            host = HostManifest(self.settings.path(self.settings.package_json_file), self.dry_run)
            host.restore_dependency(pkg.name, pkg.installed_version, pkg.is_dev_dependency)
            result.host_changed = host.save()

        if current is not None:
            store.remove(pkg.key)
            store.save()

        if dest_exists:
            log.info("eject.rmdir", path=pkg.dest, dry_run=self.dry_run)
            if not self.dry_run:
                if dest.is_symlink() or not dest.is_dir():
                    dest.unlink()
                else:
                    shutil.rmtree(dest)
            result.removed = True

        log.info("eject.done", package=pkg.dir, dest=pkg.dest)
        return result

    def _verify(self, src: Path, dest: Path) -> None:
        # Ignore names are not applied: everything rmtree would remove is checked
        for rel, is_dir in walk_tree(dest, ()):
            if is_dir and not (dest / rel).is_symlink():
                continue
            src_path = src / rel
            dest_path = dest / rel
            if not src_path.is_file():
                raise UnlinkedFileOnEject(str(src_path), str(dest_path), missing=True)
            if not self._is_linked(src_path, dest_path):
                raise UnlinkedFileOnEject(str(src_path), str(dest_path))

    # -- state ----------------------------------------------------------

    def state(self, pkg: PackageDescriptor) -> LinkState:
        """Classify *pkg* as untracked, linked, broken or absent."""
        store = self._load_manifest()
        dest = self.settings.path(pkg.dest)
        if pkg.key not in store:
            return "untracked" if self._exists(dest) else "absent"
        src = self.settings.path(pkg.dir)
        if not dest.is_dir() or not src.is_dir():
            return "broken"
        for rel, is_dir in walk_tree(src, self.settings.ignore):
            if is_dir:
                continue
            dest_path = dest / rel
            if not self._exists(dest_path) or not self._is_linked(src / rel, dest_path):
                return "broken"
        return "linked"
