"""Host-side files touched by inject/eject: ignore file, alias table, host manifest.

Each helper loads once, mutates its in-memory copy and writes only when the
content actually changed, so repeated inject runs leave the files untouched.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog

from monoinject.core.jsonfile import dump_json, load_json_or_default, load_text_or_default, sort_keys, write_json
from monoinject.exceptions import InvalidConfigurationError

log = structlog.get_logger("monoinject.linker")


def append_ignore(path: Path, dest: str, dry_run: bool = False) -> bool:
    """Append ``/<dest>`` to the ignore file unless already present.

    Returns True when a line was (or, in dry-run, would be) added.
    """
    content = load_text_or_default(path)
    line = "/" + dest
    if line in (s.strip() for s in content.split("\n")):
        return False
    log.info("inject.ignore", path=str(path), line=line, dry_run=dry_run)
    if not dry_run:
        prefix = "" if not content or content.endswith("\n") else "\n"
        with path.open("a", encoding="utf-8") as f:
            f.write(prefix + line + "\n")
    return True


def _load_object(path: Path) -> dict[str, Any]:
    data = load_json_or_default(path, {})
    if not isinstance(data, dict):
        raise InvalidConfigurationError(f"{path} must contain a JSON object")
    return data


class AliasTable:
    """``compilerOptions.paths`` of the shared type-reference config."""

    def __init__(self, path: Path, dry_run: bool = False):
        self.path = path
        self.dry_run = dry_run
        self.data = _load_object(path)
        self.changed = False

    @property
    def paths(self) -> dict[str, list[str]]:
        compiler_options = self.data.setdefault("compilerOptions", {})
        return compiler_options.setdefault("paths", {})

    def has(self, name: str, index: str) -> bool:
        return index in self.paths.get(name, [])

    def add(self, name: str, index: str) -> bool:
        """Register *index* for *name*. Lists and keys are kept sorted."""
        if self.has(name, index):
            return False
        log.info("inject.alias_add", name=name, index=index)
        paths = self.paths
        paths[name] = sorted({*paths.get(name, []), index})
        self.data["compilerOptions"]["paths"] = sort_keys(paths)
        self.changed = True
        return True

    def remove(self, name: str, index: str) -> bool:
        """Drop *index* for *name*; the key goes away with its last entry."""
        if not self.has(name, index):
            return False
        log.info("eject.alias_remove", name=name, index=index)
        remaining = [p for p in self.paths[name] if p != index]
        if remaining:
            self.paths[name] = remaining
        else:
            del self.paths[name]
        self.changed = True
        return True

    def save(self) -> bool:
        if not self.changed:
            return False
        if self.dry_run:
            log.info("alias.write", path=str(self.path), dry_run=True, content=dump_json(self.data))
        else:
            write_json(self.path, self.data)
        self.changed = False
        return True


class HostManifest:
    """The host ``package.json`` whose dependency fields inject/eject maintain."""

    def __init__(self, path: Path, dry_run: bool = False):
        self.path = path
        self.dry_run = dry_run
        self.data = _load_object(path)
        self.changed = False

    def _field(self, dev: bool) -> str:
        return "devDependencies" if dev else "dependencies"

    def remove_dependency(self, name: str) -> tuple[str | None, bool]:
        """Remove *name* from dependencies and devDependencies.

        Returns the removed version and whether it was a dev dependency. When
        the name appears in both, the devDependencies entry wins.
        """
        version: str | None = None
        is_dev = False
        for dev in (False, True):
            deps = self.data.get(self._field(dev))
            if deps and name in deps:
                log.info("inject.remove_dep", name=name, dev=dev, version=deps[name])
                version = deps.pop(name)
                is_dev = is_dev or dev
                self.changed = True
        return version, is_dev

    def restore_dependency(self, name: str, version: str, dev: bool) -> bool:
        """Re-add *name* at *version* unless it is already declared in that field."""
        dep_field = self._field(dev)
        deps = self.data.get(dep_field) or {}
        if name in deps:
            return False
        log.info("eject.restore_dep", name=name, dev=dev, version=version)
        deps[name] = version
        self.data[dep_field] = sort_keys(deps)
        self.changed = True
        return True

    def save(self) -> bool:
        if not self.changed:
            return False
        for dep_field in ("dependencies", "devDependencies", "peerDependencies"):
            if isinstance(self.data.get(dep_field), dict):
                self.data[dep_field] = sort_keys(self.data[dep_field])
        if self.dry_run:
            log.info("package_json.write", path=str(self.path), dry_run=True, content=dump_json(self.data))
        else:
            write_json(self.path, self.data)
        self.changed = False
        return True
