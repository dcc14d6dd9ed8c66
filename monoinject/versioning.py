"""Version bumping across the packages dir and the root manifest."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog

from monoinject.core.jsonfile import dump_json, load_json_or_default, write_json
from monoinject.exceptions import InvalidConfigurationError
from monoinject.models.config import ProjectConfig
from monoinject.publish import is_in_publish_scope
from monoinject.settings import RunSettings

log = structlog.get_logger("monoinject.versioning")

DEFAULT_INCREMENT = "+0.0.1"


def _parts(version: str) -> list[int]:
    try:
        return [int(n) for n in version.split(".")]
    except ValueError:
        raise InvalidConfigurationError(f"Invalid version {version!r}") from None


def add_versions(a: str, b: str) -> str:
    """Component-wise sum of two ``major.minor.patch`` versions; missing parts count as 0."""
    pa, pb = _parts(a), _parts(b)
    pa += [0] * (3 - len(pa))
    pb += [0] * (3 - len(pb))
    return ".".join(str(x + y) for x, y in zip(pa[:3], pb[:3]))


def next_version(current: str | None, version: str) -> str:
    """Resolve *version*, either absolute or a ``+x.y.z`` increment of *current*."""
    if version.startswith("+"):
        return add_versions(current or "0.0.0", version[1:])
    return version


@dataclass
class VersionChange:
    path: str
    name: str
    old: str | None
    new: str


def set_package_version(
    path: Path,
    rel_path: str,
    version: str,
    config: ProjectConfig,
    settings: RunSettings,
    ignore_scope: bool = False,
) -> VersionChange | None:
    data = load_json_or_default(path, None)
    if not isinstance(data, dict) or not isinstance(data.get("name"), str):
        return None
    if not ignore_scope and not is_in_publish_scope(data["name"], config):
        return None

    old = data.get("version")
    data["version"] = next_version(old or "0.0.0", version)
    change = VersionChange(path=rel_path, name=data["name"], old=old, new=data["version"])
    log.info("version.set", path=rel_path, name=change.name, old=old, new=change.new, dry_run=settings.dry_run)
    if settings.dry_run:
        log.debug("version.write", path=rel_path, content=dump_json(data))
    else:
        write_json(path, data)
    return change


def set_versions(version: str, config: ProjectConfig, settings: RunSettings) -> list[VersionChange]:
    """Apply *version* to every in-scope package manifest and to the root manifest.

    The root manifest is updated regardless of the publish scope.
    """
    changes: list[VersionChange] = []
    base = settings.path(settings.packages_dir)
    if base.is_dir():
        for child in sorted(base.iterdir()):
            if not child.is_dir():
                continue
            rel = f"{settings.packages_dir}/{child.name}/package.json"
            change = set_package_version(child / "package.json", rel, version, config, settings)
            if change:
                changes.append(change)

    root = set_package_version(
        settings.path(settings.package_json_file),
        settings.package_json_file,
        version,
        config,
        settings,
        ignore_scope=True,
    )
    if root:
        changes.append(root)
    return changes
