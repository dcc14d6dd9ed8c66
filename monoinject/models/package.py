"""Data models for package descriptors and dependency edges."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from monoinject.models.config import ProjectConfig

DEFAULT_INDEX_PATH = "src/index.ts"


def derive_key(dest: str) -> str:
    """Comparison key for a destination: lower-cased, trailing slashes stripped."""
    return dest.strip().lower().rstrip("/")


@dataclass(frozen=True)
class PackageDescriptor:
    """One package of the monorepo, possibly living outside the repository tree.

    Instances are never mutated; scanning and injection return annotated
    copies via ``dataclasses.replace``.
    """

    dir: str
    dest: str
    key: str
    name: str | None = None
    index_path: str | None = None
    disable_gitignore: bool = False
    disable_alias: bool = False
    disable_manifest_update: bool = False
    is_dev_dependency: bool = False
    installed_version: str | None = None
    disable_publish: bool = False
    package_json: dict[str, Any] = field(default_factory=dict)
    tsconfig: dict[str, Any] | None = None
    tsconfig_path: str | None = None
    config: ProjectConfig | None = None
    internal_deps: tuple[str, ...] = ()
    external_deps: tuple[str, ...] = ()
    assets: tuple[str, ...] = ()
    bin_dir: str | None = None

    @property
    def version(self) -> str | None:
        version = self.package_json.get("version")
        return version if isinstance(version, str) else None

    @property
    def package_type(self) -> str:
        return (self.config.type if self.config else None) or "lib"

    @property
    def build_disabled(self) -> bool:
        return bool(self.config and self.config.build_disabled)

    def edges(self) -> list[DependencyEdge]:
        consumer = self.name or self.dir
        return [DependencyEdge(consumer, n, "internal") for n in self.internal_deps] + [
            DependencyEdge(consumer, n, "external") for n in self.external_deps
        ]


@dataclass(frozen=True)
class DependencyEdge:
    """An imported module name seen in a consuming package's sources."""

    consumer: str
    module: str
    kind: Literal["internal", "external"]
