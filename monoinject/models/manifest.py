"""Persisted record of a completed injection."""

from __future__ import annotations

from dataclasses import replace

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from monoinject.models.package import PackageDescriptor


class ManifestEntry(BaseModel):
    """One injected destination, keyed identically to ``PackageDescriptor.key``.

    ``is_npm_dev_dep`` and ``installed_npm_version`` cannot be recovered from
    the source tree once inject has removed the package from the host
    manifest, so they are carried across runs and restored by eject.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    key: str
    dir: str
    dest: str
    npm_name: str | None = None
    index_path: str | None = None
    disable_git_ignore: bool = False
    disable_ts_config_path: bool = False
    disable_npm_package_update: bool = False
    is_npm_dev_dep: bool = False
    installed_npm_version: str | None = None

    @classmethod
    def from_descriptor(cls, pkg: PackageDescriptor) -> ManifestEntry:
        return cls(
            key=pkg.key,
            dir=pkg.dir,
            dest=pkg.dest,
            npm_name=pkg.name,
            index_path=pkg.index_path,
            disable_git_ignore=pkg.disable_gitignore,
            disable_ts_config_path=pkg.disable_alias,
            disable_npm_package_update=pkg.disable_manifest_update,
            is_npm_dev_dep=pkg.is_dev_dependency,
            installed_npm_version=pkg.installed_version,
        )

    def merge_into(self, pkg: PackageDescriptor) -> PackageDescriptor:
        """Fill the persisted flags into *pkg* where it has no value of its own."""
        return replace(
            pkg,
            is_dev_dependency=pkg.is_dev_dependency or self.is_npm_dev_dep,
            installed_version=pkg.installed_version or self.installed_npm_version,
        )

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
