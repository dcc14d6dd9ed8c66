"""Config file schemas (``.monoinject.json``) — root and package-local."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from monoinject.core.jsonfile import load_json_or_default
from monoinject.exceptions import InvalidConfigurationError


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class InjectEntry(_CamelModel):
    """One package to inject or eject."""

    dir: str
    dest: str | None = None
    npm_name: str | None = None
    index_path: str | None = None
    disable_git_ignore: bool = False
    disable_ts_config_path: bool = False
    disable_npm_package_update: bool = False
    is_npm_dev_dep: bool = False
    disable_publish: bool = False

    @field_validator("dir", mode="before")
    @classmethod
    def _strip_whitespace(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v


class BuildConfig(_CamelModel):
    disabled: bool = False


class ProjectConfig(_CamelModel):
    """Shared schema for the root config file and package-local config files."""

    type: Literal["lib", "nextjs", "cdk", "test", "repo"] | None = None
    inject: list[InjectEntry] = []
    ignore: list[str] = []
    build: BuildConfig | None = None
    disabled: bool = False
    bin_build_options: dict[str, Any] = {}
    namespace: str | None = None
    additional_namespaces: list[str] = []
    publish_list: list[str] = []
    exclude_namespace_from_build_list: bool = False
    scripts: dict[str, str] = {}

    @property
    def build_disabled(self) -> bool:
        return self.disabled or bool(self.build and self.build.disabled)


def parse_project_config(data: Any, source: str = "<config>") -> ProjectConfig:
    try:
        return ProjectConfig.model_validate(data)
    except ValidationError as e:
        raise InvalidConfigurationError(f"Invalid configuration in {source}: {e}") from e


def load_project_config(path: Path) -> ProjectConfig:
    """Load a config file; a missing file yields the default (empty) config."""
    return parse_project_config(load_json_or_default(path, {}), str(path))
