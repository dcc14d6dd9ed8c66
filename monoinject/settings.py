"""Run settings — one immutable value threaded through every component."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path

from monoinject.exceptions import InvalidConfigurationError
from monoinject.linker.modes import LinkMode

CONFIG_FILE_NAME = ".monoinject.json"
MANIFEST_FILE_NAME = ".monoinject-injected-packages.json"
WORK_DIR_NAME = ".monoinject"

# Directory and file names never linked, scanned or built
DEFAULT_IGNORE: tuple[str, ...] = (
    ".DS_Store",
    "node_modules",
    "venv",
    "__pycache__",
    ".next",
    "dist",
    WORK_DIR_NAME,
)

DEFAULT_ENV_FILES: tuple[str, ...] = (".env", ".env.local", ".env.secrets", ".env.local-secrets")


def _default_concurrency() -> int:
    value = os.environ.get("MONOINJECT_MAX_CONCURRENCY", "16")
    try:
        window = int(value)
        if window < 1:
            raise ValueError(value)
    except ValueError:
        raise InvalidConfigurationError(
            f"MONOINJECT_MAX_CONCURRENCY must be a positive integer, got {value!r}"
        ) from None
    return window


@dataclass(frozen=True)
class RunSettings:
    """Options for a single invocation.

    Relative file names are resolved against ``root``.
    """

    root: Path = field(default_factory=Path.cwd)
    link_mode: LinkMode = LinkMode.HARD_LINK
    dry_run: bool = False
    ignore: tuple[str, ...] = DEFAULT_IGNORE
    verbose: bool = False
    quiet: bool = False
    delete_unlinked: bool = False
    gitignore_file: str = ".gitignore"
    alias_file: str = "tsconfig.base.json"
    package_json_file: str = "package.json"
    manifest_file: str = MANIFEST_FILE_NAME
    config_file: str = CONFIG_FILE_NAME
    packages_dir: str = "packages"
    peer_internal_only: bool = False
    build_individual_packages: bool = False
    skip_install: bool = False
    yes: bool = False
    max_concurrency: int = field(default_factory=_default_concurrency)

    def path(self, relative: str | Path) -> Path:
        """Resolve a repo-relative path against the monorepo root."""
        return self.root / relative

    def with_ignore(self, extra: list[str] | tuple[str, ...]) -> RunSettings:
        """Return a copy with *extra* names appended to the ignore list."""
        added = tuple(name for name in extra if name not in self.ignore)
        if not added:
            return self
        return replace(self, ignore=self.ignore + added)
