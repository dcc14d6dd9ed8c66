"""Housekeeping commands: clean, create-lib, update-imports."""

from __future__ import annotations

import re
import shutil

import structlog

from monoinject.core.fs import join_paths, walk_tree
from monoinject.core.jsonfile import dump_json, load_json_or_default, sort_keys, write_json
from monoinject.exceptions import InvalidConfigurationError
from monoinject.models.config import load_project_config
from monoinject.settings import WORK_DIR_NAME, RunSettings

log = structlog.get_logger("monoinject.maintenance")

CLEAN_ROOT_DIRS = (WORK_DIR_NAME, ".next", "dist")
CLEAN_PACKAGE_DIRS = (".next", "cdk.out")

_LIB_NAME_RE = re.compile(r"^[\w-]+$")
_TS_FILE_RE = re.compile(r"\.tsx?$", re.IGNORECASE)
_HAS_EXT_RE = re.compile(r"\.(js|jsx|ts|tsx|mjs|mts|cts|cjs)$", re.IGNORECASE)

# Group 3 is the import target
_IMPORT_FROM_RE = re.compile(r"((?:import|export\s+\*)\s[^'\";]*?\bfrom\s*)(['\"])([^'\"]+)\2")
_IMPORT_CALL_RE = re.compile(r"(\b(?:require|import)\s*\(\s*)(['\"])([^'\"]+)\2(\s*\))")

LIB_TSCONFIG = {
    "extends": "../../tsconfig.base.json",
    "include": ["src/**/*.ts", "src/**/*.tsx"],
    "exclude": [
        "jest.config.ts",
        "src/**/*.spec.ts",
        "src/**/*.test.ts",
        "src/**/*.spec.tsx",
        "src/**/*.test.tsx",
    ],
    "compilerOptions": {},
}


def clean(settings: RunSettings) -> list[str]:
    """Remove build output and caches. Returns the repo-relative paths removed."""
    targets = [d for d in CLEAN_ROOT_DIRS if settings.path(d).exists()]
    packages = settings.path(settings.packages_dir)
    if packages.is_dir():
        for child in sorted(packages.iterdir()):
            if not child.is_dir():
                continue
            for name in CLEAN_PACKAGE_DIRS:
                if (child / name).exists():
                    targets.append(f"{settings.packages_dir}/{child.name}/{name}")

    for rel in targets:
        log.info("clean.remove", path=rel, dry_run=settings.dry_run)
        if not settings.dry_run:
            shutil.rmtree(settings.path(rel), ignore_errors=True)
    return targets


def create_lib(name: str, settings: RunSettings) -> str:
    """Scaffold ``packages/<name>`` and register its alias. Returns the new dir."""
    if not _LIB_NAME_RE.match(name):
        raise InvalidConfigurationError(f"Invalid library name {name!r}")
    directory = f"{settings.packages_dir}/{name}"
    if settings.path(directory).exists():
        raise InvalidConfigurationError(f"Lib directory already exists - {directory}")

    config = load_project_config(settings.path(settings.config_file))
    npm_name = f"{config.namespace}/{name}" if config.namespace else name

    files = {
        "tsconfig.json": dump_json(LIB_TSCONFIG),
        "package.json": dump_json(
            {"name": npm_name, "version": "0.0.0", "type": "module", "sideEffects": False}
        ),
        "src/index.ts": "export * from './lib/example.js';\n",
        "src/lib/example.ts": "export const exampleExport=true;\n",
    }
    for rel, content in files.items():
        path = join_paths(directory, rel)
        log.info("create_lib.write", path=path, dry_run=settings.dry_run)
        if not settings.dry_run:
            target = settings.path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

    alias_path = settings.path(settings.alias_file)
    alias_config = load_json_or_default(alias_path, {})
    compiler_options = alias_config.setdefault("compilerOptions", {})
    paths = compiler_options.get("paths") or {}
    paths[npm_name] = [join_paths(directory, "src/index.ts")]
    compiler_options["paths"] = sort_keys(paths)
    log.info("create_lib.alias", name=npm_name, path=settings.alias_file, dry_run=settings.dry_run)
    if not settings.dry_run:
        write_json(alias_path, alias_config)
    return directory


def _add_js_extension(match: re.Match[str]) -> str:
    target = match.group(3)
    if not target.startswith(".") or _HAS_EXT_RE.search(target):
        return match.group(0)
    whole = match.group(0)
    cut = match.end(3) - match.start(0)
    return whole[:cut] + ".js" + whole[cut:]


def rewrite_relative_imports(source: str) -> str:
    """Append ``.js`` to relative import targets that have no extension."""
    source = _IMPORT_FROM_RE.sub(_add_js_extension, source)
    return _IMPORT_CALL_RE.sub(_add_js_extension, source)


def update_imports(directory: str, settings: RunSettings) -> list[str]:
    """Rewrite every TypeScript file under *directory*. Returns the files changed."""
    root = settings.path(directory)
    changed: list[str] = []
    for rel, is_dir in walk_tree(root, settings.ignore):
        if is_dir or not _TS_FILE_RE.search(rel):
            continue
        path = root / rel
        source = path.read_text(encoding="utf-8")
        updated = rewrite_relative_imports(source)
        if updated == source:
            continue
        changed.append(join_paths(directory, rel))
        log.info("update_imports.file", path=join_paths(directory, rel), dry_run=settings.dry_run)
        if not settings.dry_run:
            path.write_text(updated, encoding="utf-8")
    return changed
