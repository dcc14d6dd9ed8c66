"""Shared pytest fixtures for monoinject tests."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from monoinject.settings import RunSettings


def write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=4) + "\n")
    return path


def read_json(path: Path):
    return json.loads(path.read_text())


def make_files(base: Path, files: dict[str, str]) -> Path:
    """Create *files* (relative path -> content) below *base*."""
    for rel, content in files.items():
        target = base / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    return base


@pytest.fixture(autouse=True)
def _reset_logging():
    # CLI tests configure handlers bound to CliRunner streams that are closed afterwards
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """An empty monorepo root with a host package.json."""
    root = tmp_path / "repo"
    root.mkdir()
    write_json(root / "package.json", {"name": "host", "version": "1.0.0"})
    return root


@pytest.fixture
def external(tmp_path: Path) -> Path:
    """A package living outside the monorepo, named ``@ns/foo``."""
    src = tmp_path / "ext" / "foo"
    make_files(
        src,
        {
            "package.json": json.dumps({"name": "@ns/foo", "version": "1.2.3"}),
            "src/index.ts": "export * from './lib/a.js';\n",
            "src/lib/a.ts": "import lodash from 'lodash';\nexport const a = 1;\n",
            "README.md": "# foo\n",
        },
    )
    return src


@pytest.fixture
def settings(repo: Path) -> RunSettings:
    return RunSettings(root=repo, max_concurrency=4)


def make_monorepo(root: Path) -> Path:
    """Two aliased packages under ``packages/``: ``@x/b`` imports ``@x/a`` and react."""
    write_json(
        root / "tsconfig.base.json",
        {
            "compilerOptions": {
                "paths": {
                    "@x/a": ["packages/a/src/index.ts"],
                    "@x/b": ["packages/b/src/index.ts"],
                }
            }
        },
    )
    make_files(
        root / "packages" / "a",
        {
            "tsconfig.json": json.dumps({"compilerOptions": {"strict": True}}),
            "package.json": json.dumps({"name": "@x/a", "version": "1.0.0"}),
            "src/index.ts": "export const a = 1;\n",
            "README.md": "# a\n",
        },
    )
    make_files(
        root / "packages" / "b",
        {
            "tsconfig.json": "{}",
            "package.json": json.dumps({"name": "@x/b", "version": "2.0.0"}),
            "src/index.ts": "import { a } from '@x/a';\nimport React from 'react';\n",
            "src/bin/cli.ts": "import '@x/a';\n",
            "src/index.test.ts": "import { a } from '@x/a';\n",
        },
    )
    make_files(root / "packages" / "notes", {"readme.md": "not a package\n"})
    return root


@pytest.fixture
def monorepo(repo: Path) -> Path:
    return make_monorepo(repo)
