"""Tests for descriptor resolution and inject target loading."""

from __future__ import annotations

import json

import pytest

from conftest import make_files, write_json
from monoinject.descriptor import load_targets, resolve_descriptor
from monoinject.exceptions import InvalidConfigurationError, NotFoundError
from monoinject.models.config import InjectEntry
from monoinject.models.package import derive_key


class TestDeriveKey:
    def test_lowercase_and_trailing_slash(self):
        assert derive_key("Packages/Foo/") == "packages/foo"

    def test_whitespace(self):
        assert derive_key("  packages/foo  ") == "packages/foo"


class TestResolveDescriptor:
    @pytest.mark.asyncio
    async def test_defaults_from_package_json(self, external, settings):
        pkg = await resolve_descriptor(str(external), settings)
        assert pkg.name == "@ns/foo"
        assert pkg.dest == "packages/foo"
        assert pkg.key == "packages/foo"
        assert pkg.index_path == "src/index.ts"
        assert pkg.version == "1.2.3"
        assert pkg.tsconfig is None
        assert pkg.config is None

    @pytest.mark.asyncio
    async def test_entry_overrides(self, external, settings):
        entry = InjectEntry.model_validate(
            {
                "dir": str(external),
                "dest": "Packages/Bar/",
                "npmName": "@ns/bar",
                "indexPath": "index.ts",
                "disableGitIgnore": True,
                "isNpmDevDep": True,
            }
        )
        pkg = await resolve_descriptor(str(external), settings, entry)
        assert pkg.name == "@ns/bar"
        assert pkg.dest == "Packages/Bar/"
        assert pkg.key == "packages/bar"
        assert pkg.index_path == "index.ts"
        assert pkg.disable_gitignore is True
        assert pkg.is_dev_dependency is True

    @pytest.mark.asyncio
    async def test_without_name_has_no_index(self, tmp_path, settings):
        src = make_files(tmp_path / "anon", {"src/index.ts": ""})
        pkg = await resolve_descriptor(str(src), settings)
        assert pkg.name is None
        assert pkg.index_path is None
        assert pkg.package_json == {}

    @pytest.mark.asyncio
    async def test_reads_tsconfig_and_local_config(self, repo, settings):
        make_files(
            repo / "packages" / "app",
            {
                "package.json": json.dumps({"name": "@acme/app"}),
                "tsconfig.json": json.dumps({"compilerOptions": {"outDir": "../../out"}}),
                ".monoinject.json": json.dumps({"type": "nextjs", "build": {"disabled": True}}),
            },
        )
        pkg = await resolve_descriptor("packages/app", settings)
        assert pkg.tsconfig_path == "packages/app/tsconfig.json"
        assert pkg.tsconfig["compilerOptions"]["outDir"] == "../../out"
        assert pkg.package_type == "nextjs"
        assert pkg.build_disabled is True

    @pytest.mark.asyncio
    async def test_missing_directory(self, settings):
        with pytest.raises(NotFoundError, match="packages/missing"):
            await resolve_descriptor("packages/missing", settings)

    @pytest.mark.asyncio
    async def test_malformed_package_json(self, tmp_path, settings):
        src = make_files(tmp_path / "bad", {"package.json": "{not json"})
        with pytest.raises(InvalidConfigurationError):
            await resolve_descriptor(str(src), settings)

    @pytest.mark.asyncio
    async def test_package_json_must_be_object(self, tmp_path, settings):
        src = make_files(tmp_path / "arr", {"package.json": "[]"})
        with pytest.raises(InvalidConfigurationError):
            await resolve_descriptor(str(src), settings)


class TestLoadTargets:
    @pytest.mark.asyncio
    async def test_config_file(self, repo, external, settings):
        write_json(
            repo / ".monoinject.json",
            {"inject": [{"dir": f"  {external}  "}], "ignore": ["coverage"]},
        )
        pkgs, new_settings = await load_targets([], settings)
        assert [p.name for p in pkgs] == ["@ns/foo"]
        assert "coverage" in new_settings.ignore
        assert "coverage" not in settings.ignore

    @pytest.mark.asyncio
    async def test_directory_path(self, external, settings):
        pkgs, _ = await load_targets([str(external)], settings)
        assert [p.dest for p in pkgs] == ["packages/foo"]

    @pytest.mark.asyncio
    async def test_missing_path(self, settings):
        with pytest.raises(NotFoundError):
            await load_targets(["nowhere"], settings)

    @pytest.mark.asyncio
    async def test_same_dir_twice_is_deduplicated(self, external, settings):
        pkgs, _ = await load_targets([str(external), str(external)], settings)
        assert len(pkgs) == 1

    @pytest.mark.asyncio
    async def test_duplicate_key_rejected(self, tmp_path, external, settings):
        other = make_files(tmp_path / "other" / "foo", {"package.json": "{}"})
        with pytest.raises(InvalidConfigurationError, match="packages/foo"):
            await load_targets([str(external), str(other)], settings)

    @pytest.mark.asyncio
    async def test_invalid_config(self, repo, settings):
        write_json(repo / "bad.json", {"inject": "not-a-list"})
        with pytest.raises(InvalidConfigurationError):
            await load_targets(["bad.json"], settings)
