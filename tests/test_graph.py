"""Tests for project references, dependency classification and build order."""

from __future__ import annotations

import itertools
from dataclasses import replace

from conftest import read_json, write_json
from monoinject.graph import (
    build_layers,
    classify_dependency,
    generate_manifest,
    index_by_name,
    project_references,
    root_tsconfig,
    select_version,
    update_tsconfigs,
)
from monoinject.linker.manifest import ManifestStore
from monoinject.models.manifest import ManifestEntry
from monoinject.models.package import PackageDescriptor
from monoinject.settings import RunSettings


def _pkg(name: str, deps: tuple[str, ...] = (), version: str | None = "1.0.0", tsconfig=None) -> PackageDescriptor:
    directory = f"packages/{name.split('/')[-1]}"
    package_json = {"name": name}
    if version:
        package_json["version"] = version
    return PackageDescriptor(
        dir=directory,
        dest=directory,
        key=directory,
        name=name,
        package_json=package_json,
        internal_deps=deps,
        tsconfig=tsconfig,
        tsconfig_path=f"{directory}/tsconfig.json" if tsconfig is not None else None,
    )


class TestProjectReferences:
    def test_sorted_and_resolved(self):
        a, b, c = _pkg("@x/a"), _pkg("@x/b"), _pkg("@x/c")
        consumer = _pkg("@x/app", deps=("@x/c", "@x/a", "@x/b", "react"))
        refs = project_references(consumer, index_by_name([a, b, c, consumer]))
        assert refs == [
            {"path": "../../packages/a"},
            {"path": "../../packages/b"},
            {"path": "../../packages/c"},
        ]

    def test_deterministic_for_any_order(self):
        deps = ["@x/a", "@x/b", "@x/c", "@x/d"]
        pkgs = [_pkg(n) for n in deps]
        results = set()
        for perm in itertools.permutations(deps):
            consumer = _pkg("@x/app", deps=tuple(perm))
            refs = project_references(consumer, index_by_name(pkgs + [consumer]))
            results.add(tuple(r["path"] for r in refs))
        assert len(results) == 1

    def test_self_reference_skipped(self):
        pkg = _pkg("@x/a", deps=("@x/a",))
        assert project_references(pkg, index_by_name([pkg])) == []


class TestClassifyDependency:
    ROOT = {"peerDependencies": {"@x/peer": "^2.0.0"}, "dependencies": {"@x/dep": "^3.0.0"}}
    ALIASES = {"@x/aliased": ["packages/aliased/src/index.ts"]}

    def test_regular_by_default(self):
        for name in ("@x/peer", "@x/aliased", "@x/dep"):
            assert classify_dependency(name, self.ROOT, self.ALIASES, False) == "dependencies"

    def test_peer_internal_only(self):
        assert classify_dependency("@x/peer", self.ROOT, self.ALIASES, True) == "peerDependencies"
        assert classify_dependency("@x/aliased", self.ROOT, self.ALIASES, True) == "peerDependencies"
        assert classify_dependency("@x/dep", self.ROOT, self.ALIASES, True) == "dependencies"


class TestSelectVersion:
    def test_precedence(self):
        local = index_by_name([_pkg("@x/a", version="4.5.6")])
        root = {"peerDependencies": {"@x/a": "^1.0.0"}, "dependencies": {"@x/a": "^2.0.0"}}
        assert select_version("@x/a", root, local) == "^1.0.0"
        assert select_version("@x/a", {"dependencies": {"@x/a": "^2.0.0"}}, local) == "^2.0.0"
        assert select_version("@x/a", {}, local) == "^4.5.6"

    def test_omitted_when_unknown(self):
        assert select_version("@x/none", {}, {}) is None
        unversioned = index_by_name([_pkg("@x/a", version=None)])
        assert select_version("@x/a", {}, unversioned) is None


class TestGenerateManifest:
    def test_dependencies_merged_and_sorted(self):
        a = _pkg("@x/a", version="1.1.0")
        app = _pkg("@x/app", deps=("@x/z", "@x/a"))
        app = replace(app, package_json={"name": "@x/app", "dependencies": {"zod": "3"}})
        root = {"dependencies": {"@x/z": "^9.0.0"}}
        manifest = generate_manifest(app, root, None, index_by_name([a, app]))
        assert list(manifest["dependencies"]) == ["@x/a", "@x/z", "zod"]
        assert manifest["dependencies"]["@x/a"] == "^1.1.0"
        assert "peerDependencies" not in manifest

    def test_unversioned_dependency_omitted(self):
        app = _pkg("@x/app", deps=("@x/ghost",))
        manifest = generate_manifest(app, {}, None, index_by_name([app]))
        assert "dependencies" not in manifest

    def test_source_package_json_untouched(self):
        a = _pkg("@x/a")
        app = _pkg("@x/app", deps=("@x/a",))
        generate_manifest(app, {}, None, index_by_name([a, app]))
        assert "dependencies" not in app.package_json

    def test_peer_mode(self):
        a = _pkg("@x/a")
        app = _pkg("@x/app", deps=("@x/a",))
        aliases = {"compilerOptions": {"paths": {"@x/a": ["packages/a/src/index.ts"]}}}
        manifest = generate_manifest(app, {}, aliases, index_by_name([a, app]), peer_internal_only=True)
        assert manifest["peerDependencies"] == {"@x/a": "^1.0.0"}


class TestBuildLayers:
    def test_dependencies_first(self):
        a = _pkg("@x/a")
        b = _pkg("@x/b", deps=("@x/a",))
        c = _pkg("@x/c", deps=("@x/b", "@x/a", "external"))
        d = _pkg("@x/d")
        layers = build_layers([c, b, d, a])
        assert [[p.name for p in layer] for layer in layers] == [["@x/a", "@x/d"], ["@x/b"], ["@x/c"]]

    def test_cycle_emitted_last(self):
        a = _pkg("@x/a")
        b = _pkg("@x/b", deps=("@x/a", "@x/c"))
        c = _pkg("@x/c", deps=("@x/b",))
        layers = build_layers([a, b, c])
        assert [p.name for p in layers[0]] == ["@x/a"]
        assert [p.name for p in layers[-1]] == ["@x/b", "@x/c"]

    def test_empty(self):
        assert build_layers([]) == []


class TestUpdateTsconfigs:
    def _write_pkgs(self, repo):
        a = _pkg("@x/a", tsconfig={"compilerOptions": {"strict": True}, "include": ["src"]})
        b = _pkg("@x/b", deps=("@x/a",), tsconfig={})
        for p in (a, b):
            write_json(repo / p.tsconfig_path, p.tsconfig)
        return [b, a]

    def test_writes_package_and_root(self, repo, settings):
        pkgs = self._write_pkgs(repo)
        written = update_tsconfigs(pkgs, settings)
        assert written == ["packages/b/tsconfig.json", "packages/a/tsconfig.json", "tsconfig.json"]

        b = read_json(repo / "packages/b/tsconfig.json")
        assert b["references"] == [{"path": "../../packages/a"}]
        assert b["compilerOptions"]["composite"] is True

        a = read_json(repo / "packages/a/tsconfig.json")
        assert a["references"] == []
        assert a["compilerOptions"] == {"strict": True, "composite": True}
        assert a["include"] == ["src"]

        root = read_json(repo / "tsconfig.json")
        assert root["files"] == []
        assert root["references"] == [{"path": "./packages/a"}, {"path": "./packages/b"}]

    def test_root_keeps_existing_fields(self):
        tsconfig = root_tsconfig({"files": ["x.ts"], "extends": "./base"}, [_pkg("@x/a")])
        assert tsconfig == {
            "files": ["x.ts"],
            "extends": "./base",
            "references": [{"path": "./packages/a"}],
        }

    def test_dry_run_writes_nothing(self, repo):
        pkgs = self._write_pkgs(repo)
        before = (repo / "packages/b/tsconfig.json").read_text()
        update_tsconfigs(pkgs, RunSettings(root=repo, dry_run=True))
        assert (repo / "packages/b/tsconfig.json").read_text() == before
        assert not (repo / "tsconfig.json").exists()

    def test_unchanged_files_not_rewritten(self, repo, settings):
        pkgs = self._write_pkgs(repo)
        update_tsconfigs(pkgs, settings)
        mtime = (repo / "packages/b/tsconfig.json").stat().st_mtime_ns
        assert update_tsconfigs(pkgs, settings) == []
        assert (repo / "packages/b/tsconfig.json").stat().st_mtime_ns == mtime

    def test_injected_destination_left_alone(self, repo, settings):
        b, a = self._write_pkgs(repo)
        store = ManifestStore(settings.path(settings.manifest_file))
        store.upsert(ManifestEntry.from_descriptor(replace(b, dir="../ext/b", key="ext-b")))
        store.save()
        before = (repo / "packages/b/tsconfig.json").read_text()

        written = update_tsconfigs([b, a], settings)

        assert "packages/b/tsconfig.json" not in written
        assert (repo / "packages/b/tsconfig.json").read_text() == before
        root = read_json(repo / "tsconfig.json")
        assert {"path": "./packages/b"} in root["references"]
