"""Build and test orchestration.

The compiler (``tsc``), bundler (``esbuild``) and test runner (``jest``) are
run as child processes; this module only decides what to run, where, and in
which order, and writes the packaging files around their output.
"""

from __future__ import annotations

import asyncio
import shlex
import shutil
from dataclasses import dataclass
from typing import Any

import structlog

from monoinject.core.fs import join_paths, walk_tree
from monoinject.core.jsonfile import dump_json, write_json
from monoinject.graph import build_layers, update_tsconfigs
from monoinject.models.package import PackageDescriptor
from monoinject.process import CancelToken, run_bounded, run_command
from monoinject.progress import ProgressTracker
from monoinject.settings import WORK_DIR_NAME, RunSettings
from monoinject.workspace import Workspace

log = structlog.get_logger("monoinject.builder")

DEFAULT_OUT_DIR = "../../dist"
TESTS_OUT_DIR = f"{WORK_DIR_NAME}/tests"

NODE_EXTERNALS = [
    "path",
    "fs",
    "events",
    "readline",
    "http",
    "os",
    "stream",
    "child_process",
    "inspector",
    "fsevents",
]

ESBUILD_BASE: dict[str, Any] = {
    "bundle": True,
    "platform": "node",
    "target": "node20",
    "minify": False,
    "format": "cjs",
    "sourcemap": "external",
    "tree-shaking": True,
}

BIN_BANNER = "#!/usr/bin/env node"


@dataclass(frozen=True)
class PackageOut:
    base: str  # output root shared by all packages
    dir: str  # this package's output directory


def package_out(pkg: PackageDescriptor) -> PackageOut:
    out_dir = ((pkg.tsconfig or {}).get("compilerOptions") or {}).get("outDir") or DEFAULT_OUT_DIR
    base = join_paths(pkg.dir, out_dir)
    return PackageOut(base=base, dir=join_paths(base, pkg.dir))


def esbuild_args(options: dict[str, Any]) -> str:
    """Render esbuild options: ``--key=value``, lists as repeated ``--key:value``."""
    args: list[str] = []
    for key, value in options.items():
        if isinstance(value, list):
            args.extend(shlex.quote(f"--{key}:{v}") for v in value)
        else:
            if isinstance(value, bool):
                value = "true" if value else "false"
            args.append(shlex.quote(f"--{key}={value}"))
    return " ".join(args)


def esbuild_options(pkg: PackageDescriptor, outdir: str, **extra: Any) -> dict[str, Any]:
    return {
        **ESBUILD_BASE,
        "outdir": outdir,
        "external": ["node:*", *NODE_EXTERNALS, *pkg.external_deps],
        **extra,
    }


async def esbuild(
    pkg: PackageDescriptor,
    files: list[str],
    outdir: str,
    settings: RunSettings,
    *,
    clear_out: bool = False,
    token: CancelToken | None = None,
    **extra: Any,
) -> None:
    """Bundle *files* (relative to the package dir) into *outdir* (repo-relative)."""
    out_path = settings.path(outdir)
    if clear_out and not settings.dry_run:
        shutil.rmtree(out_path, ignore_errors=True)
        out_path.mkdir(parents=True, exist_ok=True)
    options = esbuild_options(pkg, str(out_path.resolve()), **extra)
    cmd = f"npx esbuild {' '.join(shlex.quote(f) for f in files)} {esbuild_args(options)}"
    await run_command(cmd, settings, pkg.dir, token=token)


async def build_lib(pkg: PackageDescriptor, settings: RunSettings, token: CancelToken | None = None) -> None:
    if pkg.tsconfig is None or not pkg.tsconfig_path:
        return
    log.info("build.lib", package=pkg.dir)
    await run_command("npx tsc --project tsconfig.json", settings, pkg.dir, token=token)


async def build_bins(
    pkg: PackageDescriptor,
    manifest: dict[str, Any],
    settings: RunSettings,
    token: CancelToken | None = None,
) -> dict[str, Any]:
    """Bundle every ``src/bin`` entry point and return *manifest* with a ``bin`` map added."""
    if not pkg.bin_dir or not pkg.tsconfig_path:
        return manifest
    bin_path = settings.path(pkg.bin_dir)
    entries = sorted(
        f.name for f in bin_path.iterdir() if f.is_file() and f.suffix.lower() in (".ts", ".js")
    )
    if not entries:
        return manifest

    bin_rel = pkg.bin_dir[len(pkg.dir) :].lstrip("/")
    files = [join_paths(bin_rel, name) for name in entries]
    outdir = join_paths(package_out(pkg).dir, "bin")
    options = {"banner:js": BIN_BANNER}
    if pkg.config:
        options.update(pkg.config.bin_build_options)

    log.info("build.bin", package=pkg.dir, entries=entries)
    await esbuild(pkg, files, outdir, settings, clear_out=True, token=token, **options)

    if settings.dry_run or "bin" in manifest:
        return manifest
    built = sorted(f.name for f in settings.path(outdir).iterdir() if f.name.endswith(".js"))
    return {**manifest, "bin": {name[: -len(".js")]: f"bin/{name}" for name in built}}


def write_package_files(
    pkg: PackageDescriptor,
    manifest: dict[str, Any],
    settings: RunSettings,
) -> dict[str, Any]:
    """Write the dist ``package.json``, ``src/package.json`` and assets for *pkg*."""
    out = package_out(pkg)
    out_path = settings.path(out.dir)
    manifest = dict(manifest)
    if "main" not in manifest and (out_path / "src" / "index.js").is_file():
        manifest["main"] = "./src/index.js"
    manifest.setdefault("sideEffects", False)

    if settings.dry_run:
        log.info("build.package_json", path=join_paths(out.dir, "package.json"), dry_run=True, content=dump_json(manifest))
        return manifest
    if not out_path.is_dir():
        log.warning("build.no_output", package=pkg.dir, out=out.dir)
        return manifest

    write_json(out_path / "package.json", manifest)
    if (out_path / "src").is_dir():
        (out_path / "src" / "package.json").write_text('{"sideEffects":false}', encoding="utf-8")
    for asset in pkg.assets:
        target = settings.path(join_paths(out.base, asset))
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(settings.path(asset), target)
    return manifest


async def build_package(
    pkg: PackageDescriptor,
    manifest: dict[str, Any],
    settings: RunSettings,
    token: CancelToken | None = None,
) -> dict[str, Any] | None:
    """Build one package. Returns the dist manifest, or None when building is disabled."""
    if pkg.build_disabled:
        log.info("build.skip", package=pkg.dir, reason="disabled")
        return None
    if settings.build_individual_packages and pkg.package_type == "lib":
        await build_lib(pkg, settings, token)
    manifest = await build_bins(pkg, manifest, settings, token)
    return await asyncio.to_thread(write_package_files, pkg, manifest, settings)


async def build(
    workspace: Workspace,
    settings: RunSettings,
    dirs: list[str] | tuple[str, ...] | None = None,
    tracker: ProgressTracker | None = None,
    token: CancelToken | None = None,
) -> list[PackageDescriptor]:
    """Regenerate tsconfigs, compile, then package every selected package.

    Packages are processed layer by layer so a package is only packaged
    after its internal dependencies.
    """
    tracker = tracker or ProgressTracker()
    with tracker.track("tsconfig"):
        update_tsconfigs(workspace.packages, settings)

    if settings.build_individual_packages:
        tracker.skip("compile", "individual package builds")
    else:
        with tracker.track("compile"):
            await run_command("npx tsc --build", settings, token=token)

    async def _build(pkg: PackageDescriptor) -> dict[str, Any] | None:
        return await build_package(pkg, workspace.manifests[pkg.dir], settings, token)

    selected = workspace.select(dirs)
    built: list[PackageDescriptor] = []
    for i, layer in enumerate(build_layers(selected)):
        with tracker.track(f"layer-{i}") as step:
            results = await run_bounded(layer, _build, settings.max_concurrency)
            done = [pkg for pkg, r in zip(layer, results) if r is not None]
            built.extend(done)
            step.detail = ", ".join(pkg.dir for pkg in done)
    return built


def find_test_files(pkg: PackageDescriptor, settings: RunSettings) -> list[str]:
    """Test entry points of *pkg*, relative to the package dir."""
    return [
        rel
        for rel, is_dir in walk_tree(settings.path(pkg.dir), settings.ignore)
        if not is_dir and (rel.endswith(".test.ts") or rel.endswith(".spec.ts"))
    ]


async def build_tests(pkg: PackageDescriptor, settings: RunSettings, token: CancelToken | None = None) -> bool:
    files = await asyncio.to_thread(find_test_files, pkg, settings)
    if not files:
        log.info("test.none", package=pkg.dir)
        return False
    outdir = join_paths(TESTS_OUT_DIR, pkg.dir)
    log.info("test.bundle", package=pkg.dir, files=files)
    if not settings.dry_run:
        settings.path(outdir).mkdir(parents=True, exist_ok=True)
    await esbuild(pkg, files, outdir, settings, token=token)
    return True


async def run_tests(
    packages: list[PackageDescriptor],
    settings: RunSettings,
    token: CancelToken | None = None,
) -> int:
    """Bundle tests of *packages* into the work dir and run jest over them."""
    if not settings.dry_run:
        shutil.rmtree(settings.path(TESTS_OUT_DIR), ignore_errors=True)

    async def _bundle(pkg: PackageDescriptor) -> bool:
        return await build_tests(pkg, settings, token)

    bundled = await run_bounded(packages, _bundle, settings.max_concurrency)
    if not any(bundled):
        log.warning("test.nothing_to_run", packages=len(packages))
        return 0
    return await run_command(f"npx jest --rootDir {shlex.quote(TESTS_OUT_DIR)}", settings, token=token)
