"""CLI entry point: monoinject.

Subcommands:
    monoinject inject [PATH...]          # Link external packages into packages/
    monoinject eject [PATH...]           # Verify and remove injected packages
    monoinject build [PKG...]            # Compile and package
    monoinject update-tsconfig           # Regenerate project references
    monoinject list-deps                 # Internal/external dependencies per package
    monoinject set-version [VERSION]     # Absolute version or +x.y.z increment
    monoinject publish [PKG...]          # Publish unpublished versions
    monoinject test [PKG...]             # Bundle and run tests
    monoinject run [PKG:]NAME...         # Run a named script
    monoinject clean                     # Remove build output
    monoinject create-lib NAME           # Scaffold a library package
    monoinject update-imports DIR        # Add .js to relative imports
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import TypeVar

import click
import structlog

from monoinject import builder, maintenance, publish as publishing, versioning
from monoinject.core.env import env_file_arg, load_env_files
from monoinject.core.fs import package_dir_arg
from monoinject.core.logging import setup_logging
from monoinject.descriptor import load_targets
from monoinject.exceptions import CommandFailedError, InjectorError
from monoinject.graph import update_tsconfigs
from monoinject.linker.modes import LinkMode
from monoinject.linker.synchronizer import LinkSynchronizer
from monoinject.models.config import load_project_config
from monoinject.process import CancelToken, run_command
from monoinject.progress import ProgressTracker
from monoinject.scripts import ScriptTarget, run_script
from monoinject.settings import DEFAULT_ENV_FILES, RunSettings
from monoinject.workspace import list_dependencies, load_workspace

log = structlog.get_logger("monoinject.cli")

T = TypeVar("T")


@contextmanager
def _errors() -> Iterator[None]:
    """Report monoinject errors on stderr and exit non-zero."""
    try:
        yield
    except CommandFailedError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(e.exit_code if e.exit_code > 0 else 1)
    except InjectorError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _run(fn: Callable[[CancelToken], Awaitable[T]]) -> T:
    """Run an async command; interruption kills any child processes it started."""
    token = CancelToken()

    async def _guarded() -> T:
        try:
            return await fn(token)
        except asyncio.CancelledError:
            token.cancel()
            raise

    return asyncio.run(_guarded())


def _package_dirs(settings: RunSettings, pkgs: tuple[str, ...]) -> list[str]:
    return [package_dir_arg(p, settings.packages_dir) for p in pkgs]


async def _after_link(settings: RunSettings, host_changed: bool, token: CancelToken) -> None:
    if settings.path(settings.package_json_file).is_file():
        workspace = await load_workspace(settings)
        update_tsconfigs(workspace.packages, settings)
    if host_changed:
        if settings.skip_install:
            log.info("npm.install_skipped")
        else:
            click.echo("Changes to package.json made. Running npm install", err=True)
            await run_command("npm install", settings, token=token)


@click.group()
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Monorepo root",
)
@click.option("--dry-run", is_flag=True, help="Log changes instead of making them")
@click.option(
    "--link",
    "link_mode",
    default=LinkMode.HARD_LINK.value,
    show_default=True,
    help="How injected files are linked: hard-link, sym-link or copy",
)
@click.option("--ignore", multiple=True, help="Additional file or directory name to ignore")
@click.option("--git-ignore", default=".gitignore", show_default=True, help="Ignore file to update")
@click.option("--ts-config", default="tsconfig.base.json", show_default=True, help="Alias table file")
@click.option("--package-json", default="package.json", show_default=True, help="Host package.json")
@click.option("--skip-install", is_flag=True, help="Do not run npm install after package.json changes")
@click.option("--delete-unlinked", is_flag=True, help="Replace broken links during inject")
@click.option("-y", "--yes", is_flag=True, help="Answer yes to confirmation prompts")
@click.option("--env", multiple=True, help="Extra env file (NAME loads .env.NAME)")
@click.option("--clear-env", is_flag=True, help="Do not load the default env files")
@click.option("--max-concurrency", type=click.IntRange(min=1), default=None, help="Concurrency window")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
@click.option("-q", "--quiet", is_flag=True, help="Only log warnings and errors")
@click.pass_context
def main(
    ctx: click.Context,
    root: Path,
    dry_run: bool,
    link_mode: str,
    ignore: tuple[str, ...],
    git_ignore: str,
    ts_config: str,
    package_json: str,
    skip_install: bool,
    delete_unlinked: bool,
    yes: bool,
    env: tuple[str, ...],
    clear_env: bool,
    max_concurrency: int | None,
    verbose: bool,
    quiet: bool,
) -> None:
    """monoinject: inject external packages into a TypeScript monorepo and build it."""
    setup_logging(verbose=verbose, quiet=quiet)
    root = root.resolve()
    env_files = ([] if clear_env else list(DEFAULT_ENV_FILES)) + [env_file_arg(e) for e in env]
    with _errors():
        load_env_files(root, env_files)
        options = dict(
            root=root,
            link_mode=LinkMode.parse(link_mode),
            dry_run=dry_run,
            verbose=verbose,
            quiet=quiet,
            delete_unlinked=delete_unlinked,
            gitignore_file=git_ignore,
            alias_file=ts_config,
            package_json_file=package_json,
            skip_install=skip_install,
            yes=yes,
        )
        if max_concurrency is not None:
            options["max_concurrency"] = max_concurrency
        settings = RunSettings(**options).with_ignore(ignore)
    log.debug("cli.settings", settings=str(settings))
    ctx.obj = settings


@main.command()
@click.argument("paths", nargs=-1)
@click.pass_obj
def inject(settings: RunSettings, paths: tuple[str, ...]) -> None:
    """Inject packages from config files or package directories (default: .monoinject.json)."""

    async def _inject(token: CancelToken) -> None:
        descriptors, run_settings = await load_targets(list(paths), settings)
        sync = LinkSynchronizer(run_settings)
        host_changed = False
        broken = 0
        for pkg in descriptors:
            result = sync.inject(pkg)
            host_changed = host_changed or result.host_changed
            broken += sum(1 for b in result.broken_links if not b.deleted)
            click.echo(f"inject: {pkg.dir} -> {pkg.dest}")
        if broken:
            click.echo(
                f"{broken} broken link(s) left in place. Use --delete-unlinked to replace them.",
                err=True,
            )
        await _after_link(run_settings, host_changed, token)

    with _errors():
        _run(_inject)


@main.command()
@click.argument("paths", nargs=-1)
@click.pass_obj
def eject(settings: RunSettings, paths: tuple[str, ...]) -> None:
    """Eject injected packages after verifying no local edits would be lost."""

    async def _eject(token: CancelToken) -> None:
        descriptors, run_settings = await load_targets(list(paths), settings)
        sync = LinkSynchronizer(run_settings)
        host_changed = False
        for pkg in descriptors:
            result = sync.eject(pkg)
            host_changed = host_changed or result.host_changed
            click.echo(f"eject: {pkg.dir} -> {pkg.dest}")
        await _after_link(run_settings, host_changed, token)

    with _errors():
        _run(_eject)


@main.command()
@click.argument("pkgs", nargs=-1)
@click.option("--peer-internal-only", is_flag=True, help="Only alias/root-peer deps become peerDependencies")
@click.option("--individual", is_flag=True, help="Compile each lib package on its own (implied by PKGS)")
@click.pass_obj
def build(settings: RunSettings, pkgs: tuple[str, ...], peer_internal_only: bool, individual: bool) -> None:
    """Build all packages, or only PKGS (each compiled on its own)."""
    settings = replace(
        settings,
        peer_internal_only=peer_internal_only,
        build_individual_packages=individual or bool(pkgs),
    )
    tracker = ProgressTracker()

    async def _build(token: CancelToken) -> list:
        workspace = await load_workspace(settings)
        return await builder.build(workspace, settings, _package_dirs(settings, pkgs), tracker, token)

    with _errors():
        built = _run(_build)

    summary = tracker.summary()
    for step in summary["steps"]:
        duration = "-" if step["duration"] is None else f"{step['duration']:.2f}s"
        click.echo(f"  {step['step']:<10} {step['status']:<10} {duration:>8}  {step['detail']}".rstrip())
    click.echo(f"Build complete: {len(built)} package(s) in {summary['total_duration']:.2f}s")


@main.command("update-tsconfig")
@click.pass_obj
def update_tsconfig(settings: RunSettings) -> None:
    """Regenerate project references in every tsconfig.json."""

    async def _update(token: CancelToken) -> list[str]:
        workspace = await load_workspace(settings)
        return update_tsconfigs(workspace.packages, settings)

    with _errors():
        for path in _run(_update):
            click.echo(path)


@main.command("list-deps")
@click.pass_obj
def list_deps(settings: RunSettings) -> None:
    """List internal and external dependencies of every package."""

    async def _load(token: CancelToken):
        return await load_workspace(settings)

    with _errors():
        per_package, everything = list_dependencies(_run(_load))

    rule = "-" * 39
    for directory, (internal, external) in per_package.items():
        click.echo(rule)
        click.echo(f"{directory} ({len(internal)} / {len(external)})")
        click.echo("Internal:")
        for dep in internal:
            click.echo(dep)
        click.echo("External:")
        for dep in external:
            click.echo(dep)
    click.echo(rule)
    click.echo("All:")
    for dep in everything:
        click.echo(dep)


@main.command("set-version")
@click.argument("version", default=versioning.DEFAULT_INCREMENT)
@click.pass_obj
def set_version(settings: RunSettings, version: str) -> None:
    """Set VERSION on in-scope packages and the root (+x.y.z increments)."""
    with _errors():
        config = load_project_config(settings.path(settings.config_file))
        changes = versioning.set_versions(version, config, settings)
    for change in changes:
        click.echo(f"{change.name} {change.old or '0.0.0'} -> {change.new}")


@main.command()
@click.argument("pkgs", nargs=-1)
@click.option("--no-build", is_flag=True, help="Publish existing build output")
@click.pass_obj
def publish(settings: RunSettings, pkgs: tuple[str, ...], no_build: bool) -> None:
    """Publish in-scope lib packages whose version is not yet on the registry."""
    dirs = _package_dirs(settings, pkgs)
    if pkgs:
        settings = replace(settings, build_individual_packages=True)

    async def _plan(token: CancelToken) -> list[publishing.PublishCandidate]:
        workspace = await load_workspace(settings)
        if not no_build:
            await builder.build(workspace, settings, dirs, token=token)
        config = load_project_config(settings.path(settings.config_file))
        async with publishing.RegistryClient() as client:
            return await publishing.plan_publish(workspace, config, client, dirs)

    with _errors():
        candidates = _run(_plan)
        if not candidates:
            click.echo("Nothing to publish")
            return

        click.echo("\nPackages to be published:\n" + "-" * 37)
        for candidate in candidates:
            click.echo(candidate.describe())
        click.echo("-" * 37 + "\n")

        if not settings.yes and not click.confirm(
            "Packages ready to publish. Would you like to continue?"
        ):
            return

        async def _publish(token: CancelToken) -> None:
            await publishing.publish(candidates, settings, token)

        _run(_publish)


@main.command()
@click.argument("pkgs", nargs=-1)
@click.pass_obj
def test(settings: RunSettings, pkgs: tuple[str, ...]) -> None:
    """Bundle and run tests for PKGS (default: packages in publish scope)."""

    async def _test(token: CancelToken) -> int:
        workspace = await load_workspace(settings)
        if pkgs:
            packages = workspace.select(_package_dirs(settings, pkgs))
        else:
            config = load_project_config(settings.path(settings.config_file))
            packages = [
                p
                for p in workspace.packages
                if not publishing.has_scope(config) or publishing.is_in_publish_scope(p.name, config)
            ]
        update_tsconfigs(workspace.packages, settings)
        return await builder.run_tests(packages, settings, token)

    with _errors():
        _run(_test)


@main.command("run")
@click.argument("targets", nargs=-1, required=True)
@click.pass_obj
def run_scripts(settings: RunSettings, targets: tuple[str, ...]) -> None:
    """Run named scripts: NAME or PKG:NAME."""

    async def _scripts(token: CancelToken) -> None:
        for value in targets:
            await run_script(ScriptTarget.parse(value, settings.packages_dir), settings, token)

    with _errors():
        _run(_scripts)


@main.command()
@click.pass_obj
def clean(settings: RunSettings) -> None:
    """Remove build output and caches."""
    for path in maintenance.clean(settings):
        click.echo(f"{'dry run> ' if settings.dry_run else ''}rm -rf {path}")


@main.command("create-lib")
@click.argument("name")
@click.pass_obj
def create_lib(settings: RunSettings, name: str) -> None:
    """Scaffold packages/NAME as a library."""
    with _errors():
        directory = maintenance.create_lib(name, settings)
    click.echo(f"Created {directory}")


@main.command("update-imports")
@click.argument("directory")
@click.pass_obj
def update_imports(settings: RunSettings, directory: str) -> None:
    """Append .js to extension-less relative imports under DIRECTORY."""
    with _errors():
        changed = maintenance.update_imports(directory, settings)
    for path in changed:
        click.echo(path)
