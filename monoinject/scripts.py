"""Named script targets (``run [pkg:]name``)."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from monoinject.core.fs import join_paths, package_dir_arg
from monoinject.core.jsonfile import load_json_or_default
from monoinject.exceptions import ScriptNotFoundError
from monoinject.process import CancelToken, run_command
from monoinject.settings import RunSettings

log = structlog.get_logger("monoinject.scripts")


@dataclass(frozen=True)
class ScriptTarget:
    name: str
    dir: str = "."

    @classmethod
    def parse(cls, value: str, packages_dir: str = "packages") -> ScriptTarget:
        """``name`` runs in the root; ``pkg:name`` runs in ``packages/pkg``; ``path/x:name`` in ``path/x``."""
        directory, sep, name = value.partition(":")
        if not sep:
            return cls(name=value)
        return cls(name=name, dir=package_dir_arg(directory, packages_dir))


@dataclass(frozen=True)
class ResolvedScript:
    cmd: str
    cwd: str
    source: str


def resolve_script(target: ScriptTarget, settings: RunSettings) -> ResolvedScript:
    """Find the command for *target*.

    Lookup order: ``scripts`` of the config file, ``scripts`` of
    ``package.json``, ``<name>.sh``, ``scripts/<name>.sh``.
    """
    for file_name in (settings.config_file, "package.json"):
        source = join_paths(target.dir, file_name)
        data = load_json_or_default(settings.path(source), None)
        script = ((data or {}).get("scripts") or {}).get(target.name) if isinstance(data, dict) else None
        if isinstance(script, str) and script:
            return ResolvedScript(cmd=script, cwd=target.dir, source=source)

    for rel in (f"{target.name}.sh", f"scripts/{target.name}.sh"):
        source = join_paths(target.dir, rel)
        if settings.path(source).is_file():
            cwd, _, base = source.rpartition("/")
            return ResolvedScript(cmd=f"./{base}", cwd=cwd or ".", source=source)

    raise ScriptNotFoundError(target.dir, target.name)


async def run_script(target: ScriptTarget, settings: RunSettings, token: CancelToken | None = None) -> int:
    """Run *target*; a non-zero exit raises ``CommandFailedError`` carrying the child's code."""
    script = resolve_script(target, settings)
    log.info("script.run", target=f"{target.dir}:{target.name}", source=script.source)
    return await run_command(script.cmd, settings, script.cwd, token=token)
