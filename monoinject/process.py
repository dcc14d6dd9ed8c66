"""Child processes and the bounded concurrency window."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path
from typing import TypeVar

import click
import structlog

from monoinject.exceptions import CommandFailedError
from monoinject.settings import RunSettings

log = structlog.get_logger("monoinject.process")

T = TypeVar("T")
R = TypeVar("R")


class CancelToken:
    """Kill hook for in-flight child processes.

    Filesystem work is never interrupted; only processes started through
    :func:`run_command` with this token are killed.
    """

    def __init__(self) -> None:
        self.cancelled = False
        self._procs: set[asyncio.subprocess.Process] = set()

    def register(self, proc: asyncio.subprocess.Process) -> None:
        self._procs.add(proc)

    def unregister(self, proc: asyncio.subprocess.Process) -> None:
        self._procs.discard(proc)

    def cancel(self) -> None:
        self.cancelled = True
        for proc in list(self._procs):
            if proc.returncode is None:
                log.warning("process.kill", pid=proc.pid)
                proc.kill()


async def _pump(stream: asyncio.StreamReader | None, err: bool) -> None:
    if stream is None:
        return
    while True:
        line = await stream.readline()
        if not line:
            break
        click.echo(line.decode(errors="replace").rstrip("\n"), err=err)


async def run_command(
    cmd: str,
    settings: RunSettings,
    cwd: str | Path | None = None,
    *,
    env: dict[str, str] | None = None,
    token: CancelToken | None = None,
    check: bool = True,
) -> int:
    """Run *cmd* in a shell, streaming its output through line by line.

    Returns the exit code. With ``check`` a non-zero code raises
    :class:`CommandFailedError`. In dry-run mode the command is only logged.
    """
    workdir = settings.path(cwd) if cwd is not None else settings.root
    if settings.dry_run:
        log.info("process.run", cmd=cmd, cwd=str(workdir), dry_run=True)
        return 0
    if token is not None and token.cancelled:
        raise CommandFailedError(cmd, -1, str(workdir))

    log.info("process.run", cmd=cmd, cwd=str(workdir))
    proc = await asyncio.create_subprocess_shell(
        cmd,
        cwd=str(workdir),
        env={**os.environ, **env} if env else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    if token is not None:
        token.register(proc)
    try:
        await asyncio.gather(_pump(proc.stdout, False), _pump(proc.stderr, True))
        code = await proc.wait()
    finally:
        if token is not None:
            token.unregister(proc)

    if code != 0:
        log.error("process.failed", cmd=cmd, cwd=str(workdir), exit_code=code)
        if check:
            raise CommandFailedError(cmd, code, str(workdir))
    return code


async def run_bounded(
    items: Iterable[T],
    fn: Callable[[T], Awaitable[R]],
    window: int,
) -> list[R]:
    """Apply *fn* to every item with at most *window* calls in flight.

    When the window is full the whole batch is awaited before more work is
    admitted. Results keep the order of *items*.
    """
    window = max(1, window)
    results: list[R] = []
    batch: list[Awaitable[R]] = []
    for item in items:
        batch.append(fn(item))
        if len(batch) >= window:
            results.extend(await asyncio.gather(*batch))
            batch = []
    if batch:
        results.extend(await asyncio.gather(*batch))
    return results
