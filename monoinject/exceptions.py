"""Custom exceptions for monoinject."""

from __future__ import annotations


class InjectorError(Exception):
    """Base exception for all monoinject errors."""


class NotFoundError(InjectorError):
    """Raised when a package directory or a required file does not exist."""


class MissingSourceError(NotFoundError):
    """Raised when the source directory of an inject/eject target is missing."""

    def __init__(self, source_dir: str):
        self.source_dir = source_dir
        super().__init__(f"Package source {source_dir} is not a directory")


class UntrackedConflictError(InjectorError):
    """Raised when a destination exists but is not owned by a manifest entry.

    Continuing would risk overwriting (inject) or deleting (eject) files that
    were never injected.
    """

    def __init__(self, source_dir: str, dest: str, operation: str = "inject"):
        self.source_dir = source_dir
        self.dest = dest
        self.operation = operation
        super().__init__(
            f"Package {source_dir} {operation} destination {dest} already exists but is not "
            f"in the injected package manifest. Continuing could overwrite non-injected files."
        )


class BrokenLinkDetected(InjectorError):
    """A destination file no longer matches its source under the active link mode.

    Reported as a warning during inject; never raised by the synchronizer.
    """

    def __init__(self, src: str, dest: str, deleted: bool = False):
        self.src = src
        self.dest = dest
        self.deleted = deleted
        super().__init__(f"Broken link detected: {src} -> {dest}")


class UnlinkedFileOnEject(InjectorError):
    """Raised when eject verification finds a destination file that would be lost."""

    def __init__(self, src: str, dest: str, missing: bool = False):
        self.src = src
        self.dest = dest
        self.missing = missing
        if missing:
            message = (
                "Found an unlinked file in ejecting package. File does not exist in package "
                f"source - (missing) {src} -> {dest}"
            )
        else:
            message = f"Unlinked file detected. Can not eject or risk losing changes. {src} -> {dest}"
        super().__init__(message)


class LinkError(InjectorError):
    """Raised when the filesystem refuses to mirror a file into a destination.

    Typical causes are hard links across filesystems (EXDEV) or a directory
    sitting where a file is expected.
    """

    def __init__(self, src: str, dest: str, mode: str, reason: str):
        self.src = src
        self.dest = dest
        self.mode = mode
        self.reason = reason
        super().__init__(f"Unable to {mode} {src} -> {dest}: {reason}")


class InvalidConfigurationError(InjectorError):
    """Raised for malformed config/manifest JSON, unknown link modes or duplicate keys."""


class CommandFailedError(InjectorError):
    """Raised when a child process exits with a non-zero code."""

    def __init__(self, cmd: str, exit_code: int, cwd: str | None = None):
        self.cmd = cmd
        self.exit_code = exit_code
        self.cwd = cwd
        super().__init__(f"Command failed (exit {exit_code}) in {cwd or '.'}: {cmd}")


class RegistryError(InjectorError):
    """Raised when the package registry lookup fails."""


class ScriptNotFoundError(NotFoundError):
    """Raised when a ``run`` target cannot be resolved to a script."""

    def __init__(self, directory: str, name: str):
        self.directory = directory
        self.name = name
        super().__init__(f"No script found by target - {directory}:{name}")
