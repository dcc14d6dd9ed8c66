"""monoinject: inject external packages into a TypeScript monorepo and build it."""

__version__ = "0.1.0"

from monoinject.descriptor import load_targets, resolve_descriptor
from monoinject.exceptions import (
    BrokenLinkDetected,
    CommandFailedError,
    InjectorError,
    InvalidConfigurationError,
    LinkError,
    MissingSourceError,
    NotFoundError,
    UnlinkedFileOnEject,
    UntrackedConflictError,
)
from monoinject.linker.modes import LinkMode
from monoinject.linker.synchronizer import EjectResult, InjectResult, LinkSynchronizer
from monoinject.models import DependencyEdge, ManifestEntry, PackageDescriptor
from monoinject.settings import RunSettings
from monoinject.workspace import Workspace, load_workspace

__all__ = [
    "BrokenLinkDetected",
    "CommandFailedError",
    "DependencyEdge",
    "EjectResult",
    "InjectResult",
    "InjectorError",
    "InvalidConfigurationError",
    "LinkError",
    "LinkMode",
    "LinkSynchronizer",
    "ManifestEntry",
    "MissingSourceError",
    "NotFoundError",
    "PackageDescriptor",
    "RunSettings",
    "UnlinkedFileOnEject",
    "UntrackedConflictError",
    "Workspace",
    "load_targets",
    "load_workspace",
    "resolve_descriptor",
]
