from monoinject.models.config import BuildConfig, InjectEntry, ProjectConfig
from monoinject.models.manifest import ManifestEntry
from monoinject.models.package import DependencyEdge, PackageDescriptor, derive_key

__all__ = [
    "BuildConfig",
    "DependencyEdge",
    "InjectEntry",
    "ManifestEntry",
    "PackageDescriptor",
    "ProjectConfig",
    "derive_key",
]
