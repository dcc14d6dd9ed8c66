"""Dependency scanner — classify imported module names as internal or external."""

from monoinject.scanner.imports import (
    classify,
    extract_imports,
    find_dependencies,
    normalize_module_name,
)
from monoinject.scanner.scanner import ScanResult, scan_package, scan_package_async

__all__ = [
    "ScanResult",
    "classify",
    "extract_imports",
    "find_dependencies",
    "normalize_module_name",
    "scan_package",
    "scan_package_async",
]
