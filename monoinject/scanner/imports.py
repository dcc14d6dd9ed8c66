"""Import extraction and internal/external classification.

Extraction is pattern matching over import/export/require syntax after
comments have been stripped. Targets that are built at runtime (template
literals, concatenation) cannot be resolved statically and are skipped.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Literal

# Comments are dropped; string and template literals are kept verbatim so
# comment markers inside strings (e.g. URLs) survive.
_TOKEN_RE = re.compile(
    r"//[^\n]*"
    r"|/\*.*?\*/"
    r"|'(?:\\.|[^'\\\n])*'"
    r'|"(?:\\.|[^"\\\n])*"'
    r"|`(?:\\.|[^`\\])*`",
    re.DOTALL,
)

# import x from 'a' / import {a, b} from 'a' / import * as ns from 'a'
# export * from 'a' / export {a} from 'a' / import type {A} from 'a'
_FROM_RE = re.compile(
    r"(?<![\w$.])(?:import|export)\s+(?:type\s+)?"
    r"(?:[\w$]+\s*,?\s*)?"
    r"(?:\*\s*as\s+[\w$]+|\*|\{[^}]*\})?"
    r"\s*from\s*['\"]([^'\"\n]+)['\"]"
)

# import 'a' (side effect only)
_BARE_IMPORT_RE = re.compile(r"(?<![\w$.])import\s*['\"]([^'\"\n]+)['\"]")

# require('a') / import('a')
_CALL_RE = re.compile(r"(?<![\w$.])(?:require|import)\s*\(\s*['\"]([^'\"\n]+)['\"]\s*\)")

# Interpolation or syntax noise
_INVALID_NAME_RE = re.compile(r"[$+'\"`]")

DEPENDENCY_FIELDS = ("dependencies", "devDependencies", "peerDependencies")


def strip_comments(source: str) -> str:
    def _keep_strings(m: re.Match[str]) -> str:
        token = m.group(0)
        if token[0] in "'\"`":
            return token
        return " " if token.startswith("/*") else ""

    return _TOKEN_RE.sub(_keep_strings, source)


def extract_imports(source: str) -> list[str]:
    """Return every statically written import target in *source*, in order."""
    code = strip_comments(source)
    found: list[tuple[int, str]] = []
    for pattern in (_FROM_RE, _BARE_IMPORT_RE, _CALL_RE):
        found.extend((m.start(), m.group(1)) for m in pattern.finditer(code))
    return [target for _, target in sorted(found)]


def normalize_module_name(target: str) -> str:
    """``@scope/pkg/sub/path`` -> ``@scope/pkg``; ``pkg/sub/path`` -> ``pkg``."""
    parts = target.split("/")
    if target.startswith("@") and len(parts) > 1:
        return f"{parts[0]}/{parts[1]}"
    return parts[0]


def is_resolvable(name: str, self_name: str | None = None) -> bool:
    """False for relative targets, ``@/`` aliases, self references and noise."""
    if not name or name.startswith(".") or name.startswith("@/"):
        return False
    if self_name and name == self_name:
        return False
    return not _INVALID_NAME_RE.search(name)


def alias_paths(alias_config: Mapping[str, Any] | None) -> dict[str, Any]:
    """``compilerOptions.paths`` of an alias-table config, or ``{}``."""
    if not alias_config:
        return {}
    return (alias_config.get("compilerOptions") or {}).get("paths") or {}


def classify(
    name: str,
    root_package_json: Mapping[str, Any] | None,
    aliases: Mapping[str, Any],
) -> Literal["internal", "external"]:
    """Internal when the name is a root dependency-field key or an alias-table key.

    A name present both as an alias and as a literal dependency is internal.
    """
    if name in aliases:
        return "internal"
    for dep_field in DEPENDENCY_FIELDS:
        if name in ((root_package_json or {}).get(dep_field) or {}):
            return "internal"
    return "external"


def find_dependencies(
    source: str,
    root_package_json: Mapping[str, Any] | None,
    aliases: Mapping[str, Any],
    self_name: str | None = None,
) -> tuple[set[str], set[str]]:
    """Classify every import in *source*. Returns ``(internal, external)``."""
    internal: set[str] = set()
    external: set[str] = set()
    for target in extract_imports(source):
        name = normalize_module_name(target)
        if not is_resolvable(name, self_name):
            continue
        if classify(name, root_package_json, aliases) == "internal":
            internal.add(name)
        else:
            external.add(name)
    return internal, external
