"""Injected-package manifest — which destinations are owned by inject."""

from __future__ import annotations

from pathlib import Path

import structlog
from pydantic import ValidationError

from monoinject.core.jsonfile import load_json_or_default, write_json
from monoinject.exceptions import InvalidConfigurationError
from monoinject.models.manifest import ManifestEntry

log = structlog.get_logger("monoinject.linker")


class ManifestStore:
    """Keyed view of the manifest file.

    On disk the manifest is a JSON array in insertion order; in memory it is a
    dict keyed by ``ManifestEntry.key``. An empty manifest is persisted by
    deleting the file.
    """

    def __init__(self, path: Path, dry_run: bool = False):
        self.path = path
        self.dry_run = dry_run
        self._entries: dict[str, ManifestEntry] = {}

    @classmethod
    def load(cls, path: Path, dry_run: bool = False) -> ManifestStore:
        store = cls(path, dry_run=dry_run)
        data = load_json_or_default(path, [])
        if not isinstance(data, list):
            raise InvalidConfigurationError(f"{path} must contain a JSON array")
        for item in data:
            try:
                entry = ManifestEntry.model_validate(item)
            except ValidationError as e:
                raise InvalidConfigurationError(f"Invalid manifest entry in {path}: {e}") from e
            store._entries[entry.key] = entry
        return store

    def get(self, key: str) -> ManifestEntry | None:
        return self._entries.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[ManifestEntry]:
        return list(self._entries.values())

    def upsert(self, entry: ManifestEntry) -> None:
        """Insert *entry*, replacing (in place) any entry with the same key."""
        self._entries[entry.key] = entry

    def remove(self, key: str) -> ManifestEntry | None:
        return self._entries.pop(key, None)

    def to_json(self) -> list[dict]:
        return [entry.to_json() for entry in self._entries.values()]

    def save(self) -> None:
        if self.dry_run:
            log.info("manifest.write", path=str(self.path), dry_run=True, entries=len(self))
            return
        if not self._entries:
            if self.path.exists():
                log.debug("manifest.delete", path=str(self.path))
                self.path.unlink()
            return
        write_json(self.path, self.to_json())
