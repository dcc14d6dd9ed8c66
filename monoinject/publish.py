"""Publishing — scope rules, registry lookup and ``npm publish``."""

from __future__ import annotations

import asyncio
import os
import shutil
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any

import httpx
import structlog

from monoinject.builder import package_out
from monoinject.exceptions import RegistryError
from monoinject.models.config import ProjectConfig
from monoinject.models.package import PackageDescriptor, derive_key
from monoinject.process import CancelToken, run_command
from monoinject.settings import RunSettings
from monoinject.workspace import Workspace

log = structlog.get_logger("monoinject.publish")

DEFAULT_REGISTRY_URL = "https://registry.npmjs.org"
PUBLISH_CMD = "npm publish --access public --tag latest"
NPMRC = ".npmrc"

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds


def is_in_publish_scope(name: str | None, config: ProjectConfig) -> bool:
    """True when *name* is covered by the namespace, additional namespaces or publish list.

    With ``excludeNamespaceFromBuildList`` only the explicit publish list counts.
    """
    if not name:
        return False
    if name in config.publish_list:
        return True
    if config.exclude_namespace_from_build_list:
        return False
    if config.namespace and name.startswith(config.namespace + "/"):
        return True
    return name in config.additional_namespaces


def has_scope(config: ProjectConfig) -> bool:
    return bool(config.namespace or config.additional_namespaces or config.publish_list)


class RegistryClient:
    """Looks up which versions of a package the registry already has."""

    def __init__(
        self,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url or os.environ.get("MONOINJECT_REGISTRY_URL", DEFAULT_REGISTRY_URL),
            headers={"Accept": "application/json"},
            timeout=30.0,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> RegistryClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def package_info(self, name: str) -> dict[str, Any] | None:
        """Registry document for *name*, or None if the package does not exist yet."""
        last_exc: Exception | None = None
        for attempt in range(_MAX_RETRIES):
            try:
                resp = await self._client.get(f"/{name}")
                if resp.status_code == 404:
                    return None
                if resp.status_code < 500:
                    if resp.status_code >= 400:
                        raise RegistryError(
                            f"Unable to get registry info for {name}: HTTP {resp.status_code}"
                        )
                    return resp.json()
                log.warning("registry.server_error", name=name, status=resp.status_code, attempt=attempt + 1)
                last_exc = RegistryError(f"Unable to get registry info for {name}: HTTP {resp.status_code}")
            except httpx.TransportError as exc:
                log.warning("registry.transport_error", name=name, error=str(exc), attempt=attempt + 1)
                last_exc = RegistryError(f"Unable to get registry info for {name}: {exc}")

            if attempt < _MAX_RETRIES - 1:
                await asyncio.sleep(_RETRY_BASE_DELAY * (2**attempt))

        raise last_exc  # type: ignore[misc]

    async def is_published(self, name: str, version: str) -> bool | None:
        """True if *version* exists or matches a dist-tag; None for a new package."""
        info = await self.package_info(name)
        if info is None:
            return None
        if version in (info.get("versions") or {}):
            return True
        return version in (info.get("dist-tags") or {}).values()


@dataclass
class PublishCandidate:
    pkg: PackageDescriptor
    version: str
    out_dir: str
    is_new: bool = False

    @property
    def name(self) -> str:
        return self.pkg.name or self.pkg.dir

    def describe(self) -> str:
        return f"{self.out_dir} -> {self.name}@{self.version}{' (new)' if self.is_new else ''}"


def publishable(pkg: PackageDescriptor, config: ProjectConfig, disabled_dests: set[str]) -> bool:
    return bool(
        pkg.name
        and pkg.version
        and not pkg.disable_publish
        and pkg.key not in disabled_dests
        and pkg.package_type == "lib"
        and is_in_publish_scope(pkg.name, config)
    )


async def plan_publish(
    workspace: Workspace,
    config: ProjectConfig,
    client: RegistryClient,
    dirs: list[str] | tuple[str, ...] | None = None,
) -> list[PublishCandidate]:
    """Select in-scope packages whose current version is not on the registry yet."""
    disabled_dests = {
        derive_key(entry.dest or f"packages/{PurePosixPath(entry.dir.rstrip('/')).name}")
        for entry in config.inject
        if entry.disable_publish
    }
    candidates = [pkg for pkg in workspace.select(dirs) if publishable(pkg, config, disabled_dests)]

    async def _check(pkg: PackageDescriptor) -> PublishCandidate | None:
        version = pkg.version or ""
        published = await client.is_published(pkg.name or "", version)
        if published:
            log.info("publish.already_published", name=pkg.name, version=version)
            return None
        return PublishCandidate(
            pkg=pkg,
            version=version,
            out_dir=package_out(pkg).dir,
            is_new=published is None,
        )

    results = await asyncio.gather(*(_check(pkg) for pkg in candidates))
    return [c for c in results if c is not None]


async def publish(
    candidates: list[PublishCandidate],
    settings: RunSettings,
    token: CancelToken | None = None,
) -> None:
    """Run ``npm publish`` in each candidate's output dir, one at a time."""
    npmrc = settings.path(NPMRC)
    for candidate in candidates:
        out_path = settings.path(candidate.out_dir)
        log.info("publish.package", target=candidate.describe(), dry_run=settings.dry_run)
        if settings.dry_run:
            await run_command(PUBLISH_CMD, settings, candidate.out_dir, token=token)
            continue
        copied = npmrc.is_file()
        if copied:
            shutil.copyfile(npmrc, out_path / NPMRC)
        try:
            await run_command(PUBLISH_CMD, settings, candidate.out_dir, token=token)
        finally:
            if copied:
                (out_path / NPMRC).unlink(missing_ok=True)
