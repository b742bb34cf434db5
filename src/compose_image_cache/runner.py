"""
Run bootstrap: from inputs and settings to a finished RunReport.

Validates inputs, discovers compose files, computes the manifest fingerprint,
selects targets, prepares tools and runs the reconciliation engine. Adapters
are built from Settings here unless the caller injects its own.
"""
from __future__ import annotations

import logging
import platform as _platform
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .cache_key import KeyContext, manifest_fingerprint
from .compose import read_image_targets, resolve_compose_files, select_targets
from .engine import ReconciliationEngine, aggregate
from .models import RunReport
from .platform import host_platform
from .runtime_types import DigestResolver, ImageRuntime, ToolInstaller
from .settings import Settings
from .storage.base import CacheStore

__all__ = ["RunRequest", "Collaborators", "build_collaborators", "execute_run", "host_os_label"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunRequest:
    """User inputs for one run."""
    compose_files: Sequence[str] = ()
    exclude: Sequence[str] = ()
    cwd: Optional[str] = None


@dataclass
class Collaborators:
    """Adapters used by one run. ``installers`` run once before any image work."""
    resolver: DigestResolver
    store: CacheStore
    runtime: ImageRuntime
    installers: List[ToolInstaller] = field(default_factory=list)

    async def aclose(self) -> None:
        close = getattr(self.resolver, "aclose", None)
        if close is not None:
            await close()


def build_collaborators(settings: Settings) -> Collaborators:
    """
    Build production adapters from settings.

    Raises:
        ValueError: If the selected backend is misconfigured
    """
    from .providers.docker_cli import DockerRuntime

    installers: List[ToolInstaller] = []
    if settings.resolver == "skopeo":
        from .providers.skopeo import SkopeoDigestResolver, SkopeoInstaller
        resolver: DigestResolver = SkopeoDigestResolver.from_settings(settings)
        installers.append(SkopeoInstaller.from_settings(settings))
    else:
        from .providers.registry_http import RegistryDigestResolver
        resolver = RegistryDigestResolver.from_settings(settings)

    if settings.backend == "azure":
        from .storage.azure_cache import AzureBlobCacheStore
        store: CacheStore = AzureBlobCacheStore(settings=settings)
    else:
        from .storage.local_cache import LocalCacheStore
        store = LocalCacheStore(settings.cache_dir)

    return Collaborators(
        resolver=resolver,
        store=store,
        runtime=DockerRuntime.from_settings(settings),
        installers=installers,
    )


def host_os_label(settings: Settings) -> str:
    """OS label used in cache keys: RUNNER_OS on GitHub runners, else platform.system()."""
    return settings.runner_os or _platform.system() or "unknown"


async def execute_run(
    request: RunRequest,
    settings: Settings,
    collaborators: Collaborators,
) -> RunReport:
    """
    Execute one cache run.

    Input problems (missing compose files, unparseable YAML, unmappable host)
    raise before any collaborator is touched. Per-image problems never raise;
    they are reported on the records.

    Raises:
        ComposeFileNotFoundError, NoComposeFilesError, ComposeParseError:
            Invalid compose inputs
        UnmappablePlatformError: Host platform has no OCI equivalent
        ToolInstallError: A required tool is unavailable
    """
    start = time.monotonic()

    compose_files = resolve_compose_files(request.compose_files, request.cwd)
    logger.info(f"Processing compose file(s): {', '.join(compose_files)}")

    if request.exclude:
        logger.info(f"Excluding images: {', '.join(request.exclude)}")
    targets = select_targets(read_image_targets(compose_files), request.exclude)

    keys = KeyContext(
        prefix=settings.cache_key_prefix,
        host_os=host_os_label(settings),
        host_platform=host_platform(),
        fingerprint=manifest_fingerprint(compose_files),
        temp_dir=settings.temp_dir,
    )

    if targets:
        for installer in collaborators.installers:
            await installer.ensure_ready()

    engine = ReconciliationEngine(
        resolver=collaborators.resolver,
        store=collaborators.store,
        runtime=collaborators.runtime,
        keys=keys,
        skip_latest_check=settings.skip_latest_check,
    )
    records = await engine.run(targets)
    result = aggregate(records)

    if result.all_from_cache:
        logger.info("All required images were successfully restored from cache.")
    logger.info(
        f"{result.cache_hit_count}/{result.total_count} image(s) restored from cache"
    )

    return RunReport(
        result=result,
        records=records,
        compose_files=list(compose_files),
        skip_latest_check=settings.skip_latest_check,
        duration_s=time.monotonic() - start,
    )
