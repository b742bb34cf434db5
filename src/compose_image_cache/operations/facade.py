"""
Operations Facade - Application service layer.

Provides a clean interface between CLI and runner APIs, centralizing
command orchestration, configuration, and policy decisions while keeping
CLI commands thin and testable.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..cache_key import KeyContext, build_cache_key, build_cache_path, manifest_fingerprint
from ..compose import read_image_targets, resolve_compose_files, select_targets
from ..errors import DigestResolutionError, IncompleteRunError
from ..models import ImageMetadata, ImageTarget, RunReport
from ..outputs import write_github_outputs, write_step_summary
from ..platform import OciPlatform, host_platform
from ..runner import Collaborators, RunRequest, build_collaborators, execute_run, host_os_label
from ..settings import Settings


@dataclass(frozen=True)
class OpsConfig:
    """
    Configuration for Operations facade.

    Centralizes policy decisions like output publishing and failure
    tolerance to avoid scattered configuration.
    """
    strict: bool = False            # Fail the command when any image failed
    github_outputs: bool = True     # Write GITHUB_OUTPUT / GITHUB_STEP_SUMMARY when set
    verbose: bool = False           # Show detailed output


@dataclass(frozen=True)
class KeyInfo:
    """Cache key and archive path computed for one image."""
    target: ImageTarget
    digest: str
    key: str
    path: str


class Operations:
    """
    Application service facade for CLI operations.

    One method per CLI verb. The facade owns the event loop for async work
    (one ``asyncio.run`` per call) and applies configuration policy; errors
    bubble up for central exit-code mapping.
    """

    def __init__(self, config: OpsConfig, settings: Optional[Settings] = None,
                 collaborators: Optional[Collaborators] = None):
        """
        Initialize Operations facade.

        Args:
            config: Configuration settings
            settings: Optional settings (if None, loaded from environment)
            collaborators: Adapters for the run (if None, built from settings on first use)
        """
        self.cfg = config

        if settings is None:
            from ..settings import create_settings_from_env
            settings = create_settings_from_env()
        self.settings = settings
        self._collaborators = collaborators

    @property
    def collaborators(self) -> Collaborators:
        if self._collaborators is None:
            self._collaborators = build_collaborators(self.settings)
        return self._collaborators

    def run(self, request: RunRequest) -> RunReport:
        """
        Restore or pull every image of the compose files and publish outputs.

        Per-image failures do not raise; see enforce().
        """
        report = asyncio.run(self._run(request))

        if self.cfg.github_outputs:
            write_github_outputs(report)
            write_step_summary(report)
        return report

    def enforce(self, report: RunReport) -> None:
        """
        Apply the failure policy to a finished run.

        Raises:
            IncompleteRunError: In strict mode, when any image failed
        """
        if self.cfg.strict and not report.result.all_successful:
            failed = [str(r.target) for r in report.records if not r.success]
            raise IncompleteRunError(failed)

    async def _run(self, request: RunRequest) -> RunReport:
        collaborators = self.collaborators
        try:
            return await execute_run(request, self.settings, collaborators)
        finally:
            await collaborators.aclose()

    def images(self, request: RunRequest) -> List[ImageTarget]:
        """List the image targets a run would process, after exclusion and dedupe."""
        files = resolve_compose_files(request.compose_files, request.cwd)
        return select_targets(read_image_targets(files), request.exclude)

    def keys(self, request: RunRequest, *, digest: Optional[str] = None,
             only: Sequence[str] = ()) -> List[KeyInfo]:
        """
        Compute cache keys without touching docker or the cache store.

        Args:
            request: Compose files and exclusions
            digest: Use this digest for every image instead of resolving it
            only: Restrict to these image names

        Raises:
            DigestResolutionError: If a digest cannot be resolved
        """
        files = resolve_compose_files(request.compose_files, request.cwd)
        targets = select_targets(read_image_targets(files), request.exclude)
        if only:
            wanted = set(only)
            targets = [t for t in targets if t.name in wanted]

        ctx = KeyContext(
            prefix=self.settings.cache_key_prefix,
            host_os=host_os_label(self.settings),
            host_platform=host_platform(),
            fingerprint=manifest_fingerprint(files),
            temp_dir=self.settings.temp_dir,
        )
        if digest:
            resolved = [ImageMetadata(target=t, remote_digest=digest) for t in targets]
        else:
            resolved = asyncio.run(self._resolve_all(targets))

        return [
            KeyInfo(
                target=m.target,
                digest=m.remote_digest,
                key=build_cache_key(ctx, m.target.name, m.target.platform, m.remote_digest),
                path=build_cache_path(ctx, m.target.name, m.target.platform, m.remote_digest),
            )
            for m in resolved
        ]

    async def _resolve_all(self, targets: List[ImageTarget]) -> List[ImageMetadata]:
        if not targets:
            return []
        collaborators = self.collaborators
        try:
            for installer in collaborators.installers:
                await installer.ensure_ready()
            digests = await asyncio.gather(
                *(collaborators.resolver.resolve(t.name, t.platform) for t in targets)
            )
        finally:
            await collaborators.aclose()

        resolved = []
        for target, d in zip(targets, digests):
            if not d:
                raise DigestResolutionError(target.name, "registry returned no digest")
            resolved.append(ImageMetadata(target=target, remote_digest=d))
        return resolved

    def platform(self) -> Tuple[OciPlatform, str]:
        """Return the host's OCI platform and the OS label used in cache keys."""
        return host_platform(), host_os_label(self.settings)
