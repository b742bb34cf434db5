"""
Skopeo-backed digest resolution and installation.
"""
from __future__ import annotations

import json
import logging
import shutil
from typing import Optional

from ..errors import CommandError, DigestResolutionError, ToolInstallError
from ..platform import parse_platform
from ..runtime_types import DigestResolver, ToolInstaller
from ..settings import Settings
from .process import run_command

__all__ = ["SkopeoDigestResolver", "SkopeoInstaller"]

logger = logging.getLogger(__name__)


class SkopeoDigestResolver(DigestResolver):
    """Resolve remote digests with `skopeo inspect docker://<ref>`."""

    def __init__(self, *, skopeo_bin: str = "skopeo", timeout: Optional[float] = 120.0) -> None:
        self.skopeo_bin = skopeo_bin
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> SkopeoDigestResolver:
        return cls(skopeo_bin=settings.skopeo_bin, timeout=settings.command_timeout_s)

    def build_args(self, name: str, platform: Optional[str] = None) -> list[str]:
        args = [self.skopeo_bin]
        parsed = parse_platform(platform)
        if parsed is not None:
            args += ["--override-os", parsed.os, "--override-arch", parsed.arch]
            if parsed.variant:
                args += ["--override-variant", parsed.variant]
        args += ["inspect", f"docker://{name}"]
        return args

    async def resolve(self, name: str, platform: Optional[str] = None) -> Optional[str]:
        try:
            result = await run_command(self.build_args(name, platform), timeout=self.timeout)
        except CommandError as e:
            raise DigestResolutionError(name, e.stderr or str(e)) from e
        return parse_inspect_digest(name, result.stdout)


def parse_inspect_digest(name: str, stdout: str) -> str:
    """
    Extract the ``Digest`` field from `skopeo inspect` JSON output.

    Raises:
        DigestResolutionError: If the output is not JSON or has no sha256 digest
    """
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise DigestResolutionError(name, f"invalid skopeo output: {e}") from e

    digest = data.get("Digest") if isinstance(data, dict) else None
    if not isinstance(digest, str) or not digest.startswith("sha256:"):
        raise DigestResolutionError(name, "Digest not found or invalid in skopeo inspect output")
    return digest


class SkopeoInstaller(ToolInstaller):
    """
    Make skopeo available on the runner.

    Checks `skopeo --version` first and only falls back to
    `sudo apt-get install -y skopeo` when ``install`` is enabled. The outcome
    is remembered per instance, so repeated calls are free.
    """

    def __init__(
        self,
        *,
        skopeo_bin: str = "skopeo",
        install: bool = False,
        timeout: Optional[float] = 600.0,
    ) -> None:
        self.skopeo_bin = skopeo_bin
        self.install = install
        self.timeout = timeout
        self._ready = False

    @classmethod
    def from_settings(cls, settings: Settings) -> SkopeoInstaller:
        return cls(
            skopeo_bin=settings.skopeo_bin,
            install=settings.install_skopeo,
            timeout=settings.command_timeout_s,
        )

    async def ensure_ready(self) -> None:
        if self._ready:
            return

        version = await self._version()
        if version is None:
            if not self.install:
                raise ToolInstallError(
                    f"{self.skopeo_bin} is not available; install it or set COMPOSE_CACHE_INSTALL_SKOPEO=true"
                )
            await self._apt_install()
            version = await self._version()
            if version is None:
                raise ToolInstallError("Skopeo installation failed: binary still not runnable")

        logger.info(f"Using {version}")
        self._ready = True

    async def _version(self) -> Optional[str]:
        try:
            result = await run_command([self.skopeo_bin, "--version"], timeout=self.timeout)
        except CommandError as e:
            logger.debug(f"skopeo --version failed: {e}")
            return None
        return result.stdout.strip() or self.skopeo_bin

    async def _apt_install(self) -> None:
        if shutil.which("apt-get") is None:
            raise ToolInstallError("Cannot install skopeo: apt-get not found")

        prefix = ["sudo"] if shutil.which("sudo") else []
        logger.info("Installing skopeo with apt-get...")
        # update failures are tolerated; install decides
        await run_command([*prefix, "apt-get", "update", "-y"], timeout=self.timeout, check=False)
        try:
            await run_command([*prefix, "apt-get", "install", "-y", "skopeo"], timeout=self.timeout)
        except CommandError as e:
            raise ToolInstallError(f"Skopeo installation failed: {e}") from e
