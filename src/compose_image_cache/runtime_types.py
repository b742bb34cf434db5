"""
Collaborator protocols for the reconciliation engine.

These types define the interface between the engine and the adapters that talk
to the outside world (registry, container engine, tool installation), enabling
dependency injection for the real CLI adapters and for in-memory fakes.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

__all__ = ["DigestResolver", "ImageRuntime", "ToolInstaller"]


@runtime_checkable
class DigestResolver(Protocol):
    """
    Protocol for looking up the content digest a registry currently publishes.

    The digest is the sole staleness signal: an image whose digest changed is a
    different cache entry.
    """

    async def resolve(self, name: str, platform: Optional[str] = None) -> Optional[str]:
        """
        Resolve the remote digest of an image reference.

        Args:
            name: Image reference (e.g. "nginx:1.27", "ghcr.io/org/app@sha256:...")
            platform: Optional "os/arch[/variant]" qualifier

        Returns:
            Digest string ("sha256:<hex>"), or None when the registry has none

        Raises:
            DigestResolutionError: If the lookup failed
        """
        ...


@runtime_checkable
class ImageRuntime(Protocol):
    """
    Protocol for the local container engine.

    All methods raise on failure; the engine decides whether a failure is
    fatal for the image or only a warning.
    """

    async def pull(self, name: str, platform: Optional[str] = None) -> None:
        """Pull an image from its registry."""
        ...

    async def load(self, archive_path: str) -> None:
        """Load an image archive into the local engine."""
        ...

    async def save(self, archive_path: str, name: str) -> None:
        """Export a local image to an archive."""
        ...

    async def local_digest(self, name: str) -> Optional[str]:
        """
        Return the repository digest of a local image.

        Returns None when the image exists but carries no repository digest
        (typical for images restored from an archive).
        """
        ...

    async def image_size(self, name: str) -> Optional[int]:
        """Return the size of a local image in bytes, or None if unknown."""
        ...


@runtime_checkable
class ToolInstaller(Protocol):
    """
    Protocol for making an external tool available before a run.

    Implementations must be idempotent: calling ensure_ready() twice does the
    work at most once.
    """

    async def ensure_ready(self) -> None:
        """
        Make the tool available.

        Raises:
            ToolInstallError: If the tool is missing and cannot be installed
        """
        ...
