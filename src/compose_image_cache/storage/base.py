"""
Storage interfaces for compose-image-cache.

These protocols define the boundary between the engine and cache store
implementations, enabling clean dependency injection and testing with fakes.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

__all__ = ["CacheStore"]


@runtime_checkable
class CacheStore(Protocol):
    """
    Protocol for a key -> file blob cache.

    Entries are immutable once written: a key always maps to the same archive,
    so a second save under an existing key is treated as success.
    """

    async def restore(self, key: str, path: str) -> bool:
        """
        Copy the archive stored under key to path.

        Args:
            key: Primary cache key
            path: Local destination for the archive

        Returns:
            True on a hit (the archive was written to path), False on a miss

        Raises:
            CacheStoreError: For backend errors other than "not found"
        """
        ...

    async def save(self, key: str, path: str) -> bool:
        """
        Store the archive at path under key.

        Args:
            key: Primary cache key
            path: Local archive to upload

        Returns:
            True if the entry now exists (written now or already present)

        Raises:
            CacheStoreError: For backend errors
        """
        ...
