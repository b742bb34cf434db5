"""
Directory-backed cache store.

Each entry is a single file named after its cache key inside the cache
directory, which is expected to live on a persistent volume (self-hosted
runner disk, mounted CI cache). Writes go through a temporary file and
``os.replace`` so a concurrent reader never sees a partial archive.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path

from ..errors import CacheStoreError
from .base import CacheStore

__all__ = ["LocalCacheStore"]

logger = logging.getLogger(__name__)


class LocalCacheStore(CacheStore):
    """CacheStore adapter for a local directory."""

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def entry_path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key in (".", ".."):
            raise ValueError(f"Invalid cache key: {key!r}")
        return self._root / f"{key}.tar"

    async def restore(self, key: str, path: str) -> bool:
        return await asyncio.to_thread(self._restore_sync, key, path)

    async def save(self, key: str, path: str) -> bool:
        return await asyncio.to_thread(self._save_sync, key, path)

    def _restore_sync(self, key: str, path: str) -> bool:
        entry = self.entry_path(key)
        if not entry.is_file():
            logger.debug(f"Cache miss for key {key}")
            return False

        dest = Path(path)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            _atomic_copy(entry, dest)
        except OSError as e:
            raise CacheStoreError(f"Failed to restore {key} to {path}: {e}") from e

        logger.debug(f"Cache hit for key {key}: {entry}")
        return True

    def _save_sync(self, key: str, path: str) -> bool:
        entry = self.entry_path(key)
        if entry.exists():
            logger.info(f"Cache entry already exists for key {key}")
            return True

        src = Path(path)
        if not src.is_file():
            raise CacheStoreError(f"Archive to cache does not exist: {path}")

        try:
            self._root.mkdir(parents=True, exist_ok=True)
            _atomic_copy(src, entry)
        except OSError as e:
            raise CacheStoreError(f"Failed to save {path} under {key}: {e}") from e

        logger.debug(f"Saved cache entry {entry}")
        return True


def _atomic_copy(src: Path, dest: Path) -> None:
    """Copy src to dest through a temp file in dest's directory."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".tmp", dir=dest.parent)
    try:
        with os.fdopen(fd, "wb") as out, open(src, "rb") as inp:
            shutil.copyfileobj(inp, out, 1024 * 1024)
        os.replace(tmp_name, dest)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
