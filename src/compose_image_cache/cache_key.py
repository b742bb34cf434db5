"""
Cache key and archive path construction.

Every function here is pure: the same inputs always produce the same key, and
the key changes whenever the image name, platform, remote digest or manifest
set changes. The host OS label is part of the key so that caches written on
one runner OS are never restored on another.
"""
from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from typing import Iterable, Optional

from .platform import OciPlatform

__all__ = [
    "KeyContext",
    "sanitize_path_component",
    "build_cache_key",
    "build_cache_path",
    "manifest_fingerprint",
]

# Characters that are unsafe in file names or cache keys on common platforms
_UNSAFE_CHARS = '/\\:*?"<>|'
_TRANSLATION = str.maketrans({c: "_" for c in _UNSAFE_CHARS})


@dataclass(frozen=True)
class KeyContext:
    """
    Inputs shared by every key in one run.

    Attributes:
        prefix: User-provided cache key prefix
        host_os: Runner OS label (e.g. "Linux")
        host_platform: OCI platform of the host, used when a target has none
        fingerprint: Manifest set fingerprint (64 hex chars)
        temp_dir: Directory in which image archives are written
    """
    prefix: str
    host_os: str
    host_platform: OciPlatform
    fingerprint: str
    temp_dir: str


def sanitize_path_component(value: str) -> str:
    """
    Replace characters that are unsafe in paths with underscores.

    Idempotent: sanitizing an already-safe value returns it unchanged.

    Examples:
        >>> sanitize_path_component("ghcr.io/org/app:1.2")
        'ghcr.io_org_app_1.2'
    """
    return value.translate(_TRANSLATION)


def _platform_component(ctx: KeyContext, platform: Optional[str]) -> str:
    if platform:
        return sanitize_path_component(platform)
    return ctx.host_platform.descriptor


def _require_digest(digest: Optional[str]) -> str:
    if not digest:
        raise ValueError("remote digest is required to build a cache key")
    return digest


def build_cache_key(ctx: KeyContext, name: str, platform: Optional[str], digest: str) -> str:
    """
    Build the primary cache key for one image.

    Format: ``{prefix}-{host_os}-{name}-plt_{platform}-{digest}-{fingerprint}``
    where name and platform are sanitized and a missing platform is replaced
    by the host descriptor (e.g. ``linux_amd64``).

    Raises:
        ValueError: If digest is empty
    """
    digest = _require_digest(digest)
    return "-".join([
        ctx.prefix,
        ctx.host_os,
        sanitize_path_component(name),
        f"plt_{_platform_component(ctx, platform)}",
        digest,
        ctx.fingerprint,
    ])


def build_cache_path(ctx: KeyContext, name: str, platform: Optional[str], digest: str) -> str:
    """
    Build the local archive path for one image.

    The digest is sanitized here (``sha256:`` contains a colon) but kept raw
    in the cache key.

    Raises:
        ValueError: If digest is empty
    """
    digest = _require_digest(digest)
    filename = (
        f"docker-image-{sanitize_path_component(name)}"
        f"-plt_{_platform_component(ctx, platform)}"
        f"-{sanitize_path_component(digest)}"
        f"-{ctx.fingerprint}.tar"
    )
    return os.path.join(ctx.temp_dir, filename)


def manifest_fingerprint(paths: Iterable[str]) -> str:
    """
    Compute the SHA-256 fingerprint of a set of manifest files.

    Files are read in sorted path order so the fingerprint does not depend on
    the order in which they were given.

    Raises:
        OSError: If a file cannot be read
    """
    h = hashlib.sha256()
    for path in sorted(paths):
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(1024 * 1024), b""):
                h.update(chunk)
    return h.hexdigest()
