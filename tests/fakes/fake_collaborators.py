"""
In-memory fakes for the engine's collaborators.

Archives written by FakeRuntime.save() are small JSON documents recording the
image name and digest, so a round trip through FakeCacheStore and
FakeRuntime.load() behaves like docker save/load without a container engine.
"""
from __future__ import annotations

import json
import os
from typing import Dict, List, Optional, Set, Union

from compose_image_cache.errors import (
    CacheStoreError,
    CommandError,
    DigestResolutionError,
    ToolInstallError,
)
from compose_image_cache.runtime_types import DigestResolver, ImageRuntime, ToolInstaller
from compose_image_cache.storage.base import CacheStore


def make_archive(name: str, digest: Optional[str]) -> bytes:
    return json.dumps({"name": name, "digest": digest}).encode()


class FakeResolver(DigestResolver):
    """
    DigestResolver backed by a dict.

    Values may be a digest, None (registry returned nothing) or an exception
    instance to raise. Unknown names raise DigestResolutionError.
    """

    def __init__(self, digests: Optional[Dict[str, Union[str, None, BaseException]]] = None):
        self.digests = dict(digests or {})
        self.calls: List[tuple] = []

    async def resolve(self, name: str, platform: Optional[str] = None) -> Optional[str]:
        self.calls.append((name, platform))
        if name not in self.digests:
            raise DigestResolutionError(name, "manifest unknown")
        value = self.digests[name]
        if isinstance(value, BaseException):
            raise value
        return value


class FakeCacheStore(CacheStore):
    """CacheStore keeping archives in a dict."""

    def __init__(self):
        self.entries: Dict[str, bytes] = {}
        self.restore_error: Optional[Exception] = None
        self.save_error: Optional[Exception] = None
        self.phantom_hits = False  # report hits without writing the file
        self.restores: List[str] = []
        self.saves: List[str] = []

    def seed(self, key: str, name: str, digest: Optional[str]) -> None:
        self.entries[key] = make_archive(name, digest)

    async def restore(self, key: str, path: str) -> bool:
        self.restores.append(key)
        if self.restore_error is not None:
            raise self.restore_error
        if key not in self.entries:
            return False
        if self.phantom_hits:
            return True
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(self.entries[key])
        return True

    async def save(self, key: str, path: str) -> bool:
        self.saves.append(key)
        if self.save_error is not None:
            raise self.save_error
        if key in self.entries:
            return True
        with open(path, "rb") as f:
            self.entries[key] = f.read()
        return True


class FakeRuntime(ImageRuntime):
    """
    ImageRuntime simulating a local image store.

    ``registry`` maps names to the digest a pull produces. ``local`` holds the
    digests of images present locally (None when unknown, as after a load of
    an archive without repository digests).
    """

    def __init__(self, registry: Optional[Dict[str, str]] = None):
        self.registry = dict(registry or {})
        self.local: Dict[str, Optional[str]] = {}
        self.sizes: Dict[str, int] = {}
        self.fail_pull: Set[str] = set()
        self.fail_load = False
        self.fail_save = False
        self.keep_digest_on_load = True
        self.calls: List[tuple] = []

    async def pull(self, name: str, platform: Optional[str] = None) -> None:
        self.calls.append(("pull", name, platform))
        if name in self.fail_pull or name not in self.registry:
            raise CommandError(["docker", "pull", name], 1, "pull access denied")
        self.local[name] = self.registry[name]

    async def load(self, archive_path: str) -> None:
        self.calls.append(("load", archive_path))
        if self.fail_load:
            raise CommandError(["docker", "load", "-i", archive_path], 1, "invalid tar header")
        with open(archive_path, "rb") as f:
            archive = json.loads(f.read())
        self.local[archive["name"]] = archive["digest"] if self.keep_digest_on_load else None

    async def save(self, archive_path: str, name: str) -> None:
        self.calls.append(("save", archive_path, name))
        if self.fail_save:
            raise CommandError(["docker", "save", "-o", archive_path, name], 1, "no space left on device")
        with open(archive_path, "wb") as f:
            f.write(make_archive(name, self.local.get(name)))

    async def local_digest(self, name: str) -> Optional[str]:
        self.calls.append(("local_digest", name))
        if name not in self.local:
            raise CommandError(["docker", "image", "inspect", name], 1, "No such image")
        return self.local[name]

    async def image_size(self, name: str) -> Optional[int]:
        return self.sizes.get(name, 1024)

    def called(self, op: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == op]


class FakeInstaller(ToolInstaller):
    """ToolInstaller counting calls; raises ToolInstallError when broken."""

    def __init__(self, broken: bool = False):
        self.broken = broken
        self.calls = 0

    async def ensure_ready(self) -> None:
        self.calls += 1
        if self.broken:
            raise ToolInstallError("skopeo is not available")
