"""
Reconciliation engine: per-image cache protocol and concurrent fan-out.

For every target the engine runs, strictly in order:

1. resolve the remote digest (the only staleness signal)
2. derive the cache key and archive path
3. restore from the cache store
4. load the restored archive (and, unless skipped, re-check its digest)
5. pull when nothing usable was restored
6. verify the pulled image's digest against the resolved one
7. export the image and save it under the key

Targets are processed concurrently and in isolation. Adapter failures become
warnings or an error on that target's record; nothing one target does can
change another target's record. Targets sharing an image name (one per
platform) take turns on the local image store, since docker keeps a single
tag per name. The archive written for a target is removed once it has been
loaded or handed to the cache store.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Awaitable, Dict, Generic, Iterable, List, Optional, TypeVar

from .cache_key import KeyContext, build_cache_key, build_cache_path
from .errors import ImageCacheError
from .models import ImageTarget, ProcessingRecord, ProcessingState, RunResult
from .runtime_types import DigestResolver, ImageRuntime
from .storage.base import CacheStore

__all__ = ["Outcome", "gather_outcomes", "ReconciliationEngine", "aggregate"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of one task in gather_outcomes(): a value or the exception it raised."""
    ok: bool
    value: Optional[T] = None
    error: Optional[BaseException] = None


async def gather_outcomes(aws: Iterable[Awaitable[T]]) -> List[Outcome[T]]:
    """
    Run awaitables concurrently and return one Outcome per input, in input order.

    An ordinary exception in one task never cancels the others; it is returned
    as ``Outcome(ok=False, error=exc)``. BaseExceptions that are not Exceptions
    (KeyboardInterrupt, SystemExit) are re-raised.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    outcomes: List[Outcome[T]] = []
    for result in results:
        if isinstance(result, Exception):
            outcomes.append(Outcome(ok=False, error=result))
        elif isinstance(result, BaseException):
            raise result
        else:
            outcomes.append(Outcome(ok=True, value=result))
    return outcomes


def aggregate(records: List[ProcessingRecord]) -> RunResult:
    """Summarize per-image records into the all-or-nothing run result."""
    return RunResult.from_records(records)


class ReconciliationEngine:
    """
    Run the cache protocol for a set of image targets.

    The engine only knows its collaborators by protocol, so it can be driven
    by the docker/skopeo adapters in production and by in-memory fakes in
    tests.
    """

    def __init__(
        self,
        *,
        resolver: DigestResolver,
        store: CacheStore,
        runtime: ImageRuntime,
        keys: KeyContext,
        skip_latest_check: bool = False,
    ) -> None:
        self.resolver = resolver
        self.store = store
        self.runtime = runtime
        self.keys = keys
        self.skip_latest_check = skip_latest_check
        self._name_locks: Dict[str, asyncio.Lock] = {}

    async def run(self, targets: List[ImageTarget]) -> List[ProcessingRecord]:
        """
        Process all targets concurrently.

        Returns:
            One record per target, in target order. An empty target list
            returns an empty list without touching any collaborator.
        """
        if not targets:
            logger.info("No images to process. Skipping operations.")
            return []

        logger.info(f"Processing {len(targets)} image(s)...")
        outcomes = await gather_outcomes(self.process(t) for t in targets)

        records = []
        for target, outcome in zip(targets, outcomes):
            if outcome.ok:
                records.append(outcome.value)
            else:
                logger.error(f"Unexpected failure processing {target}: {outcome.error!r}")
                records.append(ProcessingRecord(
                    target=target,
                    success=False,
                    error=f"Unexpected error: {outcome.error}",
                ))
        return records

    async def process(self, target: ImageTarget) -> ProcessingRecord:
        """Run the full protocol for one target and return its record."""
        record = ProcessingRecord(target=target)
        start = time.monotonic()
        try:
            await self._process(record)
        except Exception as e:
            logger.error(f"Unexpected failure processing {target}: {e!r}")
            record.error = f"Unexpected error: {e}"
            record.success = False
        finally:
            record.duration_s = time.monotonic() - start
        return record

    async def _process(self, record: ProcessingRecord) -> None:
        target = record.target

        digest = await self._resolve_digest(record)
        if digest is None:
            return
        record.remote_digest = digest
        record.state = ProcessingState.DIGEST_RESOLVED

        record.primary_key = build_cache_key(self.keys, target.name, target.platform, digest)
        record.cache_path = build_cache_path(self.keys, target.name, target.platform, digest)

        lock = self._name_locks.setdefault(target.name, asyncio.Lock())
        try:
            async with lock:
                await self._reconcile(record)
        finally:
            self._discard_archive(record)

    async def _reconcile(self, record: ProcessingRecord) -> None:
        restored = await self._restore(record)
        record.needs_pull = not restored

        if restored and await self._load(record):
            record.success = True
            record.restored_from_cache = True
            return

        if not await self._pull(record):
            return
        record.success = True

        if await self._verify(record):
            await self._save(record)

    async def _resolve_digest(self, record: ProcessingRecord) -> Optional[str]:
        target = record.target
        try:
            digest = await self.resolver.resolve(target.name, target.platform)
        except ImageCacheError as e:
            reason = str(e)
        else:
            if digest:
                return digest
            reason = f"Digest fetch failed for {target.name}: registry returned no digest"

        logger.warning(reason)
        record.warn(reason)
        record.error = reason
        record.state = ProcessingState.DIGEST_RESOLUTION_FAILED
        record.success = False
        return None

    async def _restore(self, record: ProcessingRecord) -> bool:
        key, path = record.primary_key, record.cache_path
        try:
            hit = await self.store.restore(key, path)
        except Exception as e:
            self._warn(record, f"Cache restore failed for {record.target}: {e}")
            hit = False

        if hit and not os.path.isfile(path):
            self._warn(record, f"Cache reported a hit for {key} but {path} does not exist")
            hit = False

        record.state = ProcessingState.CACHE_HIT if hit else ProcessingState.CACHE_MISS
        if hit:
            logger.info(f"Cache hit for {record.target} ({key})")
        else:
            logger.info(f"Cache miss for {record.target}")
        return hit

    async def _load(self, record: ProcessingRecord) -> bool:
        """Load the restored archive. False means the image must be pulled instead."""
        target = record.target
        try:
            logger.info(f"Loading image {target} from cache: {record.cache_path}")
            await self.runtime.load(record.cache_path)
        except ImageCacheError as e:
            self._warn(record, f"Failed to load {target} from cache: {e}")
            record.state = ProcessingState.LOAD_FAILED
            record.needs_pull = True
            return False

        record.state = ProcessingState.LOADED
        await self._read_size(record)

        if self.skip_latest_check:
            logger.info(f"Skipped latest check for {target}, using cached version")
            return True

        local = await self._local_digest(record)
        if local is not None and local != record.remote_digest:
            self._warn(
                record,
                f"Cached image {target} is stale (Local: {local}, Expected: {record.remote_digest}); pulling",
            )
            record.needs_pull = True
            return False

        logger.info(f"Image {target} loaded successfully from cache.")
        return True

    async def _pull(self, record: ProcessingRecord) -> bool:
        target = record.target
        try:
            logger.info(f"Pulling image {target}")
            await self.runtime.pull(target.name, target.platform)
        except ImageCacheError as e:
            message = f"Failed to pull image {target}: {e}"
            logger.error(message)
            record.error = message
            record.state = ProcessingState.PULL_FAILED
            record.success = False
            return False

        record.state = ProcessingState.PULLED
        await self._read_size(record)
        return True

    async def _verify(self, record: ProcessingRecord) -> bool:
        local = await self._local_digest(record)
        if local is None or local != record.remote_digest:
            self._warn(
                record,
                f"Digest check failed after pulling {record.target} "
                f"(Local: {local or 'N/A'}, Expected: {record.remote_digest}). Skipping cache save.",
            )
            record.state = ProcessingState.DIGEST_MISMATCH
            return False
        record.state = ProcessingState.DIGEST_VERIFIED
        return True

    async def _save(self, record: ProcessingRecord) -> None:
        target = record.target
        try:
            os.makedirs(os.path.dirname(record.cache_path), exist_ok=True)
            await self.runtime.save(record.cache_path, target.name)
            stored = await self.store.save(record.primary_key, record.cache_path)
        except Exception as e:
            self._warn(record, f"Failed to save image {target} to cache: {e}")
            return

        if not stored:
            self._warn(record, f"Cache store did not accept {record.primary_key}")
            return
        record.state = ProcessingState.SAVED
        logger.info(f"Cached {target} with key {record.primary_key}")

    async def _local_digest(self, record: ProcessingRecord) -> Optional[str]:
        try:
            return await self.runtime.local_digest(record.target.name)
        except ImageCacheError as e:
            logger.debug(f"Could not read local digest of {record.target}: {e}")
            return None

    async def _read_size(self, record: ProcessingRecord) -> None:
        try:
            record.image_size = await self.runtime.image_size(record.target.name)
        except ImageCacheError as e:
            logger.debug(f"Could not read size of {record.target}: {e}")

    @staticmethod
    def _discard_archive(record: ProcessingRecord) -> None:
        try:
            os.unlink(record.cache_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.debug(f"Could not remove archive {record.cache_path}: {e}")

    @staticmethod
    def _warn(record: ProcessingRecord, message: str) -> None:
        logger.warning(message)
        record.warn(message)

