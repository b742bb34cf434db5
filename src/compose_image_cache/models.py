"""
Data models for image cache reconciliation.

Dataclasses carry in-process state (targets, per-image records, run result).
The per-image report is a Pydantic model because it is serialised to JSON for
structured outputs.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "ImageTarget",
    "ImageMetadata",
    "ProcessingState",
    "ProcessingRecord",
    "ImageStatus",
    "ImageReport",
    "RunResult",
    "RunReport",
]


@dataclass(frozen=True)
class ImageTarget:
    """
    An image reference to cache, with an optional platform qualifier.

    Identity is the (name, platform) pair: the same name with two platforms is
    two targets. ``platform=None`` means the host's own platform.
    """
    name: str
    platform: Optional[str] = None

    def __str__(self) -> str:
        if self.platform:
            return f"{self.name} ({self.platform})"
        return self.name


@dataclass(frozen=True)
class ImageMetadata:
    """A target together with the digest currently published by its registry."""
    target: ImageTarget
    remote_digest: str


class ProcessingState(str, Enum):
    """States of the per-image reconciliation protocol."""
    PENDING = "pending"
    DIGEST_RESOLVED = "digest_resolved"
    DIGEST_RESOLUTION_FAILED = "digest_resolution_failed"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    LOADED = "loaded"
    LOAD_FAILED = "load_failed"
    PULLED = "pulled"
    PULL_FAILED = "pull_failed"
    DIGEST_VERIFIED = "digest_verified"
    DIGEST_MISMATCH = "digest_mismatch"
    SAVED = "saved"


@dataclass
class ProcessingRecord:
    """
    Mutable state of one image during a single run. Never persisted.

    ``primary_key`` and ``cache_path`` stay None when the digest could not be
    resolved, since no key can be derived without it.
    """
    target: ImageTarget
    remote_digest: Optional[str] = None
    primary_key: Optional[str] = None
    cache_path: Optional[str] = None
    needs_pull: bool = True
    success: bool = False
    restored_from_cache: bool = False
    error: Optional[str] = None
    state: ProcessingState = ProcessingState.PENDING
    warnings: List[str] = field(default_factory=list)
    image_size: Optional[int] = None
    duration_s: float = 0.0

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    @property
    def status(self) -> ImageStatus:
        if self.restored_from_cache:
            return ImageStatus.CACHED
        if self.success:
            return ImageStatus.PULLED
        return ImageStatus.ERROR


class ImageStatus(str, Enum):
    """Reported outcome of one image."""
    CACHED = "Cached"
    PULLED = "Pulled"
    ERROR = "Error"


class ImageReport(BaseModel):
    """
    Per-image entry of the structured run output.

    Field aliases match the ``image-list`` output consumed by CI workflows.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(description="Image reference as written in the compose file")
    platform: str = Field(default="default", description="Requested platform, or 'default'")
    status: ImageStatus = Field(description="Cached, Pulled or Error")
    digest: str = Field(default="", description="Resolved remote digest")
    cache_key: str = Field(default="", alias="cacheKey", description="Primary cache key")
    size: int = Field(default=0, ge=0, description="Local image size in bytes")
    processing_time_ms: float = Field(default=0.0, ge=0, alias="processingTimeMs")
    error: Optional[str] = Field(default=None, description="Failure reason for Error status")

    @classmethod
    def from_record(cls, record: ProcessingRecord) -> ImageReport:
        return cls(
            name=record.target.name,
            platform=record.target.platform or "default",
            status=record.status,
            digest=record.remote_digest or "",
            cache_key=record.primary_key or "",
            size=record.image_size or 0,
            processing_time_ms=round(record.duration_s * 1000, 1),
            error=record.error,
        )


@dataclass(frozen=True)
class RunResult:
    """
    Aggregate outcome of one run.

    ``all_from_cache`` is all-or-nothing: a single pulled, failed or
    unresolved image makes it False, and so does an empty run.
    """
    total_count: int
    cache_hit_count: int
    all_successful: bool
    all_from_cache: bool

    @classmethod
    def from_records(cls, records: List[ProcessingRecord]) -> RunResult:
        total = len(records)
        hits = sum(1 for r in records if r.restored_from_cache)
        return cls(
            total_count=total,
            cache_hit_count=hits,
            all_successful=all(r.success for r in records),
            all_from_cache=total > 0 and not any(r.needs_pull for r in records) and hits == total,
        )


@dataclass
class RunReport:
    """Everything a caller needs to report on a finished run."""
    result: RunResult
    records: List[ProcessingRecord]
    compose_files: List[str] = field(default_factory=list)
    skip_latest_check: bool = False
    duration_s: float = 0.0

    @property
    def images(self) -> List[ImageReport]:
        return [ImageReport.from_record(r) for r in self.records]
