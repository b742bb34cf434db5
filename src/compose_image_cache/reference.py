"""
Image reference parsing.

Splits references such as ``nginx``, ``ghcr.io/org/app:1.2`` or
``localhost:5000/app@sha256:...`` into registry, repository and tag/digest,
applying the Docker Hub defaults the container engine applies.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

__all__ = ["ImageReference", "parse_image_reference", "DOCKER_HUB_REGISTRY"]

DOCKER_HUB_REGISTRY = "docker.io"
DOCKER_HUB_API_HOST = "registry-1.docker.io"
DEFAULT_TAG = "latest"

_DIGEST_RE = re.compile(r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-fA-F0-9]{32,}$")


@dataclass(frozen=True)
class ImageReference:
    """
    A parsed image reference.

    Attributes:
        registry: Registry host as written ("docker.io" when omitted)
        repository: Repository path ("library/nginx" for Docker Hub official images)
        tag: Tag, or None when only a digest was given
        digest: Digest pinned in the reference, if any
    """
    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    @property
    def reference(self) -> str:
        """Tag or digest to use in a manifest request (digest wins)."""
        return self.digest or self.tag or DEFAULT_TAG

    @property
    def api_host(self) -> str:
        """Host serving the distribution API for this registry."""
        if self.registry == DOCKER_HUB_REGISTRY:
            return DOCKER_HUB_API_HOST
        return self.registry

    @property
    def familiar_repository(self) -> str:
        """Repository as `docker image inspect` reports it in RepoDigests."""
        if self.registry == DOCKER_HUB_REGISTRY:
            if self.repository.startswith("library/"):
                return self.repository[len("library/"):]
            return self.repository
        return f"{self.registry}/{self.repository}"


def _looks_like_registry(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def parse_image_reference(name: str) -> ImageReference:
    """
    Parse an image reference.

    Raises:
        ValueError: If the reference is empty or malformed

    Examples:
        >>> parse_image_reference("nginx")
        ImageReference(registry='docker.io', repository='library/nginx', tag='latest', digest=None)

        >>> parse_image_reference("ghcr.io/org/app:1.2").repository
        'org/app'
    """
    ref = name.strip()
    if not ref:
        raise ValueError("Image reference must not be empty")

    digest = None
    if "@" in ref:
        ref, digest = ref.split("@", 1)
        if not _DIGEST_RE.match(digest):
            raise ValueError(f"Invalid digest in image reference: {name}")

    # Tag is after the last colon, but only if that colon is after the last slash
    tag = None
    last_slash = ref.rfind("/")
    last_colon = ref.rfind(":")
    if last_colon > last_slash:
        ref, tag = ref[:last_colon], ref[last_colon + 1:]
        if not tag:
            raise ValueError(f"Empty tag in image reference: {name}")

    parts = ref.split("/")
    if len(parts) > 1 and _looks_like_registry(parts[0]):
        registry = parts[0]
        repository = "/".join(parts[1:])
    else:
        registry = DOCKER_HUB_REGISTRY
        repository = ref

    if registry in ("index.docker.io", "registry-1.docker.io"):
        registry = DOCKER_HUB_REGISTRY
    if registry == DOCKER_HUB_REGISTRY and "/" not in repository:
        repository = f"library/{repository}"

    if not repository or any(not p for p in repository.split("/")):
        raise ValueError(f"Invalid repository in image reference: {name}")

    if tag is None and digest is None:
        tag = DEFAULT_TAG

    return ImageReference(registry=registry, repository=repository, tag=tag, digest=digest)
