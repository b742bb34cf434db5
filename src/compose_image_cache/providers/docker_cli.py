"""
Container engine adapter over the docker CLI.
"""
from __future__ import annotations

import json
import logging
from typing import Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import CommandError
from ..reference import parse_image_reference
from ..runtime_types import ImageRuntime
from ..settings import Settings
from .process import run_command

__all__ = ["DockerRuntime"]

logger = logging.getLogger(__name__)


class DockerRuntime(ImageRuntime):
    """
    ImageRuntime implemented with `docker pull/load/save/image inspect`.

    Pulls are retried with exponential backoff when ``pull_retry`` is set,
    which covers registry rate limiting and flaky networks on CI runners.
    """

    def __init__(
        self,
        *,
        docker_bin: str = "docker",
        timeout: Optional[float] = 600.0,
        pull_retry: int = 0,
    ) -> None:
        self.docker_bin = docker_bin
        self.timeout = timeout
        self.pull_retry = pull_retry

    @classmethod
    def from_settings(cls, settings: Settings) -> DockerRuntime:
        return cls(
            docker_bin=settings.docker_bin,
            timeout=settings.command_timeout_s,
            pull_retry=settings.pull_retry,
        )

    async def _docker(self, *args: str):
        return await run_command([self.docker_bin, *args], timeout=self.timeout)

    async def pull(self, name: str, platform: Optional[str] = None) -> None:
        args = ["pull"]
        if platform:
            args += ["--platform", platform]
        args.append(name)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.pull_retry + 1),
            wait=wait_exponential(multiplier=1, min=1, max=30),
            retry=retry_if_exception_type(CommandError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                await self._docker(*args)

    async def load(self, archive_path: str) -> None:
        await self._docker("load", "-i", archive_path)

    async def save(self, archive_path: str, name: str) -> None:
        await self._docker("save", "-o", archive_path, name)

    async def local_digest(self, name: str) -> Optional[str]:
        result = await self._docker("image", "inspect", "--format", "{{json .RepoDigests}}", name)
        return select_repo_digest(name, result.stdout)

    async def image_size(self, name: str) -> Optional[int]:
        result = await self._docker("image", "inspect", "--format", "{{.Size}}", name)
        value = result.stdout.strip()
        return int(value) if value.isdigit() else None


def select_repo_digest(name: str, repo_digests_json: str) -> Optional[str]:
    """
    Pick the digest belonging to name's repository from RepoDigests output.

    An image can carry digests for several repositories (e.g. when it was
    tagged and pushed elsewhere); only the one for name's own repository says
    anything about the remote it was pulled from.

    Examples:
        >>> select_repo_digest("nginx:1.27", '["nginx@sha256:abc"]')
        'sha256:abc'
    """
    try:
        entries = json.loads(repo_digests_json.strip() or "null")
    except json.JSONDecodeError:
        logger.debug(f"Unparseable RepoDigests for {name}: {repo_digests_json!r}")
        return None
    if not entries:
        return None

    ref = parse_image_reference(name)
    accepted = {
        ref.familiar_repository,
        f"{ref.registry}/{ref.repository}",
    }
    for entry in entries:
        repo, _, digest = str(entry).partition("@")
        if digest and repo in accepted:
            return digest
    return None
