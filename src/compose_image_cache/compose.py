"""
Compose manifest reading.

Turns compose files into the list of image targets to cache: every service
with an ``image`` key contributes ``(image, platform)``. Services that are
only built locally have no image and are skipped.
"""
from __future__ import annotations

import logging
import os
from typing import Iterable, List, Optional, Sequence

import yaml

from .errors import ComposeFileNotFoundError, ComposeParseError, NoComposeFilesError
from .models import ImageTarget

__all__ = [
    "DEFAULT_COMPOSE_FILE_NAMES",
    "find_default_compose_files",
    "resolve_compose_files",
    "read_image_targets",
    "select_targets",
]

logger = logging.getLogger(__name__)

DEFAULT_COMPOSE_FILE_NAMES = (
    "compose.yaml",
    "compose.yml",
    "docker-compose.yaml",
    "docker-compose.yml",
)


def find_default_compose_files(cwd: Optional[str] = None) -> List[str]:
    """Return the first existing default compose file in cwd, as a one-element list."""
    base = cwd or os.getcwd()
    for name in DEFAULT_COMPOSE_FILE_NAMES:
        path = os.path.join(base, name)
        if os.path.isfile(path):
            return [path]
    return []


def resolve_compose_files(paths: Sequence[str], cwd: Optional[str] = None) -> List[str]:
    """
    Decide which compose files to read.

    Explicit paths must all exist. With no explicit paths the default names
    are searched in cwd.

    Raises:
        ComposeFileNotFoundError: If an explicit path does not exist
        NoComposeFilesError: If no path was given and no default file exists
    """
    if paths:
        resolved = []
        for path in paths:
            full = path if os.path.isabs(path) or cwd is None else os.path.join(cwd, path)
            if not os.path.isfile(full):
                raise ComposeFileNotFoundError(path)
            resolved.append(full)
        logger.info(f"Using specified compose files: {', '.join(paths)}")
        return resolved

    logger.info("Compose files not specified, searching for default files...")
    found = find_default_compose_files(cwd)
    if not found:
        raise NoComposeFilesError(
            f"No default compose files found (looked for {', '.join(DEFAULT_COMPOSE_FILE_NAMES)})"
        )
    logger.info(f"Using automatically found compose file: {found[0]}")
    return found


def read_image_targets(paths: Iterable[str]) -> List[ImageTarget]:
    """
    Read image targets from compose files, in file and service order.

    Duplicates are kept; see select_targets().

    Raises:
        ComposeParseError: If a file is not valid YAML or has an unexpected shape
    """
    targets: List[ImageTarget] = []
    for path in paths:
        targets.extend(_read_file(path))
    return targets


def _read_file(path: str) -> List[ImageTarget]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ComposeParseError(path, str(e)) from e
    except OSError as e:
        raise ComposeParseError(path, e.strerror or str(e)) from e

    if data is None:
        logger.debug(f"Empty compose file: {path}")
        return []
    if not isinstance(data, dict):
        raise ComposeParseError(path, "top level must be a mapping")

    services = data.get("services")
    if not services:
        logger.debug(f"No services section found in {path}")
        return []
    if not isinstance(services, dict):
        raise ComposeParseError(path, "'services' must be a mapping")

    targets = []
    for service_name, service in services.items():
        if not isinstance(service, dict):
            continue
        image = service.get("image")
        if not image:
            logger.debug(f"Service {service_name} has no image, skipping")
            continue
        platform = service.get("platform")
        targets.append(ImageTarget(
            name=str(image).strip(),
            platform=str(platform).strip() if platform else None,
        ))
    return targets


def select_targets(targets: Iterable[ImageTarget], exclude: Iterable[str] = ()) -> List[ImageTarget]:
    """
    Drop excluded images and duplicates.

    Exclusion matches the image name exactly, for every platform. Duplicates
    by (name, platform) keep their first occurrence.
    """
    excluded = set(exclude)
    seen = set()
    selected = []
    for target in targets:
        if target.name in excluded:
            continue
        if target in seen:
            continue
        seen.add(target)
        selected.append(target)
    return selected
