"""
Error classes for compose-image-cache.

Two families live here. Input validation errors abort a run before any image
is processed. Adapter errors (subprocess, registry, cache store) are raised by
collaborators and always caught inside the reconciliation engine, where they
become a warning or error on a single image's record.
"""
from __future__ import annotations

from typing import Sequence


class ImageCacheError(Exception):
    """Base class for all compose-image-cache errors."""
    pass


# Input validation (fatal)

class ComposeFileNotFoundError(ImageCacheError):
    """
    Raised when an explicitly named compose file does not exist.

    This corresponds to exit code 2 in the CLI.
    """

    def __init__(self, path: str):
        super().__init__(f"Specified compose file not found: {path}")
        self.path = path


class NoComposeFilesError(ImageCacheError):
    """
    Raised when no compose file was given and none of the default names exist.

    This corresponds to exit code 2 in the CLI.
    """
    pass


class ComposeParseError(ImageCacheError):
    """Raised when a compose file is not valid YAML or has an unexpected shape."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Could not process compose file {path}: {reason}")
        self.path = path
        self.reason = reason


class UnmappablePlatformError(ImageCacheError):
    """Raised when the host OS/architecture has no OCI equivalent."""

    def __init__(self, system: str, machine: str):
        super().__init__(f"Cannot map host platform to OCI: system={system!r} machine={machine!r}")
        self.system = system
        self.machine = machine


class ToolInstallError(ImageCacheError):
    """
    Raised when a required external tool is missing and cannot be installed.

    This corresponds to exit code 4 in the CLI.
    """
    pass


# Adapter errors (recoverable, per image)

class CommandError(ImageCacheError):
    """
    A subprocess exited with a non-zero status or timed out.

    Attributes:
        args_: Command line that was executed
        returncode: Exit status, or None on timeout
        stderr: Captured standard error (stripped)
    """

    def __init__(self, args: Sequence[str], returncode: int | None, stderr: str = ""):
        cmd = " ".join(args)
        if returncode is None:
            message = f"command timed out: {cmd}"
        else:
            message = f"command failed with exit code {returncode}: {cmd}"
        if stderr:
            message = f"{message}: {stderr}"
        super().__init__(message)
        self.args_ = list(args)
        self.returncode = returncode
        self.stderr = stderr


class CommandTimeout(CommandError):
    """A subprocess did not finish within its timeout."""

    def __init__(self, args: Sequence[str]):
        super().__init__(args, None)


class DigestResolutionError(ImageCacheError):
    """The remote digest of an image could not be determined."""

    def __init__(self, image: str, reason: str):
        super().__init__(f"Digest fetch failed for {image}: {reason}")
        self.image = image
        self.reason = reason


class RegistryError(ImageCacheError):
    """
    HTTP error talking to an OCI distribution registry.

    Raised when:
    - HTTP 401/403 after the bearer token flow
    - HTTP 404 for the manifest reference
    - Any other non-2xx status or network failure
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CacheStoreError(ImageCacheError):
    """A cache store operation failed for a reason other than "already exists"."""
    pass


# Run outcome

class IncompleteRunError(ImageCacheError):
    """
    Raised in strict mode when at least one image was not made available.

    This corresponds to exit code 5 in the CLI.
    """

    def __init__(self, failed: Sequence[str]):
        super().__init__(f"{len(failed)} image(s) failed: {', '.join(failed)}")
        self.failed = list(failed)


__all__ = [
    "ImageCacheError",
    "ComposeFileNotFoundError",
    "NoComposeFilesError",
    "ComposeParseError",
    "UnmappablePlatformError",
    "ToolInstallError",
    "CommandError",
    "CommandTimeout",
    "DigestResolutionError",
    "RegistryError",
    "CacheStoreError",
    "IncompleteRunError",
]
