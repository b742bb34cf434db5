"""
Settings and configuration for compose-image-cache.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables at adapter construction time.
"""
from __future__ import annotations

import os
import re
import tempfile
from dataclasses import dataclass
from typing import Optional

__all__ = ["Settings", "create_settings_from_env", "DEFAULT_CACHE_KEY_PREFIX"]

DEFAULT_CACHE_KEY_PREFIX = "docker-compose-image"

_BACKENDS = ("local", "azure")
_RESOLVERS = ("skopeo", "registry")


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for compose-image-cache adapters.

    Run Settings:
        cache_key_prefix: First component of every cache key
        skip_latest_check: Trust restored images without comparing digests again
        temp_dir: Directory for image archives (RUNNER_TEMP on GitHub runners)
        runner_os: Host OS label used in cache keys (falls back to platform.system())

    Tool Settings:
        resolver: Digest resolver, "skopeo" or "registry"
        install_skopeo: Install skopeo with apt-get when it is missing
        docker_bin: Container engine executable
        skopeo_bin: Skopeo executable
        command_timeout_s: Timeout for a single subprocess call
        pull_retry: Extra attempts for a failed `docker pull` (0=no retry)
        http_timeout_s: HTTP request timeout in seconds (registry resolver)
        http_retry: Number of retries for timed out requests (0=no retry)

    Cache Store Settings:
        backend: "local" (directory) or "azure" (blob container)
        cache_dir: Cache directory for the local backend
        az_connection_string: Azure storage connection string
        az_account: Azure storage account name
        az_key: Azure storage account key
        az_blob_endpoint: Custom Azure blob endpoint (for Azurite/private endpoints)
        az_container: Blob container holding the image archives
    """
    # Run settings
    cache_key_prefix: str = DEFAULT_CACHE_KEY_PREFIX
    skip_latest_check: bool = False
    temp_dir: str = tempfile.gettempdir()
    runner_os: Optional[str] = None

    # Tool settings
    resolver: str = "skopeo"
    install_skopeo: bool = False
    docker_bin: str = "docker"
    skopeo_bin: str = "skopeo"
    command_timeout_s: float = 600.0
    pull_retry: int = 0
    http_timeout_s: float = 30.0
    http_retry: int = 0

    # Cache store settings
    backend: str = "local"
    cache_dir: Optional[str] = None
    az_connection_string: Optional[str] = None
    az_account: Optional[str] = None
    az_key: Optional[str] = None
    az_blob_endpoint: Optional[str] = None
    az_container: str = "compose-image-cache"

    def __post_init__(self):
        """Validate settings on construction."""
        if not self.cache_key_prefix:
            raise ValueError("cache_key_prefix must not be empty")

        # Keys are used as blob names and file names; keep the prefix simple
        if not re.match(r"^[A-Za-z0-9][A-Za-z0-9._-]*$", self.cache_key_prefix):
            raise ValueError(f"Invalid cache_key_prefix format: {self.cache_key_prefix}")

        if self.resolver not in _RESOLVERS:
            raise ValueError(f"resolver must be one of {', '.join(_RESOLVERS)}, got {self.resolver!r}")

        if self.backend not in _BACKENDS:
            raise ValueError(f"backend must be one of {', '.join(_BACKENDS)}, got {self.backend!r}")

        if not self.temp_dir:
            raise ValueError("temp_dir is required")

        # Validate timeouts are positive
        if self.command_timeout_s <= 0:
            raise ValueError(f"command_timeout_s must be positive, got {self.command_timeout_s}")

        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        # Validate retry counts are non-negative
        if self.http_retry < 0:
            raise ValueError(f"http_retry must be non-negative, got {self.http_retry}")

        if self.pull_retry < 0:
            raise ValueError(f"pull_retry must be non-negative, got {self.pull_retry}")

        if self.backend == "local" and not self.cache_dir:
            raise ValueError("cache_dir is required for the local backend")

        # Validate Azure auth: require either connection string OR (account + key)
        has_conn_str = bool(self.az_connection_string)
        has_account_key = bool(self.az_account and self.az_key)

        if has_conn_str and has_account_key:
            raise ValueError("Specify either az_connection_string OR (az_account + az_key), not both")

        if self.az_account and not self.az_key:
            raise ValueError("az_account specified but az_key is missing")
        if self.az_key and not self.az_account:
            raise ValueError("az_key specified but az_account is missing")

        if self.backend == "azure" and not (has_conn_str or has_account_key):
            raise ValueError(
                "azure backend requires AZURE_STORAGE_CONNECTION_STRING or "
                "AZURE_STORAGE_ACCOUNT + AZURE_STORAGE_KEY"
            )

        if not re.match(r"^[a-z0-9](?:[a-z0-9]|-(?=[a-z0-9])){2,62}$", self.az_container):
            raise ValueError(f"Invalid az_container name: {self.az_container}")


# Settings loading functions (no caching)


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        Run:
        - COMPOSE_CACHE_KEY_PREFIX (default: docker-compose-image)
        - COMPOSE_CACHE_SKIP_LATEST_CHECK (default: false)
        - RUNNER_TEMP (default: system temp directory)
        - RUNNER_OS (optional)

        Tools:
        - COMPOSE_CACHE_RESOLVER (default: skopeo)
        - COMPOSE_CACHE_INSTALL_SKOPEO (default: false)
        - COMPOSE_CACHE_DOCKER_BIN (default: docker)
        - COMPOSE_CACHE_SKOPEO_BIN (default: skopeo)
        - COMPOSE_CACHE_COMMAND_TIMEOUT (default: 600.0)
        - COMPOSE_CACHE_PULL_RETRY (default: 0)
        - COMPOSE_CACHE_HTTP_TIMEOUT (default: 30.0)
        - COMPOSE_CACHE_HTTP_RETRY (default: 0)

        Cache store:
        - COMPOSE_CACHE_BACKEND (default: local)
        - COMPOSE_CACHE_DIR (default: ~/.cache/compose-image-cache)
        - AZURE_STORAGE_CONNECTION_STRING (optional)
        - AZURE_STORAGE_ACCOUNT (optional)
        - AZURE_STORAGE_KEY (optional)
        - COMPOSE_CACHE_AZURE_BLOB_ENDPOINT (optional, for Azurite/custom endpoints)
        - COMPOSE_CACHE_AZURE_CONTAINER (default: compose-image-cache)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid

    Note:
        Creates a fresh Settings instance every time (no caching).
        This ensures test isolation and eliminates global state.
    """
    return _load_settings_impl()


def _load_settings_impl() -> Settings:
    """Internal implementation of settings loading."""
    # Helper to convert string to bool
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    # Helper to get float from env
    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        try:
            return float(value) if value else default
        except ValueError:
            raise ValueError(f"{key} must be a number, got {value!r}") from None

    # Helper to get int from env
    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        try:
            return int(value) if value else default
        except ValueError:
            raise ValueError(f"{key} must be an integer, got {value!r}") from None

    default_cache_dir = os.path.join(os.path.expanduser("~"), ".cache", "compose-image-cache")

    return Settings(
        cache_key_prefix=os.getenv("COMPOSE_CACHE_KEY_PREFIX") or DEFAULT_CACHE_KEY_PREFIX,
        skip_latest_check=str_to_bool(os.getenv("COMPOSE_CACHE_SKIP_LATEST_CHECK", "false")),
        temp_dir=os.getenv("RUNNER_TEMP") or tempfile.gettempdir(),
        runner_os=os.getenv("RUNNER_OS") or None,
        resolver=os.getenv("COMPOSE_CACHE_RESOLVER", "skopeo").lower(),
        install_skopeo=str_to_bool(os.getenv("COMPOSE_CACHE_INSTALL_SKOPEO", "false")),
        docker_bin=os.getenv("COMPOSE_CACHE_DOCKER_BIN") or "docker",
        skopeo_bin=os.getenv("COMPOSE_CACHE_SKOPEO_BIN") or "skopeo",
        command_timeout_s=get_float("COMPOSE_CACHE_COMMAND_TIMEOUT", 600.0),
        pull_retry=get_int("COMPOSE_CACHE_PULL_RETRY", 0),
        http_timeout_s=get_float("COMPOSE_CACHE_HTTP_TIMEOUT", 30.0),
        http_retry=get_int("COMPOSE_CACHE_HTTP_RETRY", 0),
        backend=os.getenv("COMPOSE_CACHE_BACKEND", "local").lower(),
        cache_dir=os.getenv("COMPOSE_CACHE_DIR") or default_cache_dir,
        az_connection_string=os.getenv("AZURE_STORAGE_CONNECTION_STRING"),
        az_account=os.getenv("AZURE_STORAGE_ACCOUNT"),
        az_key=os.getenv("AZURE_STORAGE_KEY"),
        az_blob_endpoint=os.getenv("COMPOSE_CACHE_AZURE_BLOB_ENDPOINT"),
        az_container=os.getenv("COMPOSE_CACHE_AZURE_CONTAINER") or "compose-image-cache",
    )
