"""Root pytest configuration for compose-image-cache tests."""
from __future__ import annotations

import pytest

from compose_image_cache.cache_key import KeyContext
from compose_image_cache.engine import ReconciliationEngine
from compose_image_cache.platform import OciPlatform
from compose_image_cache.runner import Collaborators
from compose_image_cache.settings import Settings

from tests.fakes.fake_collaborators import FakeCacheStore, FakeInstaller, FakeResolver, FakeRuntime

NGINX_DIGEST = "sha256:" + "a" * 64
REDIS_DIGEST = "sha256:" + "b" * 64
POSTGRES_DIGEST = "sha256:" + "c" * 64
FINGERPRINT = "f" * 64

_ENV_VARS = [
    "COMPOSE_CACHE_KEY_PREFIX",
    "COMPOSE_CACHE_SKIP_LATEST_CHECK",
    "COMPOSE_CACHE_BACKEND",
    "COMPOSE_CACHE_RESOLVER",
    "COMPOSE_CACHE_INSTALL_SKOPEO",
    "COMPOSE_CACHE_DOCKER_BIN",
    "COMPOSE_CACHE_SKOPEO_BIN",
    "COMPOSE_CACHE_COMMAND_TIMEOUT",
    "COMPOSE_CACHE_HTTP_TIMEOUT",
    "COMPOSE_CACHE_HTTP_RETRY",
    "COMPOSE_CACHE_PULL_RETRY",
    "COMPOSE_CACHE_AZURE_BLOB_ENDPOINT",
    "COMPOSE_CACHE_AZURE_CONTAINER",
    "AZURE_STORAGE_CONNECTION_STRING",
    "AZURE_STORAGE_ACCOUNT",
    "AZURE_STORAGE_KEY",
    "GITHUB_OUTPUT",
    "GITHUB_STEP_SUMMARY",
]


# Set up test environment variables
@pytest.fixture(autouse=True)
def test_env(monkeypatch, tmp_path):
    """Isolate every test from the caller's environment."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("RUNNER_OS", "Linux")
    monkeypatch.setenv("RUNNER_TEMP", str(tmp_path / "runner-temp"))
    monkeypatch.setenv("COMPOSE_CACHE_DIR", str(tmp_path / "cache"))


# Standardized test fixtures
@pytest.fixture
def settings(tmp_path):
    """Standard test settings."""
    return Settings(
        temp_dir=str(tmp_path / "runner-temp"),
        runner_os="Linux",
        cache_dir=str(tmp_path / "cache"),
    )


@pytest.fixture
def keys(tmp_path):
    """Key context for a linux/amd64 host."""
    return KeyContext(
        prefix="docker-compose-image",
        host_os="Linux",
        host_platform=OciPlatform("linux", "amd64"),
        fingerprint=FINGERPRINT,
        temp_dir=str(tmp_path / "runner-temp"),
    )


@pytest.fixture
def resolver():
    return FakeResolver({
        "nginx:1.27": NGINX_DIGEST,
        "redis:7": REDIS_DIGEST,
        "postgres:16": POSTGRES_DIGEST,
    })


@pytest.fixture
def store():
    return FakeCacheStore()


@pytest.fixture
def runtime():
    return FakeRuntime({
        "nginx:1.27": NGINX_DIGEST,
        "redis:7": REDIS_DIGEST,
        "postgres:16": POSTGRES_DIGEST,
    })


@pytest.fixture
def installer():
    return FakeInstaller()


@pytest.fixture
def engine(resolver, store, runtime, keys):
    return ReconciliationEngine(resolver=resolver, store=store, runtime=runtime, keys=keys)


@pytest.fixture
def collaborators(resolver, store, runtime, installer):
    return Collaborators(resolver=resolver, store=store, runtime=runtime, installers=[installer])


@pytest.fixture
def compose_file(tmp_path):
    """Write a compose file into tmp_path and return its path."""
    def _write(content: str, name: str = "compose.yaml") -> str:
        path = tmp_path / name
        path.write_text(content)
        return str(path)
    return _write
