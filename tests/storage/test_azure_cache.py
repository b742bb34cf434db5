"""
Tests for the Azure Blob cache store against an in-memory container client.
"""
from __future__ import annotations

from typing import Dict

import pytest
from azure.core.exceptions import HttpResponseError, ResourceExistsError, ResourceNotFoundError

from compose_image_cache.errors import CacheStoreError
from compose_image_cache.settings import Settings
from compose_image_cache.storage.azure_cache import AzureBlobCacheStore

CONN_STR = "DefaultEndpointsProtocol=https;AccountName=test;AccountKey=dGVzdGtleQ==;EndpointSuffix=core.windows.net"


class _Download:
    def __init__(self, data: bytes):
        self._data = data

    def readinto(self, stream) -> int:
        stream.write(self._data)
        return len(self._data)


class FakeBlobClient:
    def __init__(self, container: "FakeContainerClient", name: str):
        self._container = container
        self.name = name

    def download_blob(self):
        if self._container.download_error is not None:
            raise self._container.download_error
        if self.name not in self._container.blobs:
            raise ResourceNotFoundError("The specified blob does not exist.")
        return _Download(self._container.blobs[self.name])

    def upload_blob(self, data, overwrite=False, metadata=None):
        if self.name in self._container.blobs and not overwrite:
            raise ResourceExistsError("The specified blob already exists.")
        self._container.blobs[self.name] = data.read()
        self._container.metadata[self.name] = metadata or {}


class FakeContainerClient:
    """Minimal stand-in for azure.storage.blob.ContainerClient."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.metadata: Dict[str, dict] = {}
        self.created = 0
        self.download_error = None

    def get_blob_client(self, name: str) -> FakeBlobClient:
        return FakeBlobClient(self, name)

    def create_container(self):
        self.created += 1
        if self.created > 1:
            raise ResourceExistsError("The specified container already exists.")


@pytest.fixture
def azure_settings():
    return Settings(backend="azure", az_connection_string=CONN_STR)


@pytest.fixture
def container():
    return FakeContainerClient()


@pytest.fixture
def azure_store(azure_settings, container):
    return AzureBlobCacheStore(settings=azure_settings, container=container)


class TestConstruction:
    """Authentication and client construction."""

    def test_requires_azure_auth(self, settings):
        with pytest.raises(ValueError, match="Azure authentication not configured"):
            AzureBlobCacheStore(settings=settings)

    def test_connection_string(self, azure_settings):
        assert AzureBlobCacheStore(settings=azure_settings) is not None

    def test_account_key_with_custom_endpoint(self):
        settings = Settings(
            backend="azure",
            az_account="devstoreaccount1",
            az_key="dGVzdGtleQ==",
            az_blob_endpoint="http://127.0.0.1:10000",
        )
        store = AzureBlobCacheStore(settings=settings)
        assert store._service_client().url.startswith("http://127.0.0.1:10000/devstoreaccount1")


class TestAzureBlobCacheStore:

    async def test_restore_miss(self, azure_store, tmp_path):
        dest = tmp_path / "image.tar"
        assert await azure_store.restore("k1", str(dest)) is False
        assert not dest.exists()
        assert not (tmp_path / "image.tar.part").exists()

    async def test_save_then_restore(self, azure_store, container, tmp_path):
        archive = tmp_path / "image.tar"
        archive.write_bytes(b"layers")

        assert await azure_store.save("k1", str(archive)) is True
        assert container.blobs == {"k1.tar": b"layers"}
        assert container.metadata["k1.tar"] == {"cache-key": "k1"}

        dest = tmp_path / "restored" / "image.tar"
        assert await azure_store.restore("k1", str(dest)) is True
        assert dest.read_bytes() == b"layers"

    async def test_save_existing_blob_is_success(self, azure_store, container, tmp_path):
        container.blobs["k1.tar"] = b"original"
        archive = tmp_path / "image.tar"
        archive.write_bytes(b"new")

        assert await azure_store.save("k1", str(archive)) is True
        assert container.blobs["k1.tar"] == b"original"

    async def test_container_created_once(self, azure_store, container, tmp_path):
        archive = tmp_path / "image.tar"
        archive.write_bytes(b"x")
        await azure_store.save("k1", str(archive))
        await azure_store.save("k2", str(archive))
        assert container.created == 1

    async def test_backend_error_raises_cache_store_error(self, azure_store, container, tmp_path):
        container.download_error = HttpResponseError("server busy")
        dest = tmp_path / "image.tar"

        with pytest.raises(CacheStoreError, match="download error for k1"):
            await azure_store.restore("k1", str(dest))
        assert not (tmp_path / "image.tar.part").exists()
