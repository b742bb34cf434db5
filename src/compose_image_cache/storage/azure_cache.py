"""
Azure Blob Storage cache store.

One blob per cache key inside a single container. Blob transfers use the
synchronous azure-storage-blob SDK and run in a worker thread so they do not
block the event loop while other images are being processed.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
from typing import Optional

from azure.core.exceptions import (
    AzureError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from azure.storage.blob import BlobServiceClient, ContainerClient

from ..errors import CacheStoreError
from ..settings import Settings
from .base import CacheStore

__all__ = ["AzureBlobCacheStore"]

logger = logging.getLogger(__name__)


class AzureBlobCacheStore(CacheStore):
    """
    CacheStore adapter for Azure Blob Storage.

    Uses azure-storage-blob SDK with connection string or account+key authentication.
    Supports custom endpoints for Azurite and private Azure clouds.
    """

    def __init__(self, *, settings: Settings, container: Optional[ContainerClient] = None) -> None:
        """
        Initialize Azure cache store with settings.

        Args:
            settings: Settings containing Azure authentication and container name
            container: Pre-built container client (tests, custom credentials)

        Raises:
            ValueError: If Azure authentication is not properly configured
        """
        self._settings = settings
        if container is None:
            self._validate_azure_auth()
            container = self._service_client().get_container_client(settings.az_container)
        self._container = container
        self._container_checked = False

        # Log configuration (without secrets)
        if settings.az_blob_endpoint:
            logger.debug(f"Azure cache store using custom endpoint: {settings.az_blob_endpoint}")
        logger.debug(f"Azure cache store container: {settings.az_container}")

    def _validate_azure_auth(self) -> None:
        """Validate Azure authentication configuration."""
        has_conn_str = bool(self._settings.az_connection_string)
        has_account_key = bool(self._settings.az_account and self._settings.az_key)

        if not has_conn_str and not has_account_key:
            raise ValueError("Azure authentication not configured: need AZURE_STORAGE_CONNECTION_STRING or (AZURE_STORAGE_ACCOUNT + AZURE_STORAGE_KEY)")

    def _service_client(self) -> BlobServiceClient:
        """
        Build the service client.

        Connection patterns:
        1. Connection string, standard Azure cloud endpoints
        2. Connection string + custom endpoint: account name is taken from the
           connection string, endpoint becomes {endpoint}/{account} (Azurite)
        3. Account+key, https://{account}.blob.core.windows.net
        4. Account+key + custom endpoint: {endpoint}/{account}
        """
        settings = self._settings
        options = dict(
            connection_timeout=settings.http_timeout_s,
            retry_total=5,
            retry_backoff_factor=0.4,
        )

        if settings.az_connection_string:
            if settings.az_blob_endpoint:
                account_match = re.search(r"AccountName=([^;]+)", settings.az_connection_string)
                key_match = re.search(r"AccountKey=([^;]+)", settings.az_connection_string)
                if account_match:
                    account = account_match.group(1)
                    endpoint_url = f"{settings.az_blob_endpoint.rstrip('/')}/{account}"
                    credential = None
                    if key_match:
                        credential = {"account_name": account, "account_key": key_match.group(1)}
                    return BlobServiceClient(account_url=endpoint_url, credential=credential, **options)
            return BlobServiceClient.from_connection_string(settings.az_connection_string, **options)

        if settings.az_blob_endpoint:
            account_url = f"{settings.az_blob_endpoint.rstrip('/')}/{settings.az_account}"
        else:
            account_url = f"https://{settings.az_account}.blob.core.windows.net"
        return BlobServiceClient(
            account_url=account_url,
            credential={"account_name": settings.az_account, "account_key": settings.az_key},
            **options,
        )

    @staticmethod
    def blob_name(key: str) -> str:
        return f"{key}.tar"

    async def restore(self, key: str, path: str) -> bool:
        return await asyncio.to_thread(self._restore_sync, key, path)

    async def save(self, key: str, path: str) -> bool:
        return await asyncio.to_thread(self._save_sync, key, path)

    def _restore_sync(self, key: str, path: str) -> bool:
        blob = self._container.get_blob_client(self.blob_name(key))
        tmp_path = f"{path}.part"
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(tmp_path, "wb") as f:
                blob.download_blob().readinto(f)
            os.replace(tmp_path, path)
        except ResourceNotFoundError:
            logger.debug(f"Cache miss for key {key}")
            _remove_quietly(tmp_path)
            return False
        except (AzureError, OSError) as e:
            _remove_quietly(tmp_path)
            raise CacheStoreError(f"Azure blob download error for {key}: {e}") from e

        logger.debug(f"Cache hit for key {key}")
        return True

    def _save_sync(self, key: str, path: str) -> bool:
        self._ensure_container()
        blob = self._container.get_blob_client(self.blob_name(key))
        try:
            with open(path, "rb") as f:
                blob.upload_blob(f, overwrite=False, metadata={"cache-key": key})
        except ResourceExistsError:
            logger.info(f"Cache entry already exists for key {key}")
            return True
        except (AzureError, OSError) as e:
            raise CacheStoreError(f"Azure blob upload error for {key}: {e}") from e

        logger.debug(f"Uploaded cache entry {self.blob_name(key)}")
        return True

    def _ensure_container(self) -> None:
        if self._container_checked:
            return
        try:
            self._container.create_container()
        except ResourceExistsError:
            pass
        except AzureError as e:
            raise CacheStoreError(f"Azure container error: {e}") from e
        self._container_checked = True


def _remove_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
