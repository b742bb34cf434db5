"""
Tests for settings module.

Tests settings validation and environment variable loading.
"""
from __future__ import annotations

import os

import pytest

from compose_image_cache.settings import DEFAULT_CACHE_KEY_PREFIX, Settings, create_settings_from_env


class TestSettings:
    """Test Settings dataclass validation."""

    def test_minimal_valid_settings(self, tmp_path):
        """Only the local cache directory is required."""
        settings = Settings(cache_dir=str(tmp_path))
        assert settings.cache_key_prefix == DEFAULT_CACHE_KEY_PREFIX
        assert settings.skip_latest_check is False
        assert settings.resolver == "skopeo"
        assert settings.backend == "local"
        assert settings.command_timeout_s == 600.0
        assert settings.pull_retry == 0
        assert settings.http_timeout_s == 30.0
        assert settings.http_retry == 0
        assert settings.az_container == "compose-image-cache"

    def test_local_backend_requires_cache_dir(self):
        with pytest.raises(ValueError, match="cache_dir is required"):
            Settings()

    def test_azure_backend_with_connection_string(self):
        settings = Settings(
            backend="azure",
            az_connection_string="DefaultEndpointsProtocol=https;AccountName=test;AccountKey=key",
        )
        assert settings.cache_dir is None
        assert settings.az_account is None

    def test_azure_backend_with_account_key(self):
        settings = Settings(backend="azure", az_account="testaccount", az_key="testkey123==")
        assert settings.az_account == "testaccount"
        assert settings.az_connection_string is None

    def test_azure_backend_without_credentials_raises(self):
        with pytest.raises(ValueError, match="azure backend requires"):
            Settings(backend="azure")

    def test_azure_both_auth_methods_raises(self, tmp_path):
        with pytest.raises(ValueError, match="either az_connection_string OR"):
            Settings(
                cache_dir=str(tmp_path),
                az_connection_string="DefaultEndpointsProtocol=https;AccountName=a;AccountKey=k",
                az_account="a",
                az_key="k",
            )

    def test_azure_partial_account_key_raises(self, tmp_path):
        with pytest.raises(ValueError, match="az_key is missing"):
            Settings(cache_dir=str(tmp_path), az_account="testaccount")
        with pytest.raises(ValueError, match="az_account is missing"):
            Settings(cache_dir=str(tmp_path), az_key="testkey")

    @pytest.mark.parametrize("prefix", ["", "has space", "-leading-dash", "a/b"])
    def test_invalid_prefix_raises(self, tmp_path, prefix):
        with pytest.raises(ValueError, match="cache_key_prefix"):
            Settings(cache_dir=str(tmp_path), cache_key_prefix=prefix)

    def test_custom_prefix(self, tmp_path):
        settings = Settings(cache_dir=str(tmp_path), cache_key_prefix="ci.images_v2")
        assert settings.cache_key_prefix == "ci.images_v2"

    def test_unknown_backend_raises(self, tmp_path):
        with pytest.raises(ValueError, match="backend must be one of"):
            Settings(cache_dir=str(tmp_path), backend="s3")

    def test_unknown_resolver_raises(self, tmp_path):
        with pytest.raises(ValueError, match="resolver must be one of"):
            Settings(cache_dir=str(tmp_path), resolver="crane")

    @pytest.mark.parametrize("field", ["command_timeout_s", "http_timeout_s"])
    def test_non_positive_timeout_raises(self, tmp_path, field):
        with pytest.raises(ValueError, match="must be positive"):
            Settings(cache_dir=str(tmp_path), **{field: 0})

    @pytest.mark.parametrize("field", ["http_retry", "pull_retry"])
    def test_negative_retry_raises(self, tmp_path, field):
        with pytest.raises(ValueError, match="must be non-negative"):
            Settings(cache_dir=str(tmp_path), **{field: -1})

    @pytest.mark.parametrize("name", ["UPPER", "ab", "double--dash", "x" * 64])
    def test_invalid_container_name_raises(self, tmp_path, name):
        with pytest.raises(ValueError, match="Invalid az_container"):
            Settings(cache_dir=str(tmp_path), az_container=name)

    def test_settings_are_frozen(self, settings):
        with pytest.raises(AttributeError):
            settings.cache_key_prefix = "other"  # type: ignore[misc]


class TestCreateSettingsFromEnv:
    """Test loading settings from environment variables."""

    def test_defaults(self, tmp_path):
        """The test environment sets RUNNER_OS, RUNNER_TEMP and COMPOSE_CACHE_DIR."""
        settings = create_settings_from_env()
        assert settings.cache_key_prefix == DEFAULT_CACHE_KEY_PREFIX
        assert settings.runner_os == "Linux"
        assert settings.temp_dir == str(tmp_path / "runner-temp")
        assert settings.cache_dir == str(tmp_path / "cache")
        assert settings.skip_latest_check is False

    def test_default_cache_dir_under_home(self, monkeypatch, tmp_path):
        monkeypatch.delenv("COMPOSE_CACHE_DIR")
        monkeypatch.setenv("HOME", str(tmp_path))
        settings = create_settings_from_env()
        assert settings.cache_dir == os.path.join(str(tmp_path), ".cache", "compose-image-cache")

    def test_all_values(self, monkeypatch):
        monkeypatch.setenv("COMPOSE_CACHE_KEY_PREFIX", "my-prefix")
        monkeypatch.setenv("COMPOSE_CACHE_SKIP_LATEST_CHECK", "yes")
        monkeypatch.setenv("COMPOSE_CACHE_RESOLVER", "Registry")
        monkeypatch.setenv("COMPOSE_CACHE_INSTALL_SKOPEO", "1")
        monkeypatch.setenv("COMPOSE_CACHE_DOCKER_BIN", "podman")
        monkeypatch.setenv("COMPOSE_CACHE_COMMAND_TIMEOUT", "120")
        monkeypatch.setenv("COMPOSE_CACHE_PULL_RETRY", "2")
        monkeypatch.setenv("COMPOSE_CACHE_HTTP_TIMEOUT", "5.5")
        monkeypatch.setenv("COMPOSE_CACHE_HTTP_RETRY", "3")

        settings = create_settings_from_env()
        assert settings.cache_key_prefix == "my-prefix"
        assert settings.skip_latest_check is True
        assert settings.resolver == "registry"
        assert settings.install_skopeo is True
        assert settings.docker_bin == "podman"
        assert settings.command_timeout_s == 120.0
        assert settings.pull_retry == 2
        assert settings.http_timeout_s == 5.5
        assert settings.http_retry == 3

    def test_azure_backend_from_env(self, monkeypatch):
        monkeypatch.setenv("COMPOSE_CACHE_BACKEND", "azure")
        monkeypatch.setenv("AZURE_STORAGE_ACCOUNT", "devstoreaccount1")
        monkeypatch.setenv("AZURE_STORAGE_KEY", "key==")
        monkeypatch.setenv("COMPOSE_CACHE_AZURE_BLOB_ENDPOINT", "http://127.0.0.1:10000")
        monkeypatch.setenv("COMPOSE_CACHE_AZURE_CONTAINER", "images")

        settings = create_settings_from_env()
        assert settings.backend == "azure"
        assert settings.az_account == "devstoreaccount1"
        assert settings.az_blob_endpoint == "http://127.0.0.1:10000"
        assert settings.az_container == "images"

    @pytest.mark.parametrize("var", ["COMPOSE_CACHE_COMMAND_TIMEOUT", "COMPOSE_CACHE_HTTP_RETRY"])
    def test_malformed_numbers_raise(self, monkeypatch, var):
        monkeypatch.setenv(var, "soon")
        with pytest.raises(ValueError, match=var):
            create_settings_from_env()

    def test_fresh_instance_each_call(self, monkeypatch):
        """No caching: environment changes are picked up immediately."""
        first = create_settings_from_env()
        monkeypatch.setenv("COMPOSE_CACHE_KEY_PREFIX", "changed")
        second = create_settings_from_env()
        assert first.cache_key_prefix == DEFAULT_CACHE_KEY_PREFIX
        assert second.cache_key_prefix == "changed"
