"""
Registry HTTP digest resolver for the OCI Distribution API.

Resolves digests with a manifest HEAD request and the Docker Registry v2
Bearer token flow, without needing skopeo on the runner.
"""
from __future__ import annotations

import base64
import json
import logging
import re
import time
from pathlib import Path
from typing import Dict, Optional, Tuple

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import DigestResolutionError, RegistryError
from ..platform import parse_platform
from ..reference import DOCKER_HUB_REGISTRY, ImageReference, parse_image_reference
from ..runtime_types import DigestResolver
from ..settings import Settings

__all__ = ["DockerAuth", "RegistryDigestResolver", "ACCEPTED_MANIFEST_TYPES"]

logger = logging.getLogger(__name__)

INDEX_MANIFEST_TYPES = [
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
]

# Index types first so the digest matches what `docker pull` records
ACCEPTED_MANIFEST_TYPES = INDEX_MANIFEST_TYPES + [
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.v2+json",
]

# Docker config stores Docker Hub credentials under the legacy index URL
_DOCKER_HUB_AUTH_KEYS = ["https://index.docker.io/v1/", "index.docker.io", "docker.io"]


class DockerAuth:
    """Handle Docker Registry authentication from config files."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or Path.home() / ".docker" / "config.json"
        self._config_cache: Optional[dict] = None
        self._config_mtime: Optional[float] = None

    def get_credentials(self, registry: str) -> Optional[Tuple[str, str]]:
        """
        Get credentials for registry from Docker config.

        Returns: (username, password) or None if not found
        """
        config = self._load_config()
        if not config:
            return None

        auths = config.get("auths", {})

        if registry == DOCKER_HUB_REGISTRY:
            candidates = _DOCKER_HUB_AUTH_KEYS
        else:
            candidates = [registry, f"https://{registry}", f"http://{registry}"]

        auth_entry = next((auths[k] for k in candidates if k in auths), None)
        if auth_entry is None:
            return None

        # Handle base64 encoded auth field
        if "auth" in auth_entry:
            try:
                decoded = base64.b64decode(auth_entry["auth"]).decode()
            except (ValueError, UnicodeDecodeError):
                logger.debug(f"Ignoring malformed auth entry for {registry}")
            else:
                if ":" in decoded:
                    username, password = decoded.split(":", 1)
                    return username, password

        # Handle username/password fields
        if "username" in auth_entry and "password" in auth_entry:
            return (auth_entry["username"], auth_entry["password"])

        return None

    def _load_config(self) -> Optional[dict]:
        """Load Docker config with caching and mtime checking."""
        if not self.config_path.exists():
            return None

        try:
            current_mtime = self.config_path.stat().st_mtime

            # Use cached version if file hasn't changed
            if (self._config_cache is not None and
                    self._config_mtime is not None and
                    current_mtime == self._config_mtime):
                return self._config_cache

            with open(self.config_path, 'r') as f:
                config = json.load(f)

            self._config_cache = config
            self._config_mtime = current_mtime
            return config

        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Could not read docker config {self.config_path}: {e}")
            return None


class RegistryDigestResolver(DigestResolver):
    """
    DigestResolver using the OCI Distribution HTTP API.

    Implements the Docker Registry v2 auth flow: an unauthenticated request,
    then on 401 a Bearer token exchange (with Docker config credentials when
    present, anonymously otherwise) and a single authenticated retry. Tokens
    are cached per service/scope. Timeouts are retried with tenacity.
    """

    def __init__(
        self,
        *,
        auth: Optional[DockerAuth] = None,
        timeout: float = 30.0,
        retries: int = 0,
        insecure_registries: Tuple[str, ...] = ("localhost",),
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.auth = auth or DockerAuth()
        self.retries = retries
        self.insecure_registries = insecure_registries
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            follow_redirects=True,
            headers={"User-Agent": "compose-image-cache/0.1.0"},
            transport=transport,
        )

        # Token cache: {service/scope: (token, expiry_timestamp)}
        self._token_cache: Dict[str, Tuple[str, float]] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> RegistryDigestResolver:
        return cls(timeout=settings.http_timeout_s, retries=settings.http_retry)

    async def resolve(self, name: str, platform: Optional[str] = None) -> Optional[str]:
        try:
            ref = parse_image_reference(name)
        except ValueError as e:
            raise DigestResolutionError(name, str(e)) from e

        try:
            return await self._resolve(ref, platform)
        except RegistryError as e:
            raise DigestResolutionError(name, str(e)) from e

    async def _resolve(self, ref: ImageReference, platform: Optional[str]) -> str:
        path = f"/v2/{ref.repository}/manifests/{ref.reference}"
        headers = {"Accept": ", ".join(ACCEPTED_MANIFEST_TYPES)}

        response = await self._request("HEAD", ref, path, headers=headers)
        digest = response.headers.get("Docker-Content-Digest")
        media_type = response.headers.get("Content-Type", "").split(";")[0].strip()

        if digest is None or (platform and media_type in INDEX_MANIFEST_TYPES):
            # Some registries omit the digest on HEAD; the index body is needed
            # anyway to check that the requested platform is published.
            response = await self._request("GET", ref, path, headers=headers)
            digest = digest or response.headers.get("Docker-Content-Digest")
            if platform:
                _check_platform_published(ref, platform, response)

        if not digest:
            raise RegistryError(
                f"Registry did not return Docker-Content-Digest header for {ref.repository}:{ref.reference}"
            )
        return digest

    def _base_url(self, ref: ImageReference) -> str:
        host = ref.api_host
        scheme = "http" if host.split(":")[0] in self.insecure_registries else "https"
        return f"{scheme}://{host}"

    async def _request(self, method: str, ref: ImageReference, path: str,
                       headers: Optional[dict] = None) -> httpx.Response:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(httpx.TimeoutException),
            reraise=True,
        )
        try:
            return await retrying(self._request_once, method, ref, path, headers)
        except httpx.TimeoutException as e:
            raise RegistryError(f"Timed out talking to {ref.api_host}: {e}") from e

    async def _request_once(self, method: str, ref: ImageReference, path: str,
                            headers: Optional[dict]) -> httpx.Response:
        """
        Make HTTP request with transparent Bearer token auth flow.

        Handles 401 responses by:
        1. Parsing WWW-Authenticate header for Bearer realm/service/scope
        2. Looking up credentials in Docker config
        3. Exchanging credentials (or nothing) for a Bearer token
        4. Retrying original request with Authorization header
        """
        url = f"{self._base_url(ref)}{path}"
        request_headers = dict(headers or {})

        try:
            response = await self.client.request(method, url, headers=request_headers)

            if response.status_code == 401:
                auth_header = response.headers.get("WWW-Authenticate", "")
                if auth_header.startswith("Bearer "):
                    token = await self._handle_bearer_auth(ref.registry, auth_header)
                    if token:
                        request_headers["Authorization"] = f"Bearer {token}"
                        response = await self.client.request(method, url, headers=request_headers)
        except httpx.TimeoutException:
            raise
        except httpx.RequestError as e:
            raise RegistryError(f"Network error: {e}") from e

        status = response.status_code
        if status == 404:
            raise RegistryError(f"Manifest not found: {ref.repository}:{ref.reference}", status)
        if status in (401, 403):
            raise RegistryError(f"Authentication failed for {ref.repository}:{ref.reference}", status)
        if status >= 400:
            raise RegistryError(f"Registry error {status} for {ref.repository}:{ref.reference}", status)
        return response

    async def _handle_bearer_auth(self, registry: str, www_authenticate: str) -> Optional[str]:
        """
        Handle Bearer token authentication flow.

        Parses WWW-Authenticate header, gets credentials, exchanges for token.
        """
        # Format: Bearer realm="...",service="...",scope="..."
        bearer_params = dict(re.findall(r'(\w+)="([^"]*)"', www_authenticate))

        realm = bearer_params.get("realm")
        service = bearer_params.get("service")
        scope = bearer_params.get("scope")

        if not realm:
            return None

        cache_key = f"{service or ''}:{scope or ''}"
        if cache_key in self._token_cache:
            token, expiry = self._token_cache[cache_key]
            if time.time() < expiry - 30:  # 30s buffer before expiry
                return token

        params = {k: v for k, v in (("service", service), ("scope", scope)) if v}
        creds = self.auth.get_credentials(registry)

        try:
            if creds:
                auth_response = await self.client.get(realm, params=params, auth=creds)
            else:
                auth_response = await self.client.get(realm, params=params)
            auth_response.raise_for_status()
            token_data = auth_response.json()
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            logger.debug(f"Token exchange with {realm} failed: {e}")
            return None

        token = token_data.get("token") or token_data.get("access_token")
        if not token:
            return None

        # Cache with expiry (default 1 hour if not specified)
        expires_in = token_data.get("expires_in", 3600)
        self._token_cache[cache_key] = (token, time.time() + expires_in)
        return token

    async def aclose(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()


def _check_platform_published(ref: ImageReference, platform: str, response: httpx.Response) -> None:
    wanted = parse_platform(platform)
    if wanted is None:
        return
    try:
        manifests = response.json().get("manifests", [])
    except (json.JSONDecodeError, AttributeError):
        raise RegistryError(f"Invalid index JSON for {ref.repository}:{ref.reference}") from None

    for entry in manifests:
        p = entry.get("platform") or {}
        if p.get("os") != wanted.os or p.get("architecture") != wanted.arch:
            continue
        if wanted.variant and p.get("variant") and p.get("variant") != wanted.variant:
            continue
        return
    raise RegistryError(f"Platform {platform} not published for {ref.repository}:{ref.reference}")
