"""
Extension registry client.

Extensions are published as npm tarballs to an artifact repository.
Search posts an AQL query filtering by name prefix and repository:

    items.find({"path": {"$match": "@dbms-ext/*"}, "repo": {"$eq": "npm-local"}})

and gets back {"results": [{"name": "<name>-<version>.tgz", ...}, ...]}.
Names are mapped back to {name, version} by coercing the trailing
"-" separated segment to semver; names without a usable version are
dropped.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import httpx

from ..config import RegistryConfig
from ..constants import EXTENSION_ARCHIVE_EXTENSION, EXTENSION_NPM_PREFIX
from ..errors import NotFoundError, StorageError, TransportError
from ..versions import coerce_version
from .models import ExtensionOrigin, ExtensionVersion

logger = logging.getLogger(__name__)


def build_search_query(prefix: str, repo: str) -> str:
    """AQL search body for all artifacts under prefix in repo."""
    search = {"path": {"$match": f"{prefix}*"}, "repo": {"$eq": repo}}
    return f"items.find({json.dumps(search)})"


def map_search_results(results: list[dict[str, Any]]) -> list[ExtensionVersion]:
    """Map registry search results to ONLINE extension versions."""
    versions = []
    for item in results:
        name = item.get("name") if isinstance(item, dict) else None
        if not name:
            continue

        version_part = name.replace(EXTENSION_ARCHIVE_EXTENSION, "").split("-")[-1]
        version = coerce_version(version_part)
        if version is None:
            continue

        ext_name = name.split(f"-{version}")[0]
        if not ext_name:
            continue

        versions.append(ExtensionVersion(name=ext_name, version=str(version), origin=ExtensionOrigin.ONLINE))
    return versions


class ExtensionRegistryClient:
    """Searches and downloads extensions from the artifact registry.

    Attributes:
        registry: Registry configuration (URLs, repo, credentials)
    """

    def __init__(self, registry: RegistryConfig, client: httpx.AsyncClient | None = None) -> None:
        self.registry = registry
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.registry.timeout_seconds, follow_redirects=True)
        return self._client

    def _auth(self) -> httpx.BasicAuth | None:
        if not self.registry.has_credentials:
            return None
        return httpx.BasicAuth(self.registry.username or "", self.registry.password or "")

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def search(self) -> list[ExtensionVersion]:
        """List extension versions published to the registry.

        Raises:
            TransportError: If the search request fails
        """
        url = self.registry.extension_search_url
        body = build_search_query(EXTENSION_NPM_PREFIX, self.registry.extension_repo)

        try:
            response = await self._get_client().post(
                url,
                content=body,
                headers={"Content-Type": "text/plain"},
                auth=self._auth(),
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"Extension search failed at {url}: {e}", url=url) from e
        except ValueError as e:
            raise TransportError(f"Invalid extension search response from {url}: {e}", url=url) from e

        results = payload.get("results", []) if isinstance(payload, dict) else []
        return map_search_results(results)

    def tarball_url(self, name: str, version: str) -> str:
        """npm tarball URL of a published extension version."""
        base = self.registry.extension_download_url.rstrip("/")
        return f"{base}/{EXTENSION_NPM_PREFIX}{name}/-/{name}-{version}{EXTENSION_ARCHIVE_EXTENSION}"

    async def download(self, name: str, version: str, destination: Path) -> Path:
        """Download an extension tarball into destination.

        Returns:
            Path of the downloaded archive

        Raises:
            NotFoundError: If the registry has no such version
            TransportError: If the download fails
            StorageError: If the archive cannot be written
        """
        url = self.tarball_url(name, version)
        destination = Path(destination)
        archive = destination / f"{name}-{version}{EXTENSION_ARCHIVE_EXTENSION}"
        part = archive.with_name(archive.name + ".part")

        logger.info(f"Downloading extension {name}@{version}", extra={"url": url})

        try:
            destination.mkdir(parents=True, exist_ok=True)
            async with self._get_client().stream("GET", url, auth=self._auth()) as response:
                if response.status_code == httpx.codes.NOT_FOUND:
                    raise NotFoundError(
                        f"Extension {name}@{version} not found",
                        resource_type="extension",
                        resource_id=f"{name}@{version}",
                    )
                response.raise_for_status()
                with open(part, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
            part.replace(archive)
        except httpx.HTTPError as e:
            part.unlink(missing_ok=True)
            raise TransportError(f"Failed to download {url}: {e}", url=url) from e
        except OSError as e:
            part.unlink(missing_ok=True)
            raise StorageError(f"Failed to write {archive}: {e}", path=str(archive)) from e

        return archive
