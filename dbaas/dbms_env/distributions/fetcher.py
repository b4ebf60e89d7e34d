"""
Online distribution index and downloads.

The remote origin publishes a JSON version index:

    {
        "versions": [
            {
                "version": "4.0.4",
                "edition": "enterprise",
                "dist": {"unix": "https://.../neo4j-enterprise-4.0.4-unix.tar.gz",
                         "windows": "https://.../neo4j-enterprise-4.0.4-windows.zip"},
                "sha256": {"unix": "<hex>", "windows": "<hex>"}
            }
        ]
    }

Downloads land in the distributions cache as
<product>-<edition>-<version>-<platform><ext> and are extracted next to
the archive, where DistributionCache.discover() picks them up.

Invariants:
    - Archives are written to a .part file and renamed only when complete
    - A published sha256 is always verified before the archive is kept
    - Transport errors are never retried here
    - Concurrent downloads of the same version are serialized
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import uuid
from pathlib import Path
from typing import Any

import httpx

from ..config import RegistryConfig
from ..constants import (
    DEFAULT_EDITION,
    DEFAULT_PRODUCT,
    DISTRIBUTION_ARCHIVE_EXTENSION,
    DISTRIBUTION_PLATFORM,
)
from ..errors import IntegrityError, NotFoundError, StorageError, TransportError
from ..versions import is_valid_version
from .archive import archive_stem, compute_sha256, extract_archive_async
from .cache import DistributionOrigin, DistributionRecord, read_distribution_info

logger = logging.getLogger(__name__)


class DistributionFetcher:
    """Lists and downloads distributions from the remote origin.

    Attributes:
        registry: Registry configuration (versions_url, timeout)
        product: Product name distributions are published under
        edition: Edition to list and download

    Example:
        >>> fetcher = DistributionFetcher(RegistryConfig())
        >>> await fetcher.download("4.0.4", Path("~/.cache/dbms-env/dbmss"))
        PosixPath('~/.cache/dbms-env/dbmss/neo4j-enterprise-4.0.4')
    """

    def __init__(
        self,
        registry: RegistryConfig,
        product: str = DEFAULT_PRODUCT,
        edition: str = DEFAULT_EDITION,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.registry = registry
        self.product = product
        self.edition = edition
        self._client = client
        self._owns_client = client is None
        self._locks: dict[str, asyncio.Lock] = {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.registry.timeout_seconds,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch_versions(self) -> list[DistributionRecord]:
        """List distributions available online for this platform and edition.

        Returns:
            ONLINE records with valid semver versions

        Raises:
            TransportError: If the index cannot be fetched or parsed
        """
        url = self.registry.versions_url
        try:
            response = await self._get_client().get(url)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to fetch version index from {url}: {e}", url=url) from e
        except ValueError as e:
            raise TransportError(f"Invalid version index at {url}: {e}", url=url) from e

        entries = payload.get("versions", []) if isinstance(payload, dict) else []
        return [record for record in map(self._to_record, entries) if record is not None]

    def _to_record(self, entry: Any) -> DistributionRecord | None:
        if not isinstance(entry, dict):
            return None

        version = entry.get("version")
        edition = entry.get("edition", DEFAULT_EDITION)
        dist_url = (entry.get("dist") or {}).get(DISTRIBUTION_PLATFORM)

        if edition != self.edition or not dist_url or not is_valid_version(version):
            return None

        return DistributionRecord(
            name=entry.get("name", self.product),
            version=version,
            edition=edition,
            origin=DistributionOrigin.ONLINE,
            url=dist_url,
            sha256=(entry.get("sha256") or {}).get(DISTRIBUTION_PLATFORM),
        )

    def archive_name(self, version: str) -> str:
        """Cache file name for a downloaded distribution archive."""
        return (
            f"{self.product}-{self.edition}-{version}-{DISTRIBUTION_PLATFORM}"
            f"{DISTRIBUTION_ARCHIVE_EXTENSION}"
        )

    async def download(self, version: str, cache_root: Path) -> Path:
        """Download and extract a distribution into the cache.

        Args:
            version: Exact version to download
            cache_root: Distributions cache directory

        Returns:
            The extracted distribution directory

        Raises:
            NotFoundError: If the origin has no artifact for version
            TransportError: If the download fails
            IntegrityError: If the archive does not match its published digest
            StorageError: If the archive cannot be written or extracted
        """
        cache_root = Path(cache_root)
        lock = self._locks.setdefault(version, asyncio.Lock())

        async with lock:
            existing = self._find_extracted(version, cache_root)
            if existing is not None:
                logger.debug(f"Distribution {version} already cached at {existing}")
                return existing

            records = await self.fetch_versions()
            record = next((r for r in records if r.version == version), None)
            if record is None:
                raise NotFoundError(
                    f"Unable to find the requested version: {version} online",
                    resource_type="version",
                    resource_id=version,
                )

            try:
                cache_root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"Cannot create cache directory {cache_root}: {e}", path=str(cache_root)) from e

            archive = cache_root / self.archive_name(version)
            if not archive.exists():
                await self._fetch_archive(record, archive)

            return await self._extract(archive, cache_root)

    def _find_extracted(self, version: str, cache_root: Path) -> Path | None:
        candidate = cache_root / f"{self.product}-{self.edition}-{version}"
        info = read_distribution_info(candidate)
        if info is not None and info.version == version:
            return candidate
        return None

    async def _fetch_archive(self, record: DistributionRecord, archive: Path) -> None:
        part = archive.with_name(archive.name + ".part")
        url = record.url or ""

        logger.info(f"Downloading {url}", extra={"version": record.version, "archive": str(archive)})

        try:
            async with self._get_client().stream("GET", url) as response:
                if response.status_code == httpx.codes.NOT_FOUND:
                    raise NotFoundError(
                        f"Unable to find the requested version: {record.version} online",
                        resource_type="version",
                        resource_id=record.version,
                    )
                response.raise_for_status()
                with open(part, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
        except httpx.HTTPError as e:
            part.unlink(missing_ok=True)
            raise TransportError(f"Failed to download {url}: {e}", url=url) from e
        except OSError as e:
            part.unlink(missing_ok=True)
            raise StorageError(f"Failed to write {part}: {e}", path=str(part)) from e

        if record.sha256:
            actual = await asyncio.get_running_loop().run_in_executor(None, compute_sha256, part)
            if actual.lower() != record.sha256.lower():
                part.unlink(missing_ok=True)
                raise IntegrityError(
                    f"Checksum mismatch for {archive.name}",
                    path=str(archive),
                    expected=record.sha256,
                    actual=actual,
                )
        else:
            logger.warning(f"No checksum published for {archive.name}; skipping verification")

        part.replace(archive)

    async def _extract(self, archive: Path, cache_root: Path) -> Path:
        staging = cache_root / f".extract-{uuid.uuid4()}"
        try:
            extracted = await extract_archive_async(archive, staging)
            if extracted == staging:
                # archive without a single top-level directory
                target = cache_root / archive_stem(archive).removesuffix(f"-{DISTRIBUTION_PLATFORM}")
            else:
                target = cache_root / extracted.name
            if not target.exists():
                extracted.replace(target)
            return target
        except OSError as e:
            raise StorageError(f"Failed to extract {archive}: {e}", path=str(archive)) from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)
