"""
Distribution cache discovery.

A distribution directory embeds its identity in the kernel library it
ships:

    <root>/lib/<product>-kernel-<version>.jar     -> name, version
    <root>/lib/*enterprise*.jar (any)             -> edition "enterprise"

Discovery scans a cache directory, probing every subdirectory
independently. A probe that fails (unreadable directory, missing lib,
corrupt entry) excludes only that entry.

Invariants:
    - Only directories are probed; archives in the same directory are ignored
    - One corrupt sibling never aborts discovery of valid siblings
    - Every returned record has a valid semver version, or is "*"
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..constants import DISTRIBUTION_KERNEL_SUFFIX, WILDCARD_VERSION
from ..versions import is_resolvable_version

logger = logging.getLogger(__name__)


class DistributionOrigin(Enum):
    """Where a distribution record was found."""

    CACHED = "cached"
    ONLINE = "online"


@dataclass(frozen=True)
class DistributionInfo:
    """Identity embedded in a distribution or installed instance."""

    name: str
    version: str
    edition: str


@dataclass(frozen=True)
class DistributionRecord:
    """A known distribution, on disk or downloadable.

    Attributes:
        name: Product name
        version: Distribution version
        edition: Distribution edition
        origin: CACHED or ONLINE
        path: Directory for cached records
        url: Download URL for online records
        sha256: Published archive digest for online records, if any
    """

    name: str
    version: str
    edition: str
    origin: DistributionOrigin
    path: Path | None = None
    url: str | None = None
    sha256: str | None = None


def read_distribution_info(root: Path) -> DistributionInfo | None:
    """Read embedded distribution metadata (blocking).

    Args:
        root: Distribution or instance root directory

    Returns:
        DistributionInfo, or None if root is not a distribution
    """
    lib_dir = Path(root) / "lib"
    if not lib_dir.is_dir():
        return None

    name = version = None
    enterprise = False
    for jar in lib_dir.glob("*.jar"):
        stem = jar.name[: -len(".jar")]
        if "enterprise" in stem:
            enterprise = True
        if name is None and DISTRIBUTION_KERNEL_SUFFIX in stem:
            product, _, jar_version = stem.partition(DISTRIBUTION_KERNEL_SUFFIX)
            # neo4j-kernel-api-<version>.jar shares the prefix
            if product and (jar_version[:1].isdigit() or jar_version == WILDCARD_VERSION):
                name, version = product, jar_version

    if name is None or version is None:
        return None

    return DistributionInfo(
        name=name,
        version=version,
        edition="enterprise" if enterprise else "community",
    )


async def get_distribution_info(root: Path) -> DistributionInfo | None:
    """Read embedded distribution metadata without blocking the event loop."""
    return await asyncio.get_running_loop().run_in_executor(None, read_distribution_info, Path(root))


class DistributionCache:
    """Discovers distributions already present on disk.

    Example:
        >>> cache = DistributionCache()
        >>> records = await cache.discover(Path("~/.cache/dbms-env/dbmss"))
        >>> [r.version for r in records]
        ['4.0.4', '4.1.0']
    """

    async def discover(self, root: Path) -> list[DistributionRecord]:
        """Discover cached distributions under root.

        Args:
            root: Cache directory to scan

        Returns:
            Records with valid semver (or wildcard) versions, in directory order
        """
        root = Path(root)
        loop = asyncio.get_running_loop()
        dirs = await loop.run_in_executor(None, _list_directories, root)

        probes = [self._probe(path) for path in dirs]
        records = [record for record in await asyncio.gather(*probes) if record is not None]

        return [record for record in records if is_resolvable_version(record.version)]

    async def get_info(self, path: Path) -> DistributionInfo | None:
        """Distribution metadata of a distribution or installed instance."""
        return await get_distribution_info(path)

    async def _probe(self, path: Path) -> DistributionRecord | None:
        try:
            info = await get_distribution_info(path)
        except Exception as e:
            logger.debug(f"Skipping unreadable distribution {path}: {e}")
            return None

        if info is None:
            return None

        return DistributionRecord(
            name=info.name,
            version=info.version,
            edition=info.edition,
            origin=DistributionOrigin.CACHED,
            path=path,
        )


def _list_directories(root: Path) -> list[Path]:
    if not root.is_dir():
        return []
    return sorted(entry for entry in root.iterdir() if entry.is_dir() and not entry.name.startswith("."))
