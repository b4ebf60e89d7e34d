"""
Version specifier classification and resolution.

A version specifier is one of:
- a semver range ("4.0.4", "4.0", "^4.1.0", ">=4.x")
- an absolute URL ("https://example.com/dist.tar.gz")
- a filesystem path (distribution archive or distribution directory)

Classification is a pure function of the string. Resolution turns a
specifier into a ResolvedSource the installer can materialize, consulting
the distribution cache first and the remote version index second.

Invariants:
    - classify() never touches the filesystem or network
    - Path and malformed-spec failures share one error message
    - URL specs fail before any network access
    - Candidate sets only contain valid semver versions (or "*")

How to change safely:
    - Keep the classification order: semver, then URL, then path
    - The error messages here are matched by callers in tests
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import semantic_version

from .constants import (
    INVALID_VERSION_MESSAGE,
    SUPPORTED_DBMS_RANGE,
    VERSION_REQUIRED_MESSAGE,
    WILDCARD_VERSION,
)
from .errors import InvalidArgumentError, NotFoundError, NotSupportedError

if TYPE_CHECKING:
    from .distributions.cache import DistributionCache, DistributionRecord
    from .distributions.fetcher import DistributionFetcher

logger = logging.getLogger(__name__)

_VERSION_NUMBER = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")


class SpecKind(Enum):
    """Classification of a version specifier."""

    SEMVER = "semver"
    URL = "url"
    PATH = "path"


class SourceKind(Enum):
    """How a resolved distribution is materialized."""

    ARCHIVE = "archive"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class VersionSpec:
    """A classified version specifier."""

    raw: str
    kind: SpecKind

    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True)
class ResolvedSource:
    """A concrete distribution ready to be installed.

    Attributes:
        kind: Archive to extract or directory to copy
        path: Location of the archive or directory
        version: Distribution version when known before install
    """

    kind: SourceKind
    path: Path
    version: str | None = None


def is_valid_semver_range(value: str) -> bool:
    """Whether value parses as an npm-style semver range."""
    try:
        semantic_version.NpmSpec(value)
    except ValueError:
        return False
    return True


def is_valid_url(value: str) -> bool:
    """Whether value is an absolute URL (scheme and host)."""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def is_valid_version(value: str | None) -> bool:
    """Whether value is a strict semver version."""
    if not value:
        return False
    try:
        semantic_version.Version(value)
    except ValueError:
        return False
    return True


def is_resolvable_version(value: str | None) -> bool:
    """Whether a discovered record may enter a candidate set."""
    return value == WILDCARD_VERSION or is_valid_version(value)


def coerce_version(value: str) -> semantic_version.Version | None:
    """Coerce the first version-looking number group in value.

    "3.1" -> 3.1.0, "^4.2" -> 4.2.0, "beta.1" -> 1.0.0, "*" -> None.
    """
    match = _VERSION_NUMBER.search(value)
    if not match:
        return None
    major, minor, patch = (int(part) if part else 0 for part in match.groups())
    return semantic_version.Version(major=major, minor=minor, patch=patch)


def classify(spec: str) -> SpecKind:
    """Classify a version specifier. Pure and total."""
    value = spec.strip()
    if value and is_valid_semver_range(value):
        return SpecKind.SEMVER
    if is_valid_url(value):
        return SpecKind.URL
    return SpecKind.PATH


def parse_version_spec(spec: str | None) -> VersionSpec:
    """Classify and validate a version specifier.

    Args:
        spec: Raw specifier as given by the caller

    Returns:
        VersionSpec with the stripped specifier and its kind

    Raises:
        InvalidArgumentError: If the spec is empty, or is a path that does not exist
    """
    value = (spec or "").strip()
    if not value:
        raise InvalidArgumentError(VERSION_REQUIRED_MESSAGE)

    kind = classify(value)
    if kind == SpecKind.PATH and not Path(value).exists():
        raise InvalidArgumentError(INVALID_VERSION_MESSAGE, argument=value)

    return VersionSpec(raw=value, kind=kind)


def satisfies_range(spec: str, supported_range: str = SUPPORTED_DBMS_RANGE) -> bool:
    """Whether the lower bound of a semver spec lies in supported_range.

    Wildcards have no lower bound and are accepted; candidates are
    filtered against the supported range at selection time.
    """
    lower = coerce_version(spec)
    if lower is None:
        return True
    return semantic_version.NpmSpec(supported_range).match(lower)


def select_version(
    spec: str,
    versions: Iterable[str],
    supported_range: str | None = None,
) -> str | None:
    """Pick the highest version matching spec (and supported_range, if given)."""
    requested = semantic_version.NpmSpec(spec)
    supported = semantic_version.NpmSpec(supported_range) if supported_range else None

    candidates = []
    for value in versions:
        if not is_valid_version(value):
            continue
        version = semantic_version.Version(value)
        if supported is not None and not supported.match(version):
            continue
        candidates.append(version)

    best = requested.select(candidates)
    return str(best) if best is not None else None


class VersionResolver:
    """Resolves version specifiers to installable distributions.

    Semver resolution order:
        1. Best match among cached distributions of the configured edition
        2. Best match in the online version index
        3. Download the online match, then re-discover the cache

    Attributes:
        cache: DistributionCache used for discovery
        fetcher: DistributionFetcher used for the online index and downloads
        distributions_root: Cache directory distributions live in
        edition: Edition to resolve
        supported_range: Semver range of installable versions

    Example:
        >>> resolver = VersionResolver(cache, fetcher, Path("~/.cache/dbms-env/dbmss"))
        >>> source = await resolver.resolve("4.0")
        >>> source.kind, source.version
        (SourceKind.DIRECTORY, '4.0.12')
    """

    def __init__(
        self,
        cache: DistributionCache,
        fetcher: DistributionFetcher,
        distributions_root: Path,
        edition: str | None = None,
        supported_range: str = SUPPORTED_DBMS_RANGE,
    ) -> None:
        self.cache = cache
        self.fetcher = fetcher
        self.distributions_root = Path(distributions_root)
        self.edition = edition
        self.supported_range = supported_range

    async def resolve(self, spec: str) -> ResolvedSource:
        """Resolve a version specifier.

        Args:
            spec: Semver range, URL or filesystem path

        Returns:
            ResolvedSource for the installer

        Raises:
            InvalidArgumentError: Empty spec, or a path that is not a distribution
            NotSupportedError: URL spec, or semver outside the supported range
            NotFoundError: Semver version neither cached nor online
            TransportError: Online index or download failed
        """
        version_spec = parse_version_spec(spec)

        if version_spec.kind == SpecKind.URL:
            raise NotSupportedError(f"fetch and install {version_spec.raw}")

        if version_spec.kind == SpecKind.PATH:
            return await self._resolve_path(Path(version_spec.raw))

        return await self._resolve_semver(version_spec.raw)

    async def _resolve_path(self, path: Path) -> ResolvedSource:
        if path.is_file():
            return ResolvedSource(kind=SourceKind.ARCHIVE, path=path.resolve())

        info = await self.cache.get_info(path)
        if info is None:
            raise InvalidArgumentError(INVALID_VERSION_MESSAGE, argument=str(path))

        return ResolvedSource(kind=SourceKind.DIRECTORY, path=path.resolve(), version=info.version)

    async def _resolve_semver(self, spec: str) -> ResolvedSource:
        if not satisfies_range(spec, self.supported_range):
            raise NotSupportedError(f"version not in range {self.supported_range}")

        cached = await self._find_cached(spec)
        if cached is not None:
            logger.debug("Resolved version from cache", extra={"spec": spec, "version": cached.version})
            return ResolvedSource(kind=SourceKind.DIRECTORY, path=cached.path, version=cached.version)

        not_found = NotFoundError(
            f"Unable to find the requested version: {spec} online",
            resource_type="version",
            resource_id=spec,
        )

        online = await self.fetcher.fetch_versions()
        version = select_version(spec, (record.version for record in online), self.supported_range)
        if version is None:
            raise not_found

        logger.info("Downloading distribution", extra={"spec": spec, "version": version})
        await self.fetcher.download(version, self.distributions_root)

        cached = await self._find_cached(version)
        if cached is None:
            raise not_found

        return ResolvedSource(kind=SourceKind.DIRECTORY, path=cached.path, version=cached.version)

    async def _find_cached(self, spec: str) -> DistributionRecord | None:
        records = [
            record
            for record in await self.cache.discover(self.distributions_root)
            if self.edition is None or record.edition == self.edition
        ]
        version = select_version(spec, (record.version for record in records), self.supported_range)
        if version is None:
            return None
        return next(record for record in records if record.version == version)
