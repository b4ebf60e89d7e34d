"""
Extension lifecycle: versions, install, link, list and uninstall.

Layout:

    <cache_home>/extensions/<name>-<version>/       downloaded, extracted extensions
    <data_home>/extensions/<TYPE>/<name>/           installed (copy or symlink)

fetch_extension_versions() is a plain union of cached and online
versions: a version present in both places is reported twice, once per
origin.

Invariants:
    - At most one installed copy per extension name and type
    - Installs go through a staging copy and are renamed into place
    - Linked extensions are symlinks and are never deleted through, only unlinked
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import uuid
from pathlib import Path

from ..config import EnvironmentConfig, RegistryConfig
from ..distributions.archive import extract_archive_async
from ..errors import InvalidArgumentError, NotFoundError, StorageError
from ..versions import is_valid_semver_range, select_version
from .discovery import discover_extension, discover_extension_distributions
from .models import ExtensionMeta, ExtensionOrigin, ExtensionType, ExtensionVersion
from .registry import ExtensionRegistryClient

logger = logging.getLogger(__name__)


class ExtensionManager:
    """Resolves, installs and removes extensions for one environment.

    Attributes:
        cache_root: Directory holding downloaded extensions
        install_root: Directory holding installed extensions, by type
        registry: Client for the online extension registry

    Example:
        >>> manager = ExtensionManager(EnvironmentConfig(), RegistryConfig())
        >>> meta = await manager.install_extension("graph-app", "^1.2")
        >>> meta.dist
        PosixPath('~/.local/share/dbms-env/extensions/STATIC/graph-app')
    """

    def __init__(
        self,
        config: EnvironmentConfig,
        registry: RegistryConfig | None = None,
        client: ExtensionRegistryClient | None = None,
    ) -> None:
        self.cache_root = config.extensions_cache_root
        self.install_root = config.extensions_install_root
        self.registry = client or ExtensionRegistryClient(registry or RegistryConfig())
        self._locks: dict[str, asyncio.Lock] = {}

    async def close(self) -> None:
        await self.registry.close()

    async def fetch_extension_versions(self) -> list[ExtensionVersion]:
        """Cached and online extension versions, cached first, duplicates kept."""
        cached = [
            ExtensionVersion(name=meta.name, version=meta.version, origin=ExtensionOrigin.CACHED)
            for meta in await discover_extension_distributions(self.cache_root)
        ]
        online = await self.registry.search()
        return cached + online

    async def install_extension(self, name: str, version: str) -> ExtensionMeta:
        """Install an extension from the cache, downloading it if needed.

        Args:
            name: Extension name (without the npm scope)
            version: Semver range or "*"

        Returns:
            The installed extension

        Raises:
            InvalidArgumentError: If name or version is invalid
            NotFoundError: If no cached or online version matches
            TransportError: If the registry cannot be reached
            StorageError: If extraction or copy fails
        """
        if not is_valid_semver_range(version):
            raise InvalidArgumentError(f"Invalid extension version: {version}", argument=version)
        validate_extension_name(name)

        source = await self._find_cached(name, version)
        if source is None:
            source = await self._download(name, version)

        target = self._install_target(source.type, source.name)
        staging = target.with_name(f".staging-{uuid.uuid4()}")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.get_running_loop().run_in_executor(
                None, lambda: shutil.copytree(source.dist, staging, symlinks=True)
            )
            _remove(target)
            staging.replace(target)
        except OSError as e:
            raise StorageError(f"Failed to install extension {name}: {e}", path=str(target)) from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        logger.info(f"Installed extension {source.name}@{source.version}", extra={"root": str(target)})
        return await discover_extension(target)

    async def _find_cached(self, name: str, version: str) -> ExtensionMeta | None:
        candidates = [meta for meta in await discover_extension_distributions(self.cache_root) if meta.name == name]
        wildcard = next((meta for meta in candidates if meta.version == "*"), None)

        selected = select_version(version, (meta.version for meta in candidates))
        if selected is None:
            return wildcard if version == "*" else None
        return next(meta for meta in candidates if meta.version == selected)

    async def _download(self, name: str, version: str) -> ExtensionMeta:
        online = [v for v in await self.registry.search() if v.name == name]
        selected = select_version(version, (v.version for v in online))
        if selected is None:
            raise NotFoundError(
                f"Unable to find the requested extension: {name}@{version} online",
                resource_type="extension",
                resource_id=f"{name}@{version}",
            )

        lock = self._locks.setdefault(f"{name}@{selected}", asyncio.Lock())
        async with lock:
            cached = await self._find_cached(name, selected)
            if cached is not None:
                return cached

            archive = await self.registry.download(name, selected, self.cache_root)
            staging = self.cache_root / f".extract-{uuid.uuid4()}"
            target = self.cache_root / f"{name}-{selected}"
            try:
                extracted = await extract_archive_async(archive, staging)
                _remove(target)
                extracted.replace(target)
            except OSError as e:
                raise StorageError(f"Failed to extract {archive}: {e}", path=str(archive)) from e
            finally:
                shutil.rmtree(staging, ignore_errors=True)
                archive.unlink(missing_ok=True)

        return await discover_extension(target)

    async def link_extension(self, path: Path) -> ExtensionMeta:
        """Install an extension by symlinking a development directory.

        Raises:
            NotFoundError: If path does not exist
            InvalidArgumentError: If path contains no valid manifest, or its name is not a plain name
            StorageError: If the link cannot be created
        """
        source = await discover_extension(Path(path).resolve())
        target = self._install_target(source.type, source.name)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            _remove(target)
            target.symlink_to(source.dist, target_is_directory=True)
        except OSError as e:
            raise StorageError(f"Failed to link extension {source.name}: {e}", path=str(target)) from e

        logger.info(f"Linked extension {source.name} -> {source.dist}")
        return source

    async def list_installed_extensions(self) -> list[ExtensionMeta]:
        """Installed extensions of every type."""
        installed: list[ExtensionMeta] = []
        for ext_type in ExtensionType:
            installed.extend(await discover_extension_distributions(self.install_root / ext_type.value))
        return installed

    async def uninstall_extension(self, name: str) -> list[Path]:
        """Remove every installed extension called name.

        Returns:
            The removed install directories (or links)

        Raises:
            InvalidArgumentError: If name is not a plain name
            NotFoundError: If no extension called name is installed
        """
        removed = []
        for ext_type in ExtensionType:
            target = self._install_target(ext_type, name)
            if not (target.exists() or target.is_symlink()):
                continue
            try:
                _remove(target)
            except OSError as e:
                raise StorageError(f"Failed to uninstall extension {name}: {e}", path=str(target)) from e
            removed.append(target)

        if not removed:
            raise NotFoundError(f"Extension {name} not found", resource_type="extension", resource_id=name)

        logger.info(f"Uninstalled extension {name}")
        return removed


    def _install_target(self, ext_type: ExtensionType, name: str) -> Path:
        validate_extension_name(name)
        type_root = self.install_root / ext_type.value
        target = type_root / name
        if Path(os.path.abspath(target)).parent != Path(os.path.abspath(type_root)):
            raise InvalidArgumentError(f"Invalid extension name: {name}", argument=name)
        return target


def validate_extension_name(name: str) -> None:
    """Reject names that are not a single, non-hidden path component."""
    if (
        not name
        or name.startswith(".")
        or ".." in name
        or "/" in name
        or "\\" in name
    ):
        raise InvalidArgumentError(f"Invalid extension name: {name}", argument=name)


def _remove(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)
