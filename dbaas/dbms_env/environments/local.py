"""
Local environment: instances installed and run on this machine.

The environment wires every component from one EnvironmentConfig:

    install_dbms(name, credentials, version)
        -> VersionResolver (DistributionCache, DistributionFetcher)
        -> DbmsInstaller
    start_dbmss / stop_dbmss / status_dbmss
        -> ProcessSupervisor

It holds no instance registry of its own; every call re-derives instance
existence from the install root.

Invariants:
    - Components never read paths or URLs from anywhere but the config
    - Batch results are parallel to the given ids
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import httpx

from ..config import EnvironmentConfig, RegistryConfig
from ..dbms import DbmsInfo, DbmsInstaller, DbmsOperationResult, ProcessSupervisor
from ..distributions import DistributionCache, DistributionFetcher
from ..errors import InvalidArgumentError
from ..extensions import ExtensionManager, ExtensionRegistryClient
from ..versions import VersionResolver

logger = logging.getLogger(__name__)


class LocalEnvironment:
    """Install and lifecycle operations for locally installed instances.

    Attributes:
        config: Environment configuration (owned by this environment)
        distributions: Cache discovery
        fetcher: Online index and downloads
        resolver: Version specifier resolution
        supervisor: Process control
        installer: Instance materialization
        extensions: Extension lifecycle

    Example:
        >>> env = LocalEnvironment(EnvironmentConfig.from_env(), RegistryConfig.from_env())
        >>> dbms_id = await env.install_dbms("movies", "s3cret", "4.0")
        >>> [str(r) for r in await env.status_dbmss([dbms_id])]
        ['Neo4j is not running']
        >>> await env.close()
    """

    def __init__(
        self,
        config: EnvironmentConfig,
        registry: RegistryConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        max_concurrent: int = 4,
    ) -> None:
        self.config = config
        self.registry = registry or RegistryConfig()

        self.distributions = DistributionCache()
        self.fetcher = DistributionFetcher(
            self.registry,
            product=config.product,
            edition=config.edition,
            client=http_client,
        )
        self.resolver = VersionResolver(
            self.distributions,
            self.fetcher,
            config.distributions_root,
            edition=config.edition,
            supported_range=config.supported_range,
        )
        self.supervisor = ProcessSupervisor(
            config.install_root,
            product=config.product,
            max_concurrent=max_concurrent,
        )
        self.installer = DbmsInstaller(config.install_root, product=config.product, supervisor=self.supervisor)
        self.extensions = ExtensionManager(
            config,
            client=ExtensionRegistryClient(self.registry, client=http_client),
        )

    @property
    def id(self) -> str:
        return self.config.id

    async def install_dbms(self, name: str, credentials: str, version: str) -> str:
        """Resolve a version specifier and install a new instance.

        Args:
            name: Human-readable instance name
            credentials: Initial password
            version: Semver range, URL or path to an archive or distribution

        Returns:
            The new instance id

        Raises:
            InvalidArgumentError: Empty or invalid version, or empty name
            NotSupportedError: URL version, or semver outside the supported range
            NotFoundError: Version neither cached nor online
            TransportError: Online index or download failed
            StorageError: Materialization failed
        """
        if not name or not name.strip():
            raise InvalidArgumentError("DBMS name must be specified", argument="name")

        source = await self.resolver.resolve(version)
        dbms_id = await self.installer.install(name.strip(), credentials, source)
        logger.info(f"Installed {name} as {dbms_id}", extra={"environment_id": self.id})
        return dbms_id

    async def start_dbmss(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        return await self.supervisor.start(dbms_ids)

    async def stop_dbmss(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        return await self.supervisor.stop(dbms_ids)

    async def status_dbmss(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        return await self.supervisor.status(dbms_ids)

    def list_dbmss(self) -> list[DbmsInfo]:
        """Installed instances, oldest first."""
        return self.installer.list_installed()

    def get_dbms(self, dbms_id: str) -> DbmsInfo:
        """Metadata of one installed instance.

        Raises:
            NotFoundError: If no instance with this id is installed
        """
        return self.installer.get(dbms_id)

    async def uninstall_dbms(self, dbms_id: str) -> None:
        """Stop (if running) and remove an installed instance.

        Raises:
            NotFoundError: If no instance with this id is installed
            DbmsExecutionError: If the running instance cannot be stopped
        """
        (result,) = await self.supervisor.stop([dbms_id])
        if result.error is not None:
            raise result.error
        await self.installer.uninstall(dbms_id)

    async def close(self) -> None:
        """Release HTTP clients owned by this environment."""
        await self.fetcher.close()
        await self.extensions.close()
