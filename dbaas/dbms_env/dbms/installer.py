"""
Instance installation.

An install turns a ResolvedSource into a new instance directory:

    <install_root>/.staging-<id>/        extract archive or copy directory
        ... verify distribution metadata and bin/<product>
        ... write dbms.manifest.json
        ... bin/<product>-admin set-initial-password <credentials>
    <install_root>/dbms-<id>/            rename on success

Instance existence is derived from the filesystem: only dbms-<id>
directories count, so a failed install never shows up in listings or
status queries.

Invariants:
    - Every install generates a fresh uuid4, even for identical inputs
    - Materialization is all-or-nothing (staging is removed on any failure)
    - Filesystem errors surface as StorageError
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import time
import uuid
from pathlib import Path

from ..constants import (
    DBMS_DIR_PREFIX,
    DBMS_MANIFEST_FILE,
    DBMS_STAGING_PREFIX,
    DEFAULT_PRODUCT,
    INVALID_VERSION_MESSAGE,
)
from ..distributions.archive import extract_archive_async
from ..distributions.cache import get_distribution_info, read_distribution_info
from ..errors import DbmsEnvError, InvalidArgumentError, NotFoundError, StorageError
from ..versions import ResolvedSource, SourceKind
from .models import DbmsInfo
from .supervisor import ProcessSupervisor, is_valid_dbms_id

logger = logging.getLogger(__name__)


class DbmsInstaller:
    """Materializes, lists and removes instances under an install root.

    Attributes:
        install_root: Directory holding dbms-<uuid> instances
        product: Product name (admin executable name)
        supervisor: Supervisor used to run the admin executable

    Example:
        >>> installer = DbmsInstaller(Path("~/.local/share/dbms-env/dbmss"))
        >>> source = ResolvedSource(kind=SourceKind.ARCHIVE, path=Path("neo4j-enterprise-4.0.4-unix.tar.gz"))
        >>> await installer.install("movies", "s3cret", source)
        '6b1f0c0e-2c7e-4a8b-9a41-0d5b8c7c2f10'
    """

    def __init__(
        self,
        install_root: Path,
        product: str = DEFAULT_PRODUCT,
        supervisor: ProcessSupervisor | None = None,
    ) -> None:
        self.install_root = Path(install_root)
        self.product = product
        self.supervisor = supervisor or ProcessSupervisor(self.install_root, product)

    async def install(self, name: str, credentials: str, source: ResolvedSource) -> str:
        """Install a new instance.

        Args:
            name: Human-readable instance name
            credentials: Initial password, opaque to the installer
            source: Archive or distribution directory to install from

        Returns:
            The new instance id

        Raises:
            InvalidArgumentError: If the source is not a distribution or has no control executable
            StorageError: If extraction, copy or rename fails
            DbmsExecutionError: If setting the initial password fails
        """
        dbms_id = str(uuid.uuid4())
        staging = self.install_root / f"{DBMS_STAGING_PREFIX}{dbms_id}"
        target = self.install_root / f"{DBMS_DIR_PREFIX}{dbms_id}"

        logger.info(
            "Installing DBMS",
            extra={"dbms_id": dbms_id, "name": name, "source": str(source.path)},
        )

        try:
            self.install_root.mkdir(parents=True, exist_ok=True)
            root = await self._materialize(source, staging)

            info = await get_distribution_info(root)
            if info is None or not self.supervisor.control_executable(root).is_file():
                raise InvalidArgumentError(INVALID_VERSION_MESSAGE, argument=str(source.path))

            DbmsInfo(
                id=dbms_id,
                name=name,
                root=target,
                version=info.version,
                edition=info.edition,
                created_at=int(time.time() * 1000),
            ).write(root / DBMS_MANIFEST_FILE)

            await self._set_initial_password(root, credentials)

            root.replace(target)
        except DbmsEnvError:
            raise
        except OSError as e:
            raise StorageError(f"Failed to install DBMS {dbms_id}: {e}", path=str(target)) from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        logger.info(f"Installed DBMS {dbms_id}", extra={"version": info.version, "root": str(target)})
        return dbms_id

    async def _materialize(self, source: ResolvedSource, staging: Path) -> Path:
        if source.kind == SourceKind.ARCHIVE:
            return await extract_archive_async(source.path, staging)

        root = staging / Path(source.path).name
        staging.mkdir(parents=True)
        await asyncio.get_running_loop().run_in_executor(
            None, lambda: shutil.copytree(source.path, root, symlinks=True)
        )
        return root

    async def _set_initial_password(self, root: Path, credentials: str) -> None:
        if not self.supervisor.admin_executable(root).is_file():
            logger.warning(f"No {self.product}-admin executable in {root}; initial password not set")
            return
        await self.supervisor.run_admin(root, "set-initial-password", credentials)

    async def uninstall(self, dbms_id: str) -> None:
        """Remove an installed instance directory.

        Raises:
            NotFoundError: If no instance with this id is installed
            StorageError: If the directory cannot be removed
        """
        root = self.supervisor.resolve_root(dbms_id)
        try:
            await asyncio.get_running_loop().run_in_executor(None, shutil.rmtree, root)
        except OSError as e:
            raise StorageError(f"Failed to uninstall DBMS {dbms_id}: {e}", path=str(root)) from e
        logger.info(f"Uninstalled DBMS {dbms_id}")

    def get(self, dbms_id: str) -> DbmsInfo:
        """Metadata of an installed instance.

        Raises:
            NotFoundError: If no instance with this id is installed
        """
        root = self.supervisor.resolve_root(dbms_id)
        info = self._read_manifest(root)
        if info is None:
            raise NotFoundError(f'DBMS "{dbms_id}" not found', resource_type="dbms", resource_id=dbms_id)
        return info

    def list_installed(self) -> list[DbmsInfo]:
        """All installed instances, oldest first."""
        if not self.install_root.is_dir():
            return []

        infos = []
        for entry in self.install_root.iterdir():
            if not entry.is_dir() or not entry.name.startswith(DBMS_DIR_PREFIX):
                continue
            if not is_valid_dbms_id(entry.name[len(DBMS_DIR_PREFIX):]):
                continue
            info = self._read_manifest(entry)
            if info is not None:
                infos.append(info)

        return sorted(infos, key=lambda info: (info.created_at, info.id))

    def _read_manifest(self, root: Path) -> DbmsInfo | None:
        manifest = root / DBMS_MANIFEST_FILE
        try:
            data = json.loads(manifest.read_text(encoding="utf-8"))
            return DbmsInfo.from_dict(data, root)
        except FileNotFoundError:
            pass
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Ignoring unreadable manifest {manifest}: {e}")
            return None

        # instance installed without a manifest: recover identity from its libraries
        dist = read_distribution_info(root)
        if dist is None:
            return None
        return DbmsInfo(
            id=root.name[len(DBMS_DIR_PREFIX):],
            name="",
            root=root,
            version=dist.version,
            edition=dist.edition,
            created_at=0,
        )
