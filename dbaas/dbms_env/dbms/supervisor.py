"""
Process supervision for installed instances.

Every instance ships its own control executable:

    <root>/bin/<product>           start | stop | status
    <root>/bin/<product>-admin     administrative commands (initial password)

(<product>.bat / <product>-admin.bat on Windows). The supervisor runs it as
a subprocess and returns its combined output. `status` exits 0 when the
server is running and non-zero otherwise.

Batch calls fan out over the given ids with a concurrency limit and join
every result before returning. Each id is handled in isolation: an unknown
id or a failing executable becomes that id's error, never the batch's.

Invariants:
    - Results are returned in the order of the input ids, one per id
    - start on a running instance and stop on a stopped one are no-ops
    - Callers key off DbmsStatus; output text is platform dependent

How to change safely:
    - Keep status parsing based on exit codes, not message text
    - New commands must go through _run_command to get the env and timeout
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..constants import DBMS_DIR_PREFIX, DEFAULT_PRODUCT, IS_WINDOWS
from ..errors import DbmsEnvError, DbmsExecutionError, NotFoundError, StorageError
from .models import DbmsOperationResult, DbmsStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandOutput:
    """Exit code and combined stdout/stderr of a control command."""

    returncode: int
    output: str


def is_valid_dbms_id(dbms_id: str) -> bool:
    """Whether dbms_id is a canonical uuid (the only ids installs produce)."""
    try:
        return str(uuid.UUID(dbms_id)) == dbms_id
    except (TypeError, ValueError, AttributeError):
        return False


class ProcessSupervisor:
    """Starts, stops and queries installed instances.

    Attributes:
        install_root: Directory holding dbms-<uuid> instances
        product: Product name (control executable name)
        command_timeout: Seconds before a control command is killed
        max_concurrent: Maximum control commands running at once

    Example:
        >>> supervisor = ProcessSupervisor(Path("~/.local/share/dbms-env/dbmss"))
        >>> [r.status for r in await supervisor.status([dbms_id])]
        [<DbmsStatus.NOT_RUNNING: 'not running'>]
    """

    def __init__(
        self,
        install_root: Path,
        product: str = DEFAULT_PRODUCT,
        command_timeout: float = 120.0,
        max_concurrent: int = 4,
    ) -> None:
        self.install_root = Path(install_root)
        self.product = product
        self.command_timeout = command_timeout
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)

    def dbms_root(self, dbms_id: str) -> Path:
        """Instance root directory for an id (may not exist)."""
        return self.install_root / f"{DBMS_DIR_PREFIX}{dbms_id}"

    def resolve_root(self, dbms_id: str) -> Path:
        """Instance root directory for an existing instance.

        Raises:
            NotFoundError: If dbms_id is not a uuid or no such instance is installed
        """
        root = self.dbms_root(dbms_id)
        if not is_valid_dbms_id(dbms_id) or not root.is_dir():
            raise NotFoundError(f'DBMS "{dbms_id}" not found', resource_type="dbms", resource_id=dbms_id)
        return root

    async def start(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        """Start instances. Already running instances are left alone."""
        return await self._batch(dbms_ids, self._start_one)

    async def stop(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        """Stop instances. Already stopped instances are left alone."""
        return await self._batch(dbms_ids, self._stop_one)

    async def status(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        """Query the process status of instances."""
        return await self._batch(dbms_ids, self._status_one)

    async def _batch(
        self,
        dbms_ids: Sequence[str],
        operation: Callable[[str], Awaitable[DbmsOperationResult]],
    ) -> list[DbmsOperationResult]:
        tasks = [self._capture(dbms_id, operation) for dbms_id in dbms_ids]
        return list(await asyncio.gather(*tasks))

    async def _capture(
        self,
        dbms_id: str,
        operation: Callable[[str], Awaitable[DbmsOperationResult]],
    ) -> DbmsOperationResult:
        async with self._semaphore:
            try:
                return await operation(dbms_id)
            except DbmsEnvError as e:
                logger.warning(f"DBMS operation failed for {dbms_id}: {e.message}")
                return DbmsOperationResult(dbms_id=dbms_id, error=e)
            except OSError as e:
                logger.warning(f"DBMS operation failed for {dbms_id}: {e}")
                return DbmsOperationResult(
                    dbms_id=dbms_id,
                    error=StorageError(str(e), path=str(self.dbms_root(dbms_id))),
                )

    async def _status_one(self, dbms_id: str) -> DbmsOperationResult:
        root = self.resolve_root(dbms_id)
        result = await self._run_command(root, self.control_executable(root), "status")
        status = DbmsStatus.RUNNING if result.returncode == 0 else DbmsStatus.NOT_RUNNING
        return DbmsOperationResult(dbms_id=dbms_id, status=status, output=result.output)

    async def _start_one(self, dbms_id: str) -> DbmsOperationResult:
        current = await self._status_one(dbms_id)
        if current.status == DbmsStatus.RUNNING:
            logger.debug(f"DBMS {dbms_id} already running")
            return current

        root = self.resolve_root(dbms_id)
        result = await self._run_command(root, self.control_executable(root), "start")
        if result.returncode != 0:
            raise DbmsExecutionError(
                f'Failed to start DBMS "{dbms_id}": {result.output.strip()}',
                dbms_id=dbms_id,
                returncode=result.returncode,
                output=result.output,
            )

        logger.info(f"Started DBMS {dbms_id}")
        return DbmsOperationResult(dbms_id=dbms_id, status=DbmsStatus.RUNNING, output=result.output)

    async def _stop_one(self, dbms_id: str) -> DbmsOperationResult:
        current = await self._status_one(dbms_id)
        if current.status == DbmsStatus.NOT_RUNNING:
            logger.debug(f"DBMS {dbms_id} already stopped")
            return current

        root = self.resolve_root(dbms_id)
        result = await self._run_command(root, self.control_executable(root), "stop")
        if result.returncode != 0:
            raise DbmsExecutionError(
                f'Failed to stop DBMS "{dbms_id}": {result.output.strip()}',
                dbms_id=dbms_id,
                returncode=result.returncode,
                output=result.output,
            )

        logger.info(f"Stopped DBMS {dbms_id}")
        return DbmsOperationResult(dbms_id=dbms_id, status=DbmsStatus.NOT_RUNNING, output=result.output)

    def control_executable(self, root: Path) -> Path:
        return self._executable(root, self.product)

    def admin_executable(self, root: Path) -> Path:
        return self._executable(root, f"{self.product}-admin")

    def _executable(self, root: Path, name: str) -> Path:
        suffix = ".bat" if IS_WINDOWS else ""
        return Path(root) / "bin" / f"{name}{suffix}"

    async def run_admin(self, root: Path, *args: str) -> CommandOutput:
        """Run the admin executable of an instance or staged distribution.

        Raises:
            DbmsExecutionError: If the executable is missing or exits non-zero
        """
        result = await self._run_command(Path(root), self.admin_executable(root), *args)
        if result.returncode != 0:
            raise DbmsExecutionError(
                f"{self.product}-admin {args[0] if args else ''} failed: {result.output.strip()}",
                returncode=result.returncode,
                output=result.output,
            )
        return result

    async def _run_command(self, root: Path, executable: Path, *args: str) -> CommandOutput:
        if not executable.is_file():
            raise DbmsExecutionError(f"Control executable not found: {executable}")

        argv = ["cmd.exe", "/c", str(executable), *args] if IS_WINDOWS else [str(executable), *args]
        env = dict(os.environ)
        env[f"{self.product.upper()}_HOME"] = str(root)
        env[f"{self.product.upper()}_CONF"] = str(root / "conf")

        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(root),
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.command_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise DbmsExecutionError(
                f"{executable.name} {' '.join(args)} timed out after {self.command_timeout}s"
            )

        output = stdout.decode("utf-8", errors="replace")
        logger.debug(
            f"{executable.name} {' '.join(args)} exited with {proc.returncode}",
            extra={"root": str(root)},
        )
        return CommandOutput(returncode=proc.returncode or 0, output=output)
