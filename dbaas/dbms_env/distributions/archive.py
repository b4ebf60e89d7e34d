"""
Archive extraction for distributions and extensions.

Supported formats: .tar.gz / .tgz / .tar and .zip. Archives are opaque:
they are extracted as-is and the single top-level directory (if any) is
returned as the extracted root.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import tarfile
import zipfile
from pathlib import Path

from ..errors import StorageError

logger = logging.getLogger(__name__)

_TAR_SUFFIXES = (".tar.gz", ".tgz", ".tar")


def is_archive(path: Path) -> bool:
    name = Path(path).name.lower()
    return name.endswith(_TAR_SUFFIXES) or name.endswith(".zip")


def archive_stem(path: Path) -> str:
    """Archive file name without its archive extension."""
    name = Path(path).name
    for suffix in (*_TAR_SUFFIXES, ".zip"):
        if name.lower().endswith(suffix):
            return name[: -len(suffix)]
    return name


def extract_archive(archive: Path, destination: Path) -> Path:
    """Extract an archive into destination (blocking).

    Args:
        archive: Archive file
        destination: Directory to extract into (created if missing)

    Returns:
        The single top-level directory of the archive, or destination
        itself when the archive has several top-level entries.

    Raises:
        StorageError: If the archive is unreadable or extraction fails
    """
    archive = Path(archive)
    destination = Path(destination)

    try:
        destination.mkdir(parents=True, exist_ok=True)
        if archive.name.lower().endswith(".zip"):
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(destination)
        else:
            with tarfile.open(archive) as tf:
                tf.extractall(destination, filter="data")
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
        raise StorageError(f"Failed to extract {archive}: {e}", path=str(archive)) from e

    entries = list(destination.iterdir())
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return destination


async def extract_archive_async(archive: Path, destination: Path) -> Path:
    """Extract an archive without blocking the event loop."""
    return await asyncio.get_running_loop().run_in_executor(
        None, extract_archive, Path(archive), Path(destination)
    )


def compute_sha256(path: Path) -> str:
    """SHA-256 hex digest of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()
