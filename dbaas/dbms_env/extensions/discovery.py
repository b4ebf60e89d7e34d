"""
Extension manifest discovery.

Three strategies are tried in order over the same directory; the first
one that applies wins:

    1. manifest.json                          dedicated manifest
    2. package.json["relateExtension"]        manifest embedded in the package
    3. package.json name/version/main         plain package, type STATIC

A strategy returns None when its source is absent. A source that is
present but malformed is an error, not a fall-through.

Invariants:
    - Extension names never carry the npm scope prefix
    - Discovery of a cache directory skips corrupt entries silently
    - Every discovered record has a valid semver version, or is "*"
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ..constants import (
    EXTENSION_MANIFEST,
    EXTENSION_MANIFEST_KEY,
    EXTENSION_NPM_PREFIX,
    PACKAGE_JSON,
)
from ..errors import DbmsEnvError, InvalidArgumentError, NotFoundError
from ..versions import is_resolvable_version
from .models import ExtensionManifest, ExtensionMeta, ExtensionType

logger = logging.getLogger(__name__)


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def _meta(root: Path, manifest: ExtensionManifest) -> ExtensionMeta:
    return ExtensionMeta(
        type=manifest.type,
        name=manifest.name.replace(EXTENSION_NPM_PREFIX, ""),
        version=manifest.version,
        dist=root,
        manifest=manifest,
    )


def from_manifest_file(root: Path) -> ExtensionMeta | None:
    path = root / EXTENSION_MANIFEST
    if not path.is_file():
        return None
    data = _read_json(path)
    return _meta(root, ExtensionManifest(**{"root": str(root), **data}))


def from_package_manifest(root: Path) -> ExtensionMeta | None:
    path = root / PACKAGE_JSON
    if not path.is_file():
        return None
    package = _read_json(path)
    if not isinstance(package, dict) or EXTENSION_MANIFEST_KEY not in package:
        return None
    return _meta(root, ExtensionManifest(**{"root": str(root), **package[EXTENSION_MANIFEST_KEY]}))


def from_package_json(root: Path) -> ExtensionMeta | None:
    path = root / PACKAGE_JSON
    if not path.is_file():
        return None
    package = _read_json(path)
    if not isinstance(package, dict):
        return None

    name = package.get("name", "")
    # "@scope/name" -> "name"
    if "/" in name:
        name = name.split("/")[1]

    manifest = ExtensionManifest(
        name=name,
        type=ExtensionType.STATIC,
        version=package.get("version", ""),
        main=package.get("main", "."),
        root=str(root),
        description=package.get("description"),
    )
    return _meta(root, manifest)


MANIFEST_STRATEGIES: list[Callable[[Path], ExtensionMeta | None]] = [
    from_manifest_file,
    from_package_manifest,
    from_package_json,
]


def read_extension(root: Path) -> ExtensionMeta:
    """Discover the extension in root (blocking).

    Raises:
        NotFoundError: If root does not exist
        InvalidArgumentError: If no strategy yields a valid manifest
    """
    root = Path(root)
    if not root.exists():
        raise NotFoundError(f"Extension {root.name} not found", resource_type="extension", resource_id=root.name)

    for strategy in MANIFEST_STRATEGIES:
        try:
            meta = strategy(root)
        except (OSError, ValueError, TypeError) as e:
            raise InvalidArgumentError(f"{root.name} contains no valid manifest", argument=str(root)) from e
        if meta is not None:
            return meta

    raise InvalidArgumentError(f"{root.name} contains no valid manifest", argument=str(root))


async def discover_extension(root: Path) -> ExtensionMeta:
    """Discover the extension in root without blocking the event loop."""
    return await asyncio.get_running_loop().run_in_executor(None, read_extension, Path(root))


async def discover_extension_distributions(root: Path) -> list[ExtensionMeta]:
    """Discover every extension directly under root.

    Entries that are not directories, or that fail discovery, are skipped.

    Returns:
        Records with valid semver (or wildcard) versions, in directory order
    """
    root = Path(root)
    if not root.is_dir():
        return []

    dirs = sorted(entry for entry in root.iterdir() if entry.is_dir() and not entry.name.startswith("."))
    results = await asyncio.gather(*(_probe(path) for path in dirs))

    return [meta for meta in results if meta is not None and is_resolvable_version(meta.version)]


async def _probe(path: Path) -> ExtensionMeta | None:
    try:
        return await discover_extension(path)
    except DbmsEnvError as e:
        logger.debug(f"Skipping extension {path}: {e.message}")
        return None
