"""
Extensions: add-on packages installed alongside instances.

Discovery reads manifests from disk, the registry client searches and
downloads published versions, and the manager ties both to the
environment's cache and install directories.
"""

from .discovery import (
    MANIFEST_STRATEGIES,
    discover_extension,
    discover_extension_distributions,
    read_extension,
)
from .manager import ExtensionManager
from .models import (
    ExtensionManifest,
    ExtensionMeta,
    ExtensionOrigin,
    ExtensionType,
    ExtensionVersion,
)
from .registry import ExtensionRegistryClient, build_search_query, map_search_results

__all__ = [
    "MANIFEST_STRATEGIES",
    "ExtensionManager",
    "ExtensionManifest",
    "ExtensionMeta",
    "ExtensionOrigin",
    "ExtensionRegistryClient",
    "ExtensionType",
    "ExtensionVersion",
    "build_search_query",
    "discover_extension",
    "discover_extension_distributions",
    "map_search_results",
    "read_extension",
]
