"""
Distribution discovery, download and extraction.

This module provides:
- DistributionCache: discovers distributions already on disk
- DistributionFetcher: lists and downloads distributions from the remote origin
- Archive helpers shared with the installer and extensions

Invariants:
    - The cache directory is the only place downloads are written
    - Discovery never fails because of a single corrupt entry
"""

from .archive import compute_sha256, extract_archive, extract_archive_async, is_archive
from .cache import (
    DistributionCache,
    DistributionInfo,
    DistributionOrigin,
    DistributionRecord,
    get_distribution_info,
    read_distribution_info,
)
from .fetcher import DistributionFetcher

__all__ = [
    "DistributionCache",
    "DistributionInfo",
    "DistributionOrigin",
    "DistributionRecord",
    "DistributionFetcher",
    "get_distribution_info",
    "read_distribution_info",
    "compute_sha256",
    "extract_archive",
    "extract_archive_async",
    "is_archive",
]
