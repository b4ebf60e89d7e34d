"""
Environments: one configured set of install, cache and data directories.
"""

from .local import LocalEnvironment

__all__ = ["LocalEnvironment"]
