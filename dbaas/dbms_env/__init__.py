"""
dbms-env - local DBMS install and lifecycle management.

This package installs database server distributions into isolated,
content-addressed instance directories and supervises their processes:
- Version resolution (semver range, URL or filesystem path)
- Distribution discovery, download and caching
- Instance installation (dbms-<uuid> directories)
- Start/stop/status of installed instances
- Extension discovery, search, install and link
- Local and remote account backends behind one interface

Architecture:
    ┌──────────────┐     ┌──────────────────┐     ┌──────────────────┐
    │   Account    │────▶│ LocalEnvironment │────▶│ VersionResolver  │
    │ (local/remote)│    └────────┬─────────┘     └────────┬─────────┘
    └──────────────┘              │                        │
                                  │              ┌─────────┴─────────┐
                                  │              ▼                   ▼
                                  │     ┌──────────────────┐ ┌──────────────────┐
                                  │     │DistributionCache │ │DistributionFetcher│
                                  │     └──────────────────┘ └──────────────────┘
                                  ▼
                    ┌──────────────────────────┐
                    │ DbmsInstaller            │──▶ <data>/dbmss/dbms-<uuid>
                    │ ProcessSupervisor        │──▶ bin/<product> start|stop|status
                    └──────────────────────────┘

Invariants:
    - Instance ids are fresh uuid4 values, never reused
    - Instance state lives on the filesystem; nothing is kept in memory
    - A failed install leaves no instance directory behind
    - Batch operations report one result per id, in input order

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
