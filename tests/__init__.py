"""
dbms-env Test Suite.

This package contains:
- unit/: Unit tests (temporary directories, mocked HTTP via httpx.MockTransport)
- integration/: Integration tests (full install and lifecycle against fake distributions)

Fake distributions ship POSIX shell control scripts, so process tests are
skipped on Windows.
"""
