"""
Instance-level types shared by the installer, supervisor and environments.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from ..errors import DbmsEnvError


class DbmsStatus(Enum):
    """Observable process state of an installed instance."""

    RUNNING = "running"
    NOT_RUNNING = "not running"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DbmsInfo:
    """An installed instance as recorded in its manifest.

    Attributes:
        id: Instance id (uuid4)
        name: Human-readable name given at install time
        root: Instance root directory
        version: Installed distribution version
        edition: Installed distribution edition
        created_at: Install time (Unix ms)
    """

    id: str
    name: str
    root: Path
    version: str
    edition: str
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to manifest dictionary (root is implied by location)."""
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "edition": self.edition,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], root: Path) -> DbmsInfo:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            root=root,
            version=data.get("version", ""),
            edition=data.get("edition", ""),
            created_at=int(data.get("createdAt", 0)),
        )

    def write(self, manifest_path: Path) -> None:
        manifest_path.write_text(json.dumps(self.to_dict(), indent=2, sort_keys=True), encoding="utf-8")


@dataclass
class DbmsOperationResult:
    """Outcome of one start/stop/status call for one instance.

    Exactly one of output (success) or error (failure) is meaningful.

    Attributes:
        dbms_id: Instance the operation targeted
        status: Observed process state (UNKNOWN on failure)
        output: Captured control executable output
        error: Error raised for this instance, if any
    """

    dbms_id: str
    status: DbmsStatus = DbmsStatus.UNKNOWN
    output: str = ""
    error: DbmsEnvError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        """Human-readable outcome: command output, or the error message."""
        if self.error is not None:
            return self.error.message
        return self.output

    def __str__(self) -> str:
        return self.message
