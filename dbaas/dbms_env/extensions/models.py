"""
Extension types.

An extension is an npm-style package with a manifest describing how it is
installed and served. ExtensionManifest is validated with pydantic because
manifests come from untrusted package contents; unknown keys are kept so
that extension-specific settings survive a round trip.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExtensionType(str, Enum):
    """Capability kind of an extension; also its install subdirectory."""

    STATIC = "STATIC"
    NODE = "NODE"


class ExtensionOrigin(Enum):
    """Where an extension record was found."""

    CACHED = "cached"
    ONLINE = "online"


class ExtensionManifest(BaseModel):
    """Parsed extension manifest."""

    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1, description="Extension name (may carry the npm scope)")
    type: ExtensionType = Field(default=ExtensionType.STATIC, description="Capability kind")
    version: str = Field(..., min_length=1, description="Extension version or '*'")
    main: str = Field(default=".", description="Entry point relative to root")
    root: str = Field(default="", description="Extension root directory")
    description: str | None = Field(default=None, description="Human-readable summary")


@dataclass(frozen=True)
class ExtensionMeta:
    """A discovered extension distribution on disk.

    Attributes:
        type: Capability kind
        name: Name with the npm scope prefix stripped
        version: Extension version
        dist: Extension root directory
        manifest: Parsed manifest
        origin: Always CACHED for on-disk discoveries
    """

    type: ExtensionType
    name: str
    version: str
    dist: Path
    manifest: ExtensionManifest
    origin: ExtensionOrigin = ExtensionOrigin.CACHED


@dataclass(frozen=True)
class ExtensionVersion:
    """A known extension version, cached or downloadable."""

    name: str
    version: str
    origin: ExtensionOrigin

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "version": self.version, "origin": self.origin.value}
