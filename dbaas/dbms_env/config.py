"""
Configuration management for dbms-env.

Configuration is built once at process startup (from environment variables
or explicit construction) and passed into every component constructor.
Business logic never looks up paths or URLs from the environment itself.

Invariants:
    - All configuration objects are immutable after construction
    - All settings have sensible defaults for a single-user workstation
    - Registry credentials are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that keep existing installs working
    - Changing a default path orphans existing instances and caches
    - Keep the DBMS_ENV_ prefix for all environment variables
"""

from __future__ import annotations

import getpass
import logging
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .constants import (
    DBMS_DIR_NAME,
    DEFAULT_EDITION,
    DEFAULT_PRODUCT,
    EXTENSION_DIR_NAME,
    SUPPORTED_DBMS_RANGE,
)

logger = logging.getLogger(__name__)

APP_DIR_NAME = "dbms-env"


class EnvironmentType(Enum):
    """Supported environment (account) backends."""

    LOCAL = "local"
    REMOTE = "remote"


def _default_home(kind: str) -> str:
    """Platform default data or cache directory for dbms-env.

    Args:
        kind: "data" or "cache"
    """
    home = Path.home()

    if sys.platform == "win32":
        base = Path(os.getenv("LOCALAPPDATA", str(home / "AppData" / "Local")))
        return str(base / APP_DIR_NAME / ("Data" if kind == "data" else "Cache"))

    if sys.platform == "darwin":
        if kind == "data":
            return str(home / "Library" / "Application Support" / APP_DIR_NAME)
        return str(home / "Library" / "Caches" / APP_DIR_NAME)

    if kind == "data":
        base = Path(os.getenv("XDG_DATA_HOME", str(home / ".local" / "share")))
    else:
        base = Path(os.getenv("XDG_CACHE_HOME", str(home / ".cache")))
    return str(base / APP_DIR_NAME)


def _default_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "default"


@dataclass(frozen=True)
class EnvironmentConfig:
    """Environment configuration, owned by exactly one environment.

    Attributes:
        id: Environment identifier
        type: Backend type (local or remote)
        user: Identity the environment acts for (OS user for local)
        data_home: Root for installed instances and extensions
        cache_home: Root for downloaded distributions and extensions
        product: Distribution product name (control executable name)
        edition: Distribution edition to resolve (enterprise, community)
        supported_range: Semver range of installable versions
        remote_url: Base URL of the remote API (remote environments only)
    """

    id: str = "default"
    type: EnvironmentType = EnvironmentType.LOCAL
    user: str = field(default_factory=_default_user)
    data_home: str = field(default_factory=lambda: _default_home("data"))
    cache_home: str = field(default_factory=lambda: _default_home("cache"))
    product: str = DEFAULT_PRODUCT
    edition: str = DEFAULT_EDITION
    supported_range: str = SUPPORTED_DBMS_RANGE
    remote_url: str | None = None

    @property
    def install_root(self) -> Path:
        """Directory holding dbms-<uuid> instance directories."""
        return Path(self.data_home) / DBMS_DIR_NAME

    @property
    def distributions_root(self) -> Path:
        """Directory holding downloaded distribution archives and directories."""
        return Path(self.cache_home) / DBMS_DIR_NAME

    @property
    def extensions_cache_root(self) -> Path:
        return Path(self.cache_home) / EXTENSION_DIR_NAME

    @property
    def extensions_install_root(self) -> Path:
        return Path(self.data_home) / EXTENSION_DIR_NAME

    @classmethod
    def from_env(cls) -> EnvironmentConfig:
        """Load configuration from environment variables."""
        type_str = os.getenv("DBMS_ENV_TYPE", "local").lower()
        try:
            env_type = EnvironmentType(type_str)
        except ValueError:
            raise ValueError(f"Invalid DBMS_ENV_TYPE '{type_str}'. Must be one of: local, remote")

        return cls(
            id=os.getenv("DBMS_ENV_ID", "default"),
            type=env_type,
            user=os.getenv("DBMS_ENV_USER") or _default_user(),
            data_home=os.getenv("DBMS_ENV_DATA_HOME") or _default_home("data"),
            cache_home=os.getenv("DBMS_ENV_CACHE_HOME") or _default_home("cache"),
            product=os.getenv("DBMS_ENV_PRODUCT", DEFAULT_PRODUCT),
            edition=os.getenv("DBMS_ENV_EDITION", DEFAULT_EDITION),
            supported_range=os.getenv("DBMS_ENV_SUPPORTED_RANGE", SUPPORTED_DBMS_RANGE),
            remote_url=os.getenv("DBMS_ENV_REMOTE_URL"),
        )


@dataclass(frozen=True)
class RegistryConfig:
    """Remote distribution and extension registry configuration.

    Attributes:
        versions_url: JSON index of downloadable distributions
        extension_search_url: Artifact search endpoint for extensions
        extension_download_url: Base URL extension archives are served from
        extension_repo: Repository name extensions are published to
        username: Registry username (optional)
        password: Registry password (optional)
        timeout_seconds: Timeout for registry requests
    """

    versions_url: str = "https://dist.neo4j.org/versions.json"
    extension_search_url: str = "https://registry.example.com/artifactory/api/search/aql"
    extension_download_url: str = "https://registry.example.com/artifactory/api/npm/npm-local"
    extension_repo: str = "npm-local"
    username: str | None = None
    password: str | None = None
    timeout_seconds: float = 60.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    @classmethod
    def from_env(cls) -> RegistryConfig:
        """Load configuration from environment variables."""
        defaults = cls()
        return cls(
            versions_url=os.getenv("DBMS_ENV_VERSIONS_URL", defaults.versions_url),
            extension_search_url=os.getenv(
                "DBMS_ENV_EXTENSION_SEARCH_URL", defaults.extension_search_url
            ),
            extension_download_url=os.getenv(
                "DBMS_ENV_EXTENSION_DOWNLOAD_URL", defaults.extension_download_url
            ),
            extension_repo=os.getenv("DBMS_ENV_EXTENSION_REPO", defaults.extension_repo),
            username=os.getenv("DBMS_ENV_REGISTRY_USERNAME"),
            password=os.getenv("DBMS_ENV_REGISTRY_PASSWORD"),
            timeout_seconds=float(os.getenv("DBMS_ENV_REGISTRY_TIMEOUT", "60")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "WARNING"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("DBMS_ENV_LOG_LEVEL", "WARNING"),
            log_format=os.getenv("DBMS_ENV_LOG_FORMAT", "text"),
        )


@dataclass
class AppConfig:
    """Complete process configuration.

    Attributes:
        environment: Environment configuration
        registry: Remote registry configuration
        observability: Logging configuration
    """

    environment: EnvironmentConfig = field(default_factory=EnvironmentConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load complete configuration from environment variables.

        Returns:
            AppConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            environment=EnvironmentConfig.from_env(),
            registry=RegistryConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.environment.type == EnvironmentType.REMOTE and not self.environment.remote_url:
            raise ValueError("DBMS_ENV_REMOTE_URL is required when DBMS_ENV_TYPE=remote")

        if not self.environment.product:
            raise ValueError("DBMS_ENV_PRODUCT must not be empty")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid DBMS_ENV_LOG_FORMAT '{self.observability.log_format}'. "
                "Must be one of: json, text"
            )

        if bool(self.registry.username) != bool(self.registry.password):
            logger.warning("Registry username and password must be set together; ignoring both")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Configuration loaded",
            extra={
                "environment_id": self.environment.id,
                "environment_type": self.environment.type.value,
                "data_home": self.environment.data_home,
                "cache_home": self.environment.cache_home,
                "product": self.environment.product,
                "edition": self.environment.edition,
                "versions_url": self.registry.versions_url,
                "registry_auth": self.registry.has_credentials,
                "log_level": self.observability.log_level,
            },
        )
