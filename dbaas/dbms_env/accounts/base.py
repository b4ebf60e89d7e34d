"""
Account abstraction.

An account is the capability surface the hosting API layer talks to:

    start_dbmss(ids)        -> list[DbmsOperationResult]
    stop_dbmss(ids)         -> list[DbmsOperationResult]
    status_dbmss(ids)       -> list[DbmsOperationResult]
    create_access_token(app_id, dbms_id, auth_token) -> str

Each backend is a separate implementation chosen from configuration when
the account is created, never by inspecting objects at runtime.

How to change safely:
    - Adding an operation means implementing it in every backend
    - Keep batch results parallel to the input ids
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

from ..config import EnvironmentConfig, EnvironmentType, RegistryConfig
from ..dbms import DbmsOperationResult

if TYPE_CHECKING:
    from ..environments import LocalEnvironment


@dataclass(frozen=True)
class AuthToken:
    """Credentials presented for a DBMS when requesting an access token.

    Attributes:
        principal: User name
        credentials: Password or other secret
        scheme: Auth scheme (basic)
    """

    principal: str
    credentials: str = field(repr=False)
    scheme: str = "basic"


class AccountAbstract(ABC):
    """Operations every account backend implements."""

    def __init__(self, config: EnvironmentConfig) -> None:
        self.config = config

    @abstractmethod
    async def start_dbmss(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        pass

    @abstractmethod
    async def stop_dbmss(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        pass

    @abstractmethod
    async def status_dbmss(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        pass

    @abstractmethod
    async def create_access_token(self, app_id: str, dbms_id: str, auth_token: AuthToken) -> str:
        pass

    async def close(self) -> None:
        """Release resources held by the backend."""


def create_account(
    config: EnvironmentConfig,
    registry: RegistryConfig | None = None,
    http_client: httpx.AsyncClient | None = None,
    environment: LocalEnvironment | None = None,
) -> AccountAbstract:
    """Factory function to create an account from configuration.

    Args:
        config: Environment configuration; config.type selects the backend
        registry: Registry configuration (local accounts)
        http_client: Shared HTTP client
        environment: Existing local environment to reuse (local accounts)

    Returns:
        Appropriate AccountAbstract implementation

    Raises:
        ValueError: If the environment type is not supported
    """
    from .local import LocalAccount
    from .remote import RemoteAccount

    if config.type == EnvironmentType.LOCAL:
        return LocalAccount(config, registry=registry, http_client=http_client, environment=environment)
    elif config.type == EnvironmentType.REMOTE:
        return RemoteAccount(config, client=http_client)
    else:
        raise ValueError(f"Unsupported environment type: {config.type}")
