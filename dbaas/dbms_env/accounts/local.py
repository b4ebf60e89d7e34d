"""
Local account backed by a LocalEnvironment.

Access tokens are self-contained signed strings:

    base64url(payload) "." base64url(HMAC-SHA256(secret, base64url(payload)))

with payload {"appId", "dbmsId", "principal", "iat", "exp"} (seconds).
The secret is generated once per environment and kept in
<data_home>/.access-token.key with owner-only permissions.

Invariants:
    - Tokens are only issued for installed instances
    - Verification uses a constant-time comparison
    - The secret never leaves the data directory
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import os
import secrets
import time
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import httpx

from ..config import EnvironmentConfig, RegistryConfig
from ..constants import SECRET_KEY_FILE
from ..dbms import DbmsOperationResult
from ..environments import LocalEnvironment
from ..errors import InvalidArgumentError, StorageError
from .base import AccountAbstract, AuthToken

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_SECONDS = 3600


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


class LocalAccount(AccountAbstract):
    """Account whose instances live on this machine."""

    def __init__(
        self,
        config: EnvironmentConfig,
        registry: RegistryConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        environment: LocalEnvironment | None = None,
        token_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
    ) -> None:
        super().__init__(config)
        self.environment = environment or LocalEnvironment(config, registry, http_client=http_client)
        self.token_ttl_seconds = token_ttl_seconds
        self._secret: bytes | None = None

    @property
    def secret_path(self) -> Path:
        return Path(self.config.data_home) / SECRET_KEY_FILE

    async def start_dbmss(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        return await self.environment.start_dbmss(dbms_ids)

    async def stop_dbmss(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        return await self.environment.stop_dbmss(dbms_ids)

    async def status_dbmss(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        return await self.environment.status_dbmss(dbms_ids)

    async def create_access_token(self, app_id: str, dbms_id: str, auth_token: AuthToken) -> str:
        """Issue a signed access token for an app to use an instance.

        Raises:
            InvalidArgumentError: If app_id or the principal is empty
            NotFoundError: If the instance is not installed
        """
        if not app_id:
            raise InvalidArgumentError("App id must be specified", argument="app_id")
        if not auth_token.principal:
            raise InvalidArgumentError("Auth token principal must be specified", argument="principal")

        dbms = self.environment.get_dbms(dbms_id)

        now = int(time.time())
        payload = {
            "appId": app_id,
            "dbmsId": dbms.id,
            "principal": auth_token.principal,
            "iat": now,
            "exp": now + self.token_ttl_seconds,
        }
        encoded = _b64encode(json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8"))
        logger.debug("Issued access token", extra={"app_id": app_id, "dbms_id": dbms.id})
        return f"{encoded}.{self._sign(encoded)}"

    def verify_access_token(self, token: str, now: int | None = None) -> dict[str, Any]:
        """Check a token issued by this account and return its payload.

        Raises:
            InvalidArgumentError: If the token is malformed, tampered with or expired
        """
        token = token or ""
        encoded, sep, signature = token.partition(".")
        if not token.isascii() or not sep or not encoded or not signature:
            raise InvalidArgumentError("Malformed access token", argument="token")

        if not hmac.compare_digest(self._sign(encoded), signature):
            raise InvalidArgumentError("Invalid access token signature", argument="token")

        try:
            payload = json.loads(_b64decode(encoded))
        except (binascii.Error, ValueError) as e:
            raise InvalidArgumentError("Malformed access token", argument="token") from e

        current = int(time.time()) if now is None else now
        if payload.get("exp", 0) < current:
            raise InvalidArgumentError("Access token expired", argument="token")

        return payload

    def _sign(self, encoded: str) -> str:
        digest = hmac.new(self._get_secret(), encoded.encode("ascii"), hashlib.sha256).digest()
        return _b64encode(digest)

    def _get_secret(self) -> bytes:
        if self._secret is None:
            self._secret = self._load_or_create_secret()
        return self._secret

    def _load_or_create_secret(self) -> bytes:
        path = self.secret_path
        try:
            return path.read_bytes()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Cannot read access token key: {e}", path=str(path)) from e

        secret = secrets.token_bytes(32)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(secret)
        except FileExistsError:
            # another process created it first
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Cannot write access token key: {e}", path=str(path)) from e

        logger.info("Created access token key", extra={"path": str(path)})
        return secret

    async def close(self) -> None:
        await self.environment.close()
