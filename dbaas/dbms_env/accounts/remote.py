"""
Remote account backed by an HTTP API.

Endpoints (relative to remote_url):

    POST /dbmss/start          {"dbmsIds": [...]}  -> {"results": [...]}
    POST /dbmss/stop           {"dbmsIds": [...]}  -> {"results": [...]}
    POST /dbmss/status         {"dbmsIds": [...]}  -> {"results": [...]}
    POST /access-tokens        {"appId", "dbmsId", "authToken": {...}} -> {"token": "..."}

Each result is {"dbmsId", "status", "output"} or {"dbmsId", "error":
{"code", "message"}}. Results are re-ordered to match the requested ids;
an id the server did not answer for gets a NOT_FOUND error.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from ..config import EnvironmentConfig
from ..dbms import DbmsOperationResult, DbmsStatus
from ..errors import (
    DbmsEnvError,
    DbmsExecutionError,
    InvalidArgumentError,
    NotFoundError,
    NotSupportedError,
    TransportError,
)
from .base import AccountAbstract, AuthToken

logger = logging.getLogger(__name__)

_ERRORS_BY_CODE: dict[str, type[DbmsEnvError]] = {
    "INVALID_ARGUMENT": InvalidArgumentError,
    "NOT_FOUND": NotFoundError,
    "NOT_SUPPORTED": NotSupportedError,
    "EXECUTION_ERROR": DbmsExecutionError,
}


def _error_from_payload(payload: Any) -> DbmsEnvError:
    if not isinstance(payload, dict):
        return DbmsEnvError(str(payload))
    code = payload.get("code", "")
    message = payload.get("message") or "Remote operation failed"
    error_cls = _ERRORS_BY_CODE.get(code)
    if error_cls is None:
        return DbmsEnvError(message, code=code or None, details=payload.get("details"))
    return error_cls(message)


class RemoteAccount(AccountAbstract):
    """Account whose instances are managed by a remote service."""

    def __init__(
        self,
        config: EnvironmentConfig,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        super().__init__(config)
        if not config.remote_url:
            raise ValueError("Remote accounts require remote_url")
        self.base_url = config.remote_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, body: dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self._get_client().post(url, json=body)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {url} failed: {e}", url=url) from e
        except ValueError as e:
            raise TransportError(f"Invalid response from {url}: {e}", url=url) from e

    async def _batch(self, operation: str, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        payload = await self._post(f"/dbmss/{operation}", {"dbmsIds": list(dbms_ids)})
        items = payload.get("results", []) if isinstance(payload, dict) else []
        by_id = {item.get("dbmsId"): item for item in items if isinstance(item, dict)}

        results = []
        for dbms_id in dbms_ids:
            item = by_id.get(dbms_id)
            if item is None:
                error: DbmsEnvError = NotFoundError(
                    f'DBMS "{dbms_id}" not found', resource_type="dbms", resource_id=dbms_id
                )
                results.append(DbmsOperationResult(dbms_id=dbms_id, error=error))
            elif item.get("error"):
                results.append(DbmsOperationResult(dbms_id=dbms_id, error=_error_from_payload(item["error"])))
            else:
                try:
                    status = DbmsStatus(item.get("status", DbmsStatus.UNKNOWN.value))
                except ValueError:
                    status = DbmsStatus.UNKNOWN
                results.append(DbmsOperationResult(dbms_id=dbms_id, status=status, output=item.get("output", "")))
        return results

    async def start_dbmss(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        return await self._batch("start", dbms_ids)

    async def stop_dbmss(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        return await self._batch("stop", dbms_ids)

    async def status_dbmss(self, dbms_ids: Sequence[str]) -> list[DbmsOperationResult]:
        return await self._batch("status", dbms_ids)

    async def create_access_token(self, app_id: str, dbms_id: str, auth_token: AuthToken) -> str:
        payload = await self._post(
            "/access-tokens",
            {
                "appId": app_id,
                "dbmsId": dbms_id,
                "authToken": {
                    "principal": auth_token.principal,
                    "credentials": auth_token.credentials,
                    "scheme": auth_token.scheme,
                },
            },
        )
        token = payload.get("token") if isinstance(payload, dict) else None
        if not token:
            url = f"{self.base_url}/access-tokens"
            raise TransportError(f"No token in response from {url}", url=url)
        return token
