"""
Error types for dbms-env.

This module defines all exception types raised by the package:
- DbmsEnvError: Base exception
- InvalidArgumentError: Malformed or missing input (version spec, path)
- NotSupportedError: Valid input this system does not handle
- NotFoundError: Unknown version, instance or extension
- StorageError: Filesystem failures (extract, copy, disk)
- IntegrityError: Downloaded artifact failed checksum verification
- TransportError: Network failures talking to a remote origin
- DbmsExecutionError: The instance control executable failed

Invariants:
    - All errors inherit from DbmsEnvError
    - Messages identify the offending spec, id or path
    - Callers match on the exception type, never on message text
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DbmsEnvError(Exception):
    """Base exception for all dbms-env errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DBMS_ENV_ERROR"
        self.details = details or {}


class InvalidArgumentError(DbmsEnvError):
    """Input is malformed or missing.

    Raised when:
    - Version spec is empty
    - Version spec is neither semver, URL nor an existing path
    - A path does not hold a usable distribution or extension
    """

    def __init__(self, message: str, argument: Optional[str] = None) -> None:
        super().__init__(message, code="INVALID_ARGUMENT", details={"argument": argument})
        self.argument = argument


class NotSupportedError(DbmsEnvError):
    """Input is valid but not handled.

    Raised when:
    - Version spec is a URL
    - Semver version is outside the supported range
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, code="NOT_SUPPORTED")


class NotFoundError(DbmsEnvError):
    """Resource not found.

    Raised when:
    - Version is neither cached nor available online
    - DBMS id does not exist in the install root
    - Extension does not exist
    """

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class StorageError(DbmsEnvError):
    """Filesystem operation failed (extract, copy, rename, disk full)."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message, code="IO_ERROR", details={"path": path})
        self.path = path


class IntegrityError(StorageError):
    """Downloaded artifact does not match its published checksum."""

    def __init__(self, message: str, path: Optional[str] = None, expected: str = "", actual: str = "") -> None:
        super().__init__(message, path=path)
        self.code = "INTEGRITY_ERROR"
        self.details.update({"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual


class TransportError(DbmsEnvError):
    """Network request to a remote origin failed. Never retried internally."""

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message, code="TRANSPORT_ERROR", details={"url": url})
        self.url = url


class DbmsExecutionError(DbmsEnvError):
    """The instance control executable is missing or exited with an error."""

    def __init__(
        self,
        message: str,
        dbms_id: Optional[str] = None,
        returncode: Optional[int] = None,
        output: str = "",
    ) -> None:
        super().__init__(
            message,
            code="EXECUTION_ERROR",
            details={"dbms_id": dbms_id, "returncode": returncode},
        )
        self.dbms_id = dbms_id
        self.returncode = returncode
        self.output = output
