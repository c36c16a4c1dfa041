"""
Custom exceptions and error classification for fleet storage.

Every storage implementation raises these exceptions so the coordinator
can handle failures uniformly, whichever backend produced them.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Classified failure kinds shared by all storage layers.

    Provider-specific errors are translated into one of these kinds inside
    the adapter that talks to the provider; nothing else inspects raw
    provider errors.
    """

    STORAGE_ACCESS_DENIED = "storage_access_denied"
    REMOTE_SCHEMA_MISSING = "remote_schema_missing"
    REMOTE_ACCESS_DENIED = "remote_access_denied"
    REMOTE_TRANSIENT = "remote_transient"
    REMOTE_REJECTED = "remote_rejected"
    DELETION_NOT_FOUND = "deletion_not_found"
    UNKNOWN = "unknown"


# Operator-facing hints logged alongside a classified failure
REMEDIATION_HINTS: dict[ErrorKind, str] = {
    ErrorKind.STORAGE_ACCESS_DENIED: (
        "Local storage is not writable in this execution context; "
        "check FLEET_LOCAL_PATH permissions"
    ),
    ErrorKind.REMOTE_SCHEMA_MISSING: (
        "Remote container is missing; run scripts/provision_cosmos.py "
        "against the configured database"
    ),
    ErrorKind.REMOTE_ACCESS_DENIED: (
        "Remote store rejected the credentials; ensure the identity has the "
        "'Cosmos DB Built-in Data Contributor' role or the key is valid"
    ),
    ErrorKind.REMOTE_TRANSIENT: "Remote store unreachable; serving local snapshot",
    ErrorKind.REMOTE_REJECTED: "Remote store rejected the request payload",
    ErrorKind.DELETION_NOT_FOUND: (
        "No remote row matched; it may have been removed already or the "
        "access policy hides it from this identity"
    ),
    ErrorKind.UNKNOWN: "Unexpected remote failure",
}


class FleetStorageError(Exception):
    """Base exception for all fleet storage errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class LocalCacheError(FleetStorageError):
    """Raised when the local cache cannot be read or written."""

    def __init__(self, operation: str, key: str | None = None, cause: Exception | None = None):
        details: dict = {"operation": operation}
        if key:
            details["key"] = key
        if cause:
            details["cause"] = str(cause)
        message = f"Local cache error during {operation}"
        if key:
            message += f": {key}"
        super().__init__(message, details)
        self.operation = operation
        self.key = key
        self.cause = cause
        self.kind = ErrorKind.STORAGE_ACCESS_DENIED


class RemoteStoreError(FleetStorageError):
    """Raised by a remote store adapter with an already classified kind."""

    def __init__(
        self,
        kind: ErrorKind,
        operation: str,
        table: str | None = None,
        cause: Exception | None = None,
    ):
        details: dict = {"kind": kind.value, "operation": operation}
        if table:
            details["table"] = table
        if cause:
            details["cause"] = str(cause)
        message = f"Remote {operation} failed ({kind.value})"
        if table:
            message += f" on {table}"
        super().__init__(message, details)
        self.kind = kind
        self.operation = operation
        self.table = table
        self.cause = cause

    @property
    def remediation(self) -> str:
        return REMEDIATION_HINTS[self.kind]


class ConfigurationError(FleetStorageError):
    """Raised when fleet configuration is invalid."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid configuration for {field}: {reason}", {"field": field})
        self.field = field
        self.reason = reason


class VehicleNotFoundError(FleetStorageError):
    """Raised when a transition targets a vehicle that is not in the fleet."""

    def __init__(self, vehicle_id: str):
        super().__init__(f"Vehicle not found: {vehicle_id}", {"vehicle_id": vehicle_id})
        self.vehicle_id = vehicle_id
