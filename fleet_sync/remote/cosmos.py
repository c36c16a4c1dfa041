"""
Cosmos DB remote store.

Each logical table is a Cosmos container partitioned on `/id`, holding one
document per entity:

    vehicles:      {"id": "<vehicle id>", "data": {...}}
    history_logs:  {"id": "<log id>", "vehicle_id": "<vehicle id>", "data": {...}}

Older history documents may carry a generated `id` that differs from
`data.id`; they stay readable, and deletion resolves their physical key.

Supports multiple authentication methods:
- Key-based authentication
- Azure AD via DefaultAzureCredential (recommended)
- Azure Managed Identity
- Service Principal

This is the only module that inspects Cosmos/Azure errors. Everything
leaving it is a RemoteStoreError carrying an ErrorKind.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from azure.core.exceptions import (
    ClientAuthenticationError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import CosmosHttpResponseError

from ..config import CosmosAuthMethod, FleetConfig
from ..exceptions import ConfigurationError, ErrorKind, RemoteStoreError
from .base import HISTORY_TABLE, KEY_FIELD, VEHICLES_TABLE, RemoteStore

logger = logging.getLogger(__name__)

# Cosmos sub-status for "owner resource does not exist" (database/container missing)
SUBSTATUS_OWNER_RESOURCE_MISSING = 1003

TRANSIENT_STATUS_CODES = {408, 429, 449, 500, 502, 503, 504}
REJECTED_STATUS_CODES = {400, 409, 412, 413}

SYSTEM_FIELDS = ("_rid", "_self", "_etag", "_attachments", "_lsn")

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def classify_cosmos_error(error: BaseException, item_level: bool = False) -> ErrorKind:
    """Translate a Cosmos/Azure failure into an ErrorKind.

    Args:
        error: The raised exception
        item_level: The request addressed a single item, so a plain 404 means
            the item is missing rather than the container

    Returns:
        The classified kind
    """
    if isinstance(error, CosmosHttpResponseError):
        status = error.status_code
        if status in (401, 403):
            return ErrorKind.REMOTE_ACCESS_DENIED
        if status == 404:
            sub_status = getattr(error, "sub_status", None)
            if item_level and sub_status != SUBSTATUS_OWNER_RESOURCE_MISSING:
                return ErrorKind.DELETION_NOT_FOUND
            return ErrorKind.REMOTE_SCHEMA_MISSING
        if status in TRANSIENT_STATUS_CODES:
            return ErrorKind.REMOTE_TRANSIENT
        if status in REJECTED_STATUS_CODES:
            return ErrorKind.REMOTE_REJECTED
        return ErrorKind.UNKNOWN
    if isinstance(error, ClientAuthenticationError):
        return ErrorKind.REMOTE_ACCESS_DENIED
    if isinstance(error, (ServiceRequestError, ServiceResponseError, asyncio.TimeoutError, OSError)):
        return ErrorKind.REMOTE_TRANSIENT
    return ErrorKind.UNKNOWN


def _get_credential(config: FleetConfig) -> Any:
    """Get the appropriate credential based on auth method.

    Raises:
        ConfigurationError: If the credential cannot be created
    """
    auth_method = config.cosmos_auth_method

    if auth_method == CosmosAuthMethod.KEY:
        if not config.cosmos_key:
            raise ConfigurationError("cosmos_key", "required for KEY authentication")
        return config.cosmos_key

    if auth_method == CosmosAuthMethod.DEFAULT_CREDENTIAL:
        from azure.identity.aio import DefaultAzureCredential

        return DefaultAzureCredential()

    if auth_method == CosmosAuthMethod.MANAGED_IDENTITY:
        from azure.identity.aio import ManagedIdentityCredential

        # If client_id is provided, use user-assigned managed identity
        if config.azure_client_id:
            return ManagedIdentityCredential(client_id=config.azure_client_id)
        return ManagedIdentityCredential()

    if auth_method == CosmosAuthMethod.SERVICE_PRINCIPAL:
        if not all([config.azure_tenant_id, config.azure_client_id, config.azure_client_secret]):
            raise ConfigurationError(
                "azure_client_secret",
                "azure_tenant_id, azure_client_id, and azure_client_secret "
                "required for SERVICE_PRINCIPAL authentication",
            )
        from azure.identity.aio import ClientSecretCredential

        return ClientSecretCredential(
            tenant_id=config.azure_tenant_id,  # type: ignore[arg-type]
            client_id=config.azure_client_id,  # type: ignore[arg-type]
            client_secret=config.azure_client_secret,  # type: ignore[arg-type]
        )

    raise ConfigurationError("cosmos_auth_method", f"unsupported auth method: {auth_method}")


def _strip_system_fields(doc: dict[str, Any]) -> dict[str, Any]:
    """Drop Cosmos bookkeeping fields, keeping `_ts` for recency ordering."""
    return {k: v for k, v in doc.items() if k not in SYSTEM_FIELDS}


class CosmosRemoteStore(RemoteStore):
    """Remote store backed by Azure Cosmos DB containers.

    Construction performs no network I/O; it fails only when the client or
    credential cannot be built. Containers are never created implicitly,
    call `provision()` once per database.
    """

    def __init__(self, config: FleetConfig) -> None:
        if not config.cosmos_endpoint:
            raise ConfigurationError("cosmos_endpoint", "Cosmos endpoint is required")

        self.config = config
        self._credential: Any = _get_credential(config)
        self._client: CosmosClient | None = CosmosClient(
            config.cosmos_endpoint,
            credential=self._credential,
        )
        self._database: DatabaseProxy = self._client.get_database_client(config.cosmos_database)
        self._container_names = {
            VEHICLES_TABLE: config.vehicles_container,
            HISTORY_TABLE: config.history_container,
        }
        self._containers: dict[str, ContainerProxy] = {}

        logger.info(
            f"Cosmos remote store ready: {config.cosmos_endpoint} "
            f"(database={config.cosmos_database}, auth={config.cosmos_auth_method.value})"
        )

    def _container(self, table: str) -> ContainerProxy:
        if table not in self._container_names:
            raise ValueError(f"Unknown table: {table}")
        if table not in self._containers:
            self._containers[table] = self._database.get_container_client(
                self._container_names[table]
            )
        return self._containers[table]

    def _error(
        self, operation: str, table: str, error: Exception, item_level: bool = False
    ) -> RemoteStoreError:
        kind = classify_cosmos_error(error, item_level=item_level)
        status = getattr(error, "status_code", None)
        logger.debug(
            f"Cosmos {operation} on {table} failed: {error}",
            extra={"operation": operation, "table": table, "status_code": status},
        )
        return RemoteStoreError(kind, operation, table, error)

    async def provision(self) -> None:
        """Create the database and both containers if they don't exist."""
        assert self._client is not None
        try:
            database = await self._client.create_database_if_not_exists(
                id=self.config.cosmos_database
            )
            for table, name in self._container_names.items():
                await database.create_container_if_not_exists(
                    id=name,
                    partition_key=PartitionKey(path=f"/{KEY_FIELD}"),
                )
                logger.info(f"Container ready: {name}", extra={"table": table})
            self._database = database
            self._containers.clear()
        except Exception as e:
            raise self._error("provision", self.config.cosmos_database, e) from e

    async def select_all(self, table: str) -> list[dict[str, Any]]:
        container = self._container(table)
        try:
            return [_strip_system_fields(doc) async for doc in container.read_all_items()]
        except Exception as e:
            raise self._error("select_all", table, e) from e

    async def upsert(self, table: str, record: dict[str, Any], key_field: str = KEY_FIELD) -> None:
        container = self._container(table)
        doc = dict(record)
        # Cosmos always addresses items by `id`
        doc[KEY_FIELD] = str(record[key_field])
        try:
            await container.upsert_item(doc)
        except Exception as e:
            raise self._error("upsert", table, e) from e

    async def insert(self, table: str, record: dict[str, Any]) -> None:
        container = self._container(table)
        try:
            await container.create_item(dict(record))
        except Exception as e:
            raise self._error("insert", table, e) from e

    async def delete_by_key(self, table: str, key_field: str, key_value: str) -> int:
        if key_field != KEY_FIELD:
            raise ValueError(f"Cosmos items can only be deleted by {KEY_FIELD!r}, got {key_field!r}")
        container = self._container(table)
        try:
            await container.delete_item(item=key_value, partition_key=key_value)
        except Exception as e:
            error = self._error("delete", table, e, item_level=True)
            if error.kind == ErrorKind.DELETION_NOT_FOUND:
                return 0
            raise error from e
        return 1

    async def select_where_embedded_field_equals(
        self, table: str, field: str, value: str
    ) -> list[dict[str, Any]]:
        if not _FIELD_NAME.match(field):
            raise ValueError(f"Invalid field name: {field!r}")
        container = self._container(table)
        query = f"SELECT * FROM c WHERE c.data.{field} = @value"
        try:
            return [
                _strip_system_fields(doc)
                async for doc in container.query_items(
                    query=query,
                    parameters=[{"name": "@value", "value": value}],
                )
            ]
        except Exception as e:
            raise self._error("select_embedded", table, e) from e

    async def select_recent(
        self, table: str, limit: int, order_by_key_descending: bool = True
    ) -> list[dict[str, Any]]:
        container = self._container(table)
        direction = "DESC" if order_by_key_descending else "ASC"
        query = f"SELECT TOP @limit * FROM c ORDER BY c._ts {direction}"
        try:
            return [
                _strip_system_fields(doc)
                async for doc in container.query_items(
                    query=query,
                    parameters=[{"name": "@limit", "value": limit}],
                    max_item_count=limit,
                )
            ]
        except Exception as e:
            raise self._error("select_recent", table, e) from e

    async def close(self) -> None:
        """Close the Cosmos client and credential."""
        if self._client:
            await self._client.close()
            self._client = None
            self._containers.clear()

        # Close credential if it has a close method (AAD credentials do)
        if self._credential and hasattr(self._credential, "close"):
            await self._credential.close()
            self._credential = None
