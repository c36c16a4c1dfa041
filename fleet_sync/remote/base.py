"""
Abstract remote store interface.

Defines the contract the sync coordinator relies on. Every method may fail;
implementations must raise RemoteStoreError with a classified ErrorKind and
must not let provider exceptions escape.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

VEHICLES_TABLE = "vehicles"
HISTORY_TABLE = "history_logs"

# Row layout shared by every backend
KEY_FIELD = "id"
DATA_FIELD = "data"
VEHICLE_ID_FIELD = "vehicle_id"


class RemoteStore(ABC):
    """Tabular store holding one row per entity.

    Rows are dictionaries with a primary key column (`id`) and the
    serialized entity under `data`.
    """

    @abstractmethod
    async def select_all(self, table: str) -> list[dict[str, Any]]:
        """Return every row of `table`."""
        ...

    @abstractmethod
    async def upsert(self, table: str, record: dict[str, Any], key_field: str = KEY_FIELD) -> None:
        """Insert `record` or replace the row with the same `key_field` value."""
        ...

    @abstractmethod
    async def insert(self, table: str, record: dict[str, Any]) -> None:
        """Insert a new row; an existing key is an error."""
        ...

    @abstractmethod
    async def delete_by_key(self, table: str, key_field: str, key_value: str) -> int:
        """Delete the row addressed by its primary key.

        Returns:
            Number of rows affected (0 or 1)
        """
        ...

    @abstractmethod
    async def select_where_embedded_field_equals(
        self, table: str, field: str, value: str
    ) -> list[dict[str, Any]]:
        """Return rows whose serialized `data` has `field == value`.

        Best-effort: some backends cannot query inside the embedded
        document reliably and may return nothing or raise.
        """
        ...

    @abstractmethod
    async def select_recent(
        self, table: str, limit: int, order_by_key_descending: bool = True
    ) -> list[dict[str, Any]]:
        """Return at most `limit` rows, most recently written first."""
        ...

    async def close(self) -> None:
        """Close the connection and cleanup resources."""
