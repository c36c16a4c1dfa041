"""
Shared test configuration and fixtures.

Provides an in-memory remote store that behaves like the Cosmos adapter
(rows keyed by `id`, insertion order as recency) with switches to inject
classified failures and an unreliable embedded-field query.
"""

from __future__ import annotations

import copy
import tempfile
from collections.abc import AsyncIterator, Iterator
from pathlib import Path
from typing import Any

import pytest

from fleet_sync.config import CosmosAuthMethod, FleetConfig
from fleet_sync.context import SyncContext
from fleet_sync.exceptions import ErrorKind, RemoteStoreError
from fleet_sync.models import ActionType, HistoryLogEntry, Location, VehicleRecord
from fleet_sync.remote.base import HISTORY_TABLE, VEHICLES_TABLE, RemoteStore
from fleet_sync.seed import SeedRegistry
from fleet_sync.service import FleetDataService
from fleet_sync.sync import SyncCoordinator


class InMemoryRemoteStore(RemoteStore):
    """Fake remote store for tests.

    Attributes:
        tables: table name -> {row key -> row}, insertion order is recency
        failures: operation name -> ErrorKind raised by that operation
        embedded_query_broken: embedded-field queries silently return nothing
        calls: (operation, table) pairs in call order
    """

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict[str, Any]]] = {
            VEHICLES_TABLE: {},
            HISTORY_TABLE: {},
        }
        self.failures: dict[str, ErrorKind] = {}
        self.embedded_query_broken = False
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    def _check(self, operation: str, table: str) -> dict[str, dict[str, Any]]:
        self.calls.append((operation, table))
        kind = self.failures.get(operation)
        if kind is not None:
            raise RemoteStoreError(kind, operation, table)
        if table not in self.tables:
            raise RemoteStoreError(ErrorKind.REMOTE_SCHEMA_MISSING, operation, table)
        return self.tables[table]

    def operations(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    async def select_all(self, table: str) -> list[dict[str, Any]]:
        rows = self._check("select_all", table)
        return [copy.deepcopy(row) for row in rows.values()]

    async def upsert(self, table: str, record: dict[str, Any], key_field: str = "id") -> None:
        rows = self._check("upsert", table)
        key = str(record[key_field])
        rows.pop(key, None)
        rows[key] = copy.deepcopy(record)

    async def insert(self, table: str, record: dict[str, Any]) -> None:
        rows = self._check("insert", table)
        key = str(record["id"])
        if key in rows:
            raise RemoteStoreError(ErrorKind.REMOTE_REJECTED, "insert", table)
        rows[key] = copy.deepcopy(record)

    async def delete_by_key(self, table: str, key_field: str, key_value: str) -> int:
        rows = self._check("delete", table)
        return 1 if rows.pop(key_value, None) is not None else 0

    async def select_where_embedded_field_equals(
        self, table: str, field: str, value: str
    ) -> list[dict[str, Any]]:
        rows = self._check("select_embedded", table)
        if self.embedded_query_broken:
            return []
        return [
            copy.deepcopy(row) for row in rows.values() if row.get("data", {}).get(field) == value
        ]

    async def select_recent(
        self, table: str, limit: int, order_by_key_descending: bool = True
    ) -> list[dict[str, Any]]:
        rows = list(self._check("select_recent", table).values())
        if order_by_key_descending:
            rows.reverse()
        return [copy.deepcopy(row) for row in rows[:limit]]

    async def close(self) -> None:
        self.closed = True

    def add_history_row(self, entry: HistoryLogEntry, row_key: str | None = None) -> str:
        """Store an entry directly; `row_key` simulates an older generated key."""
        key = row_key or entry.identifier
        self.tables[HISTORY_TABLE][key] = {
            "id": key,
            "vehicle_id": entry.vehicle_id,
            "data": entry.to_dict(),
        }
        return key

    def vehicle(self, identifier: str) -> dict[str, Any] | None:
        row = self.tables[VEHICLES_TABLE].get(identifier)
        return row["data"] if row else None


def make_entry(
    vehicle_id: str = "TM 01",
    new_location: Location = Location.PAT,
    previous_location: Location | None = Location.OFICINA,
) -> HistoryLogEntry:
    return HistoryLogEntry.create(
        vehicle_id=vehicle_id,
        previous_location=previous_location,
        new_location=new_location,
        action_type=ActionType.LOCATION_UPDATE,
        operator="Jane",
        details="Registro: 123",
        registration="123",
    )


TWO_SEEDS = (
    VehicleRecord(identifier="A", current_location=Location.PAT),
    VehicleRecord(identifier="B", current_location=Location.OFICINA),
)


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def local_config(temp_dir: Path) -> FleetConfig:
    return FleetConfig(local_path=str(temp_dir))


@pytest.fixture
def cloud_config(temp_dir: Path) -> FleetConfig:
    return FleetConfig(
        local_path=str(temp_dir),
        cosmos_endpoint="https://test.documents.azure.com:443/",
        cosmos_auth_method=CosmosAuthMethod.KEY,
        cosmos_key="test-key",
        history_scan_limit=5,
    )


@pytest.fixture
def seeds() -> SeedRegistry:
    return SeedRegistry(TWO_SEEDS)


@pytest.fixture
def remote() -> InMemoryRemoteStore:
    return InMemoryRemoteStore()


@pytest.fixture
def local_coordinator(local_config: FleetConfig, seeds: SeedRegistry) -> SyncCoordinator:
    return SyncCoordinator(SyncContext.create(local_config), seeds=seeds)


@pytest.fixture
def cloud_coordinator(
    cloud_config: FleetConfig, seeds: SeedRegistry, remote: InMemoryRemoteStore
) -> SyncCoordinator:
    context = SyncContext.create(cloud_config, remote_factory=lambda _: remote)
    return SyncCoordinator(context, seeds=seeds)


@pytest.fixture
async def local_service(
    local_config: FleetConfig, seeds: SeedRegistry
) -> AsyncIterator[FleetDataService]:
    service = FleetDataService.create(local_config, seeds=seeds)
    yield service
    await service.close()


@pytest.fixture
async def cloud_service(
    cloud_config: FleetConfig, seeds: SeedRegistry, remote: InMemoryRemoteStore
) -> AsyncIterator[FleetDataService]:
    service = FleetDataService.create(cloud_config, seeds=seeds, remote_factory=lambda _: remote)
    yield service
    await service.close()
