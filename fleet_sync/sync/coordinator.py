"""
Synchronization coordinator.

Keeps the local cache and the optional remote store in step:

- Reads prefer the remote store in cloud mode and fall back to the local
  snapshot on any remote failure. Reads never raise.
- Writes go to the local cache first, unconditionally, then to the remote
  store once (at most once, no retry). Remote failures are logged with
  their classified kind and never roll back the local write.
- Reading vehicles merges in missing defaults and writes them back.

Concurrent calls are not serialized: whole-record writes are
last-writer-wins.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from ..context import SyncContext
from ..exceptions import ErrorKind, RemoteStoreError
from ..local import HISTORY_KEY, VEHICLES_KEY
from ..models import HistoryLogEntry, Mode, VehicleRecord
from ..remote.base import (
    DATA_FIELD,
    HISTORY_TABLE,
    KEY_FIELD,
    VEHICLE_ID_FIELD,
    VEHICLES_TABLE,
)
from ..seed import SeedRegistry
from .deletion import DeletionOutcome, DeletionReason, DeletionResolver, DeletionState

logger = logging.getLogger(__name__)


def _decode_vehicles(items: Iterable[Any]) -> list[VehicleRecord]:
    records = []
    for item in items:
        try:
            records.append(VehicleRecord.from_dict(item))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed vehicle record: {e}", extra={"record": item})
    return records


def _stored_vehicle_ids(items: Iterable[dict[str, Any]]) -> set[str]:
    """Identifiers of stored vehicles, whether or not they decode.

    Accepts both remote rows (`{"id", "data"}`) and local items.
    """
    ids = set()
    for item in items:
        data = item.get(DATA_FIELD)
        identifier = data.get("id") if isinstance(data, dict) else item.get(KEY_FIELD)
        if identifier is not None:
            ids.add(str(identifier))
    return ids


def _decode_history_rows(rows: Iterable[dict[str, Any]]) -> list[HistoryLogEntry]:
    entries = []
    for row in rows:
        try:
            key = row.get(KEY_FIELD)
            entries.append(
                HistoryLogEntry.from_dict(
                    row[DATA_FIELD], physical_key=str(key) if key is not None else None
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed history row: {e}", extra={"row_id": row.get("id")})
    return entries


def _decode_history(items: Iterable[Any]) -> list[HistoryLogEntry]:
    entries = []
    for item in items:
        try:
            entries.append(HistoryLogEntry.from_dict(item))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed history entry: {e}", extra={"record": item})
    return entries


def _newest_first(entries: list[HistoryLogEntry]) -> list[HistoryLogEntry]:
    return sorted(entries, key=lambda e: e.timestamp, reverse=True)  # type: ignore[arg-type,return-value]


class SyncCoordinator:
    """Orchestrates reads and writes across the local cache and remote store."""

    def __init__(self, context: SyncContext, seeds: SeedRegistry | None = None) -> None:
        """Initialize the coordinator.

        Args:
            context: Mode decision and store handles built at startup
            seeds: Default vehicles (the built-in fleet if None)
        """
        self.context = context
        self.seeds = seeds or SeedRegistry()
        self._resolver: DeletionResolver | None = None
        if context.remote is not None:
            self._resolver = DeletionResolver(
                context.remote,
                table=HISTORY_TABLE,
                scan_limit=context.config.history_scan_limit,
            )

    @property
    def mode(self) -> Mode:
        return self.context.mode

    # -------------------------------------------------------------------------
    # Vehicles
    # -------------------------------------------------------------------------

    async def read_vehicles(self) -> list[VehicleRecord]:
        """Return all vehicles, seeding any missing defaults.

        Never raises; on remote failure the local snapshot is served.
        """
        remote = self.context.remote
        if remote is not None:
            try:
                rows = await remote.select_all(VEHICLES_TABLE)
            except RemoteStoreError as e:
                self._log_remote_failure("read_vehicles", e)
            else:
                return await self._reconcile_remote_vehicles(rows)
        return await self._read_local_vehicles()

    async def write_vehicle(self, record: VehicleRecord) -> None:
        """Write-through: local cache first, then a best-effort remote upsert."""
        await self._write_local_vehicle(record)
        if self.context.remote is not None:
            await self._upsert_remote_vehicle(record)

    async def _reconcile_remote_vehicles(self, rows: list[dict[str, Any]]) -> list[VehicleRecord]:
        if not rows:
            # Freshly provisioned store
            logger.info("Remote vehicle table is empty, seeding default fleet")
            seeds = self.seeds.seeds
            for seed in seeds:
                await self.write_vehicle(seed)
            return seeds

        items = [row.get(DATA_FIELD) for row in rows]
        merged = self.seeds.merge(_decode_vehicles(items), _stored_vehicle_ids(rows))
        for seed in merged.missing:
            logger.info(
                f"Adding missing default vehicle {seed.identifier}",
                extra={"vehicle_id": seed.identifier},
            )
            await self._upsert_remote_vehicle(seed)
        # Undecodable items are kept verbatim in the snapshot
        await self.context.local.write_collection(
            VEHICLES_KEY,
            [item for item in items if isinstance(item, dict)]
            + [seed.to_dict() for seed in merged.missing],
        )
        return merged.records

    async def _read_local_vehicles(self) -> list[VehicleRecord]:
        items = await self.context.local.read_collection(VEHICLES_KEY) or []
        merged = self.seeds.merge(_decode_vehicles(items), _stored_vehicle_ids(items))
        if merged.missing:
            await self.context.local.write_collection(
                VEHICLES_KEY, items + [seed.to_dict() for seed in merged.missing]
            )
        return merged.records

    async def _write_local_vehicle(self, record: VehicleRecord) -> None:
        items = await self.context.local.read_collection(VEHICLES_KEY) or []
        serialized = record.to_dict()
        for index, item in enumerate(items):
            if item.get("id") == record.identifier:
                items[index] = serialized
                break
        else:
            items.append(serialized)
        await self.context.local.write_collection(VEHICLES_KEY, items)

    async def _upsert_remote_vehicle(self, record: VehicleRecord) -> None:
        assert self.context.remote is not None
        try:
            await self.context.remote.upsert(
                VEHICLES_TABLE,
                {KEY_FIELD: record.identifier, DATA_FIELD: record.to_dict()},
                key_field=KEY_FIELD,
            )
        except RemoteStoreError as e:
            self._log_remote_failure("write_vehicle", e, vehicle_id=record.identifier)

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    async def read_history(self) -> list[HistoryLogEntry]:
        """Return all history entries, newest first.

        In cloud mode the remote rows replace the local snapshot. Never raises.
        """
        remote = self.context.remote
        if remote is not None:
            try:
                rows = await remote.select_all(HISTORY_TABLE)
            except RemoteStoreError as e:
                self._log_remote_failure("read_history", e)
            else:
                entries = _decode_history_rows(rows)
                await self.context.local.write_collection(
                    HISTORY_KEY, [e.to_dict(include_physical_key=True) for e in entries]
                )
                return _newest_first(entries)

        items = await self.context.local.read_collection(HISTORY_KEY)
        return _newest_first(_decode_history(items or []))

    async def append_log(self, entry: HistoryLogEntry) -> None:
        """Append locally, then insert one remote row keyed by the logical id."""
        items = await self.context.local.read_collection(HISTORY_KEY) or []
        items.append(entry.to_dict(include_physical_key=True))
        await self.context.local.write_collection(HISTORY_KEY, items)

        remote = self.context.remote
        if remote is None:
            return
        try:
            await remote.insert(
                HISTORY_TABLE,
                {
                    KEY_FIELD: entry.identifier,
                    VEHICLE_ID_FIELD: entry.vehicle_id,
                    DATA_FIELD: entry.to_dict(),
                },
            )
        except RemoteStoreError as e:
            self._log_remote_failure("append_log", e, log_id=entry.identifier)

    async def delete_log(self, logical_id: str, physical_key: str | None = None) -> DeletionOutcome:
        """Delete a history entry from both stores.

        The remote row is deleted through the resolver (cloud mode only). The
        local entry is removed whatever the remote outcome; in cloud mode the
        returned outcome is the remote one. Without an explicit
        `physical_key`, the key cached with the local snapshot is used before
        falling back to key discovery.
        """
        if self._resolver is not None:
            if physical_key is None:
                physical_key = await self._cached_physical_key(logical_id)
            outcome = await self._resolver.delete(logical_id, physical_key)
            await self._remove_local_log(logical_id)
            return outcome

        removed = await self._remove_local_log(logical_id)
        if removed:
            return DeletionOutcome(
                logical_id=logical_id, state=DeletionState.SUCCEEDED, physical_key=physical_key
            )
        return DeletionOutcome(
            logical_id=logical_id,
            state=DeletionState.FAILED,
            reason=DeletionReason.NOT_FOUND,
            error_kind=ErrorKind.DELETION_NOT_FOUND,
            diagnostic=f"No local history entry {logical_id}",
        )

    async def _cached_physical_key(self, logical_id: str) -> str | None:
        for item in await self.context.local.read_collection(HISTORY_KEY) or []:
            if item.get("id") == logical_id and item.get("_rowId"):
                return str(item["_rowId"])
        return None

    async def _remove_local_log(self, logical_id: str) -> bool:
        items = await self.context.local.read_collection(HISTORY_KEY)
        if not items:
            return False
        kept = [item for item in items if item.get("id") != logical_id]
        if len(kept) == len(items):
            return False
        await self.context.local.write_collection(HISTORY_KEY, kept)
        return True

    # -------------------------------------------------------------------------
    # Error reporting
    # -------------------------------------------------------------------------

    def _log_remote_failure(self, operation: str, error: RemoteStoreError, **context: Any) -> None:
        extra = {
            "operation": operation,
            "table": error.table,
            "error_kind": error.kind.value,
            "remediation": error.remediation,
            **context,
        }
        if error.kind == ErrorKind.REMOTE_TRANSIENT:
            logger.warning(f"Remote {operation} failed, continuing locally: {error}", extra=extra)
        else:
            logger.error(
                f"Remote {operation} failed: {error}. {error.remediation}",
                extra=extra,
            )
