"""
Fleet data service.

The surface used by presentation code: reading and saving vehicles,
reading and appending history, deleting history entries, and the two
vehicle transitions (moving a vehicle, toggling maintenance) that pair a
vehicle write with an audit entry.

In cloud mode a background task can refresh the fleet periodically so
other devices' changes show up; the refresh may briefly overwrite an
optimistic local change until that change reaches the remote store.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from .config import FleetConfig
from .context import RemoteFactory, SyncContext
from .exceptions import VehicleNotFoundError
from .local import LocalCache
from .logging_utils import FleetLoggerAdapter
from .models import (
    ActionType,
    HistoryLogEntry,
    Location,
    Mode,
    VehicleRecord,
    VehicleStatus,
    utc_now,
)
from .seed import SeedRegistry
from .sync import SyncCoordinator

logger = logging.getLogger(__name__)

SYSTEM_OPERATOR = "Sistema"


@dataclass
class FleetSnapshot:
    """Vehicles and history as of one refresh."""

    vehicles: list[VehicleRecord]
    history: list[HistoryLogEntry]
    mode: Mode
    refreshed_at: datetime = field(default_factory=utc_now)


RefreshCallback = Callable[[FleetSnapshot], Awaitable[None] | None]


class FleetDataService:
    """Fleet operations for presentation collaborators.

    Usage:
        async with FleetDataService.create(FleetConfig.from_environment()) as service:
            vehicles = await service.get_vehicles()
            await service.update_location("TM 01", Location.PAT, "Jane", "123")
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        retired_vehicle_ids: Iterable[str] | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            coordinator: Coordinator bound to this process's sync context
            retired_vehicle_ids: Vehicles hidden from listings even if still stored
                (defaults to the configured list)
        """
        self.coordinator = coordinator
        if retired_vehicle_ids is None:
            retired_vehicle_ids = coordinator.context.config.retired_vehicle_ids
        self.retired_vehicle_ids = frozenset(retired_vehicle_ids)
        self.log = FleetLoggerAdapter(logger, {"mode": coordinator.mode.value})

        self._poll_task: asyncio.Task[None] | None = None
        self._polling = False

    @classmethod
    def create(
        cls,
        config: FleetConfig | None = None,
        seeds: SeedRegistry | None = None,
        local: LocalCache | None = None,
        remote_factory: RemoteFactory | None = None,
    ) -> FleetDataService:
        """Build the context, coordinator and service in one step."""
        config = config or FleetConfig.from_environment()
        context = SyncContext.create(config, local=local, remote_factory=remote_factory)
        return cls(SyncCoordinator(context, seeds=seeds))

    @property
    def current_mode(self) -> Mode:
        """LOCAL or CLOUD, fixed for the life of the process."""
        return self.coordinator.mode

    async def __aenter__(self) -> FleetDataService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Core operations
    # -------------------------------------------------------------------------

    async def get_vehicles(self) -> list[VehicleRecord]:
        vehicles = await self.coordinator.read_vehicles()
        return [v for v in vehicles if v.identifier not in self.retired_vehicle_ids]

    async def get_history(self, vehicle_id: str | None = None) -> list[HistoryLogEntry]:
        """Return history newest first, optionally for one vehicle."""
        history = await self.coordinator.read_history()
        if vehicle_id is None:
            return history
        return [entry for entry in history if entry.vehicle_id == vehicle_id]

    async def save_vehicle(self, record: VehicleRecord) -> None:
        await self.coordinator.write_vehicle(record)

    async def add_history_log(self, entry: HistoryLogEntry) -> None:
        await self.coordinator.append_log(entry)

    async def delete_history_log(self, logical_id: str, physical_key: str | None = None) -> bool:
        """Delete a history entry; True only if the authoritative store removed it."""
        self.log.info(f"Deleting history entry {logical_id}", extra={"log_id": logical_id})
        outcome = await self.coordinator.delete_log(logical_id, physical_key)
        return outcome.succeeded

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _find_vehicle(self, vehicle_id: str) -> VehicleRecord:
        for vehicle in await self.get_vehicles():
            if vehicle.identifier == vehicle_id:
                return vehicle
        raise VehicleNotFoundError(vehicle_id)

    async def update_location(
        self,
        vehicle_id: str,
        new_location: Location,
        operator: str,
        registration: str,
    ) -> tuple[VehicleRecord, HistoryLogEntry]:
        """Move a vehicle and record the move.

        Raises:
            VehicleNotFoundError: If the vehicle is not in the fleet
        """
        current = await self._find_vehicle(vehicle_id)
        updated = current.moved_to(new_location, operator, registration)
        await self.save_vehicle(updated)

        entry = HistoryLogEntry.create(
            vehicle_id=vehicle_id,
            previous_location=current.current_location,
            new_location=new_location,
            action_type=ActionType.LOCATION_UPDATE,
            operator=operator,
            details=f"Registro: {registration}",
            registration=registration,
        )
        await self.add_history_log(entry)
        return updated, entry

    async def toggle_status(
        self, vehicle_id: str, operator: str = SYSTEM_OPERATOR
    ) -> tuple[VehicleRecord, HistoryLogEntry]:
        """Flip a vehicle between operating and maintenance and record it.

        Raises:
            VehicleNotFoundError: If the vehicle is not in the fleet
        """
        current = await self._find_vehicle(vehicle_id)
        updated = current.with_toggled_status()
        await self.save_vehicle(updated)

        details = f"Alterado para {updated.status.value}"
        if updated.status == VehicleStatus.MAINTENANCE:
            details += f" (Movido para {Location.OFICINA.value})"

        entry = HistoryLogEntry.create(
            vehicle_id=vehicle_id,
            previous_location=current.current_location,
            new_location=updated.current_location,
            action_type=ActionType.STATUS_CHANGE,
            operator=operator,
            details=details,
        )
        await self.add_history_log(entry)
        return updated, entry

    # -------------------------------------------------------------------------
    # Refresh and polling
    # -------------------------------------------------------------------------

    async def refresh(self) -> FleetSnapshot:
        vehicles = await self.get_vehicles()
        history = await self.get_history()
        return FleetSnapshot(vehicles=vehicles, history=history, mode=self.current_mode)

    def start_polling(
        self,
        on_refresh: RefreshCallback | None = None,
        interval: float | None = None,
    ) -> bool:
        """Start background refreshes (cloud mode only).

        Args:
            on_refresh: Called with each snapshot; may be sync or async
            interval: Seconds between refreshes (configured poll_interval if None)

        Returns:
            True if a polling task was started
        """
        if self.current_mode != Mode.CLOUD:
            self.log.debug("Polling skipped in local mode")
            return False
        if self._poll_task is not None:
            return True

        interval = interval or self.coordinator.context.config.poll_interval
        self._polling = True
        self._poll_task = asyncio.create_task(self._poll_loop(interval, on_refresh))
        return True

    async def stop_polling(self) -> None:
        self._polling = False
        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

    async def _poll_loop(self, interval: float, on_refresh: RefreshCallback | None) -> None:
        while self._polling:
            try:
                await asyncio.sleep(interval)
                snapshot = await self.refresh()
                if on_refresh is not None:
                    result = on_refresh(snapshot)
                    if inspect.isawaitable(result):
                        await result
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.log.error(f"Background refresh failed: {e}")

    async def close(self) -> None:
        """Stop polling and close both stores."""
        await self.stop_polling()
        await self.coordinator.context.close()
