"""End-to-end tests for FleetDataService."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from conftest import InMemoryRemoteStore, make_entry

from fleet_sync.config import FleetConfig
from fleet_sync.exceptions import ErrorKind, VehicleNotFoundError
from fleet_sync.models import ActionType, Location, Mode, VehicleRecord, VehicleStatus
from fleet_sync.remote.base import HISTORY_TABLE
from fleet_sync.seed import SeedRegistry
from fleet_sync.service import FleetDataService, FleetSnapshot


class TestFleetScenario:
    """A full move-then-undo walk through the service."""

    async def test_move_record_and_delete(self, temp_dir: Path) -> None:
        seeds = SeedRegistry([VehicleRecord(identifier="T01", current_location=Location.OFICINA)])
        async with FleetDataService.create(
            FleetConfig(local_path=str(temp_dir)), seeds=seeds
        ) as service:
            assert service.current_mode == Mode.LOCAL

            vehicles = await service.get_vehicles()
            assert [v.identifier for v in vehicles] == ["T01"]

            updated, entry = await service.update_location("T01", Location.PAT, "Jane", "123")

            vehicles = await service.get_vehicles()
            assert vehicles[0].current_location == Location.PAT
            assert vehicles[0].last_location == Location.OFICINA
            assert vehicles[0].operator == "Jane"
            assert vehicles[0].registration == "123"

            history = await service.get_history()
            assert len(history) == 1
            assert history[0].identifier == entry.identifier
            assert history[0].previous_location == Location.OFICINA
            assert history[0].new_location == Location.PAT
            assert history[0].details == "Registro: 123"

            assert await service.delete_history_log(entry.identifier) is True
            assert await service.get_history() == []


class TestLocalService:
    """Service behaviour in local mode."""

    async def test_last_writer_wins_with_separate_audit(
        self, local_service: FleetDataService
    ) -> None:
        _, first = await local_service.update_location("A", Location.PIT, "Jane", "1")
        _, second = await local_service.update_location("A", Location.PTI, "Joao", "2")

        vehicles = await local_service.get_vehicles()
        assert vehicles[0].current_location == Location.PTI
        assert vehicles[0].operator == "Joao"

        history = await local_service.get_history("A")
        assert {e.identifier for e in history} == {first.identifier, second.identifier}

    async def test_delete_unknown_returns_false(self, local_service: FleetDataService) -> None:
        await local_service.add_history_log(make_entry())

        assert await local_service.delete_history_log("nonexistent-id") is False
        assert len(await local_service.get_history()) == 1

    async def test_history_filtered_by_vehicle(self, local_service: FleetDataService) -> None:
        await local_service.add_history_log(make_entry(vehicle_id="A"))
        await local_service.add_history_log(make_entry(vehicle_id="B"))

        history = await local_service.get_history("B")

        assert [e.vehicle_id for e in history] == ["B"]

    async def test_toggle_into_maintenance(self, local_service: FleetDataService) -> None:
        updated, entry = await local_service.toggle_status("A")

        assert updated.status == VehicleStatus.MAINTENANCE
        assert updated.current_location == Location.OFICINA
        assert entry.action_type == ActionType.STATUS_CHANGE
        assert entry.operator == "Sistema"
        assert entry.previous_location == Location.PAT
        assert entry.details == "Alterado para Manutenção (Movido para Oficina)"

    async def test_toggle_back_to_operation(self, local_service: FleetDataService) -> None:
        await local_service.toggle_status("A")
        updated, entry = await local_service.toggle_status("A", operator="Jane")

        assert updated.status == VehicleStatus.OPERATING
        assert updated.current_location == Location.OFICINA
        assert entry.details == "Alterado para Em Operação"

    async def test_unknown_vehicle_raises(self, local_service: FleetDataService) -> None:
        with pytest.raises(VehicleNotFoundError):
            await local_service.update_location("ZZ 99", Location.PAT, "Jane", "1")

    async def test_retired_vehicles_hidden(self, local_service: FleetDataService) -> None:
        await local_service.save_vehicle(
            VehicleRecord(identifier="ME 12", current_location=Location.PAT)
        )

        vehicles = await local_service.get_vehicles()

        assert "ME 12" not in [v.identifier for v in vehicles]
        with pytest.raises(VehicleNotFoundError):
            await local_service.toggle_status("ME 12")

    async def test_polling_disabled_in_local_mode(self, local_service: FleetDataService) -> None:
        assert local_service.start_polling(interval=0.01) is False


class TestCloudService:
    """Service behaviour against a fake remote store."""

    async def test_mode_is_cloud(self, cloud_service: FleetDataService) -> None:
        assert cloud_service.current_mode == Mode.CLOUD

    async def test_transition_reaches_remote(
        self, cloud_service: FleetDataService, remote: InMemoryRemoteStore
    ) -> None:
        _, entry = await cloud_service.update_location("A", Location.PIT, "Jane", "123")

        assert remote.vehicle("A")["currentLocation"] == "PIT"  # type: ignore[index]
        assert entry.identifier in remote.tables[HISTORY_TABLE]

    async def test_keyed_delete_matches_unkeyed(
        self, cloud_service: FleetDataService, remote: InMemoryRemoteStore
    ) -> None:
        keyed = make_entry()
        unkeyed = make_entry()
        remote.add_history_row(keyed, row_key="legacy-1")
        remote.add_history_row(unkeyed, row_key="legacy-2")

        history = await cloud_service.get_history()
        by_id = {e.identifier: e for e in history}

        assert await cloud_service.delete_history_log(
            keyed.identifier, by_id[keyed.identifier].physical_key
        )
        assert await cloud_service.delete_history_log(unkeyed.identifier)
        assert remote.tables[HISTORY_TABLE] == {}
        assert await cloud_service.get_history() == []

    async def test_delete_unknown_returns_false(
        self, cloud_service: FleetDataService, remote: InMemoryRemoteStore
    ) -> None:
        remote.add_history_row(make_entry())

        assert await cloud_service.delete_history_log("nonexistent-id") is False
        assert len(remote.tables[HISTORY_TABLE]) == 1

    async def test_offline_write_still_visible(
        self, cloud_service: FleetDataService, remote: InMemoryRemoteStore
    ) -> None:
        remote.failures["upsert"] = ErrorKind.REMOTE_TRANSIENT
        remote.failures["select_all"] = ErrorKind.REMOTE_TRANSIENT

        await cloud_service.save_vehicle(
            VehicleRecord(identifier="A", current_location=Location.PTI)
        )

        vehicles = await cloud_service.get_vehicles()
        assert vehicles[0].current_location == Location.PTI

    async def test_polling_delivers_snapshots(self, cloud_service: FleetDataService) -> None:
        received: list[FleetSnapshot] = []
        delivered = asyncio.Event()

        def on_refresh(snapshot: FleetSnapshot) -> None:
            received.append(snapshot)
            delivered.set()

        assert cloud_service.start_polling(on_refresh, interval=0.01) is True
        await asyncio.wait_for(delivered.wait(), timeout=2)
        await cloud_service.stop_polling()

        assert received[0].mode == Mode.CLOUD
        assert [v.identifier for v in received[0].vehicles] == ["A", "B"]

    async def test_polling_survives_callback_errors(
        self, cloud_service: FleetDataService
    ) -> None:
        calls = 0
        second_call = asyncio.Event()

        async def on_refresh(snapshot: FleetSnapshot) -> None:
            nonlocal calls
            calls += 1
            if calls >= 2:
                second_call.set()
            raise RuntimeError("render failed")

        cloud_service.start_polling(on_refresh, interval=0.01)
        await asyncio.wait_for(second_call.wait(), timeout=2)
        await cloud_service.stop_polling()

        assert calls >= 2
