"""
Fleet data model.

Vehicles are mutable records keyed by a human-assigned identifier; history
entries are immutable audit rows. Both serialize to the camelCase layout
used by the existing local collections and remote data blobs.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class Location(Enum):
    """Known yard and line positions."""

    PAT = "PAT"
    ETC_5 = "ETC 5"
    ETC_6 = "ETC 6"
    ETC_7 = "ETC 7"
    ECL_3 = "ECL 3"
    ECL_4 = "ECL 4"
    PIT = "PIT"
    PTI = "PTI"
    RAMAL_5 = "Ramal 5"
    RAMAL_6 = "Ramal 6"
    TM_02_LUZ = "TM 02 de LUZ"
    TM_02_ANR = "TM 02 de ANR"
    OFICINA = "Oficina"


class VehicleStatus(Enum):
    """Operational status of a vehicle."""

    OPERATING = "Em Operação"
    MAINTENANCE = "Manutenção"


class ActionType(Enum):
    """Kind of change recorded by a history entry."""

    LOCATION_UPDATE = "LOCATION_UPDATE"
    STATUS_CHANGE = "STATUS_CHANGE"


class Mode(Enum):
    """Active persistence mode, decided once at startup."""

    LOCAL = "LOCAL"
    CLOUD = "CLOUD"


def utc_now() -> datetime:
    return datetime.now(UTC)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif not value:
        return datetime.fromtimestamp(0, UTC)
    else:
        # Older clients wrote a trailing 'Z'
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _format_timestamp(value: datetime) -> str:
    return value.isoformat()


def _optional_location(value: Any) -> Location | None:
    return Location(value) if value else None


@dataclass
class VehicleRecord:
    """Current state of one vehicle.

    Attributes:
        identifier: Stable human-assigned id (e.g. 'TM 01'), unique per store
        current_location: Where the vehicle is now
        last_location: Where it was before the last move, if known
        operator: Who performed the last change
        registration: Operator badge id recorded with the last change
        status: Operating or in maintenance
        last_update: When the record last changed
    """

    identifier: str
    current_location: Location
    last_location: Location | None = None
    operator: str = ""
    registration: str = ""
    status: VehicleStatus = VehicleStatus.OPERATING
    last_update: datetime | None = None

    def __post_init__(self) -> None:
        if self.last_update is None:
            self.last_update = utc_now()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the stored layout."""
        return {
            "id": self.identifier,
            "currentLocation": self.current_location.value,
            "lastLocation": self.last_location.value if self.last_location else None,
            "operator": self.operator,
            "registration": self.registration,
            "status": self.status.value,
            "lastUpdate": _format_timestamp(self.last_update),  # type: ignore[arg-type]
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VehicleRecord:
        """Deserialize from the stored layout."""
        return cls(
            identifier=data["id"],
            current_location=Location(data["currentLocation"]),
            last_location=_optional_location(data.get("lastLocation")),
            operator=data.get("operator") or "",
            registration=data.get("registration") or "",
            status=VehicleStatus(data.get("status", VehicleStatus.OPERATING.value)),
            last_update=_parse_timestamp(data.get("lastUpdate")),
        )

    def moved_to(self, location: Location, operator: str, registration: str) -> VehicleRecord:
        """Return a copy relocated to `location`, remembering the current position."""
        return replace(
            self,
            last_location=self.current_location,
            current_location=location,
            operator=operator,
            registration=registration,
            last_update=utc_now(),
        )

    def with_toggled_status(self) -> VehicleRecord:
        """Return a copy with the status flipped.

        Entering maintenance sends the vehicle to the workshop and keeps the
        previous position in last_location; leaving maintenance keeps the
        vehicle where it is.
        """
        if self.status == VehicleStatus.OPERATING:
            return replace(
                self,
                status=VehicleStatus.MAINTENANCE,
                last_location=self.current_location,
                current_location=Location.OFICINA,
                last_update=utc_now(),
            )
        return replace(self, status=VehicleStatus.OPERATING, last_update=utc_now())


@dataclass(frozen=True)
class HistoryLogEntry:
    """One immutable audit entry.

    `physical_key` is the backend row address, only known for entries read
    back from the remote store. It is not part of the entry's identity.
    """

    identifier: str
    vehicle_id: str
    new_location: Location
    action_type: ActionType
    previous_location: Location | None = None
    operator: str = ""
    timestamp: datetime | None = None
    details: str = ""
    registration: str | None = None
    physical_key: str | None = None

    def __post_init__(self) -> None:
        if self.timestamp is None:
            object.__setattr__(self, "timestamp", utc_now())

    @classmethod
    def create(
        cls,
        vehicle_id: str,
        new_location: Location,
        action_type: ActionType,
        previous_location: Location | None = None,
        operator: str = "",
        details: str = "",
        registration: str | None = None,
    ) -> HistoryLogEntry:
        """Create a new entry with a generated identifier."""
        return cls(
            identifier=str(uuid.uuid4()),
            vehicle_id=vehicle_id,
            new_location=new_location,
            action_type=action_type,
            previous_location=previous_location,
            operator=operator,
            timestamp=utc_now(),
            details=details,
            registration=registration,
        )

    def to_dict(self, include_physical_key: bool = False) -> dict[str, Any]:
        """Serialize to the stored layout.

        Args:
            include_physical_key: Also emit `_rowId` (local cache only, never remote)
        """
        data: dict[str, Any] = {
            "id": self.identifier,
            "vehicleId": self.vehicle_id,
            "previousLocation": self.previous_location.value if self.previous_location else None,
            "newLocation": self.new_location.value,
            "operator": self.operator,
            "timestamp": _format_timestamp(self.timestamp),  # type: ignore[arg-type]
            "actionType": self.action_type.value,
            "details": self.details,
        }
        if self.registration is not None:
            data["registration"] = self.registration
        if include_physical_key and self.physical_key is not None:
            data["_rowId"] = self.physical_key
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], physical_key: str | None = None) -> HistoryLogEntry:
        """Deserialize from the stored layout."""
        return cls(
            identifier=data["id"],
            vehicle_id=data["vehicleId"],
            new_location=Location(data["newLocation"]),
            action_type=ActionType(data.get("actionType", ActionType.LOCATION_UPDATE.value)),
            previous_location=_optional_location(data.get("previousLocation")),
            operator=data.get("operator") or "",
            timestamp=_parse_timestamp(data.get("timestamp")),
            details=data.get("details") or "",
            registration=data.get("registration"),
            physical_key=physical_key if physical_key is not None else data.get("_rowId"),
        )
