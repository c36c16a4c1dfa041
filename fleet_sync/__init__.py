"""
Fleet Sync

Persistence and synchronization core for a rail vehicle fleet tracker.

Provides:
- A durable local cache (JSON files or SQLite) that never fails its callers
- An optional Cosmos DB remote store, selected once at startup
- Write-through writes with best-effort, at-most-once remote propagation
- Default fleet seeding and healing on read
- Robust deletion of audit rows whose remote key may be unknown

Usage:

    >>> from fleet_sync import FleetConfig, FleetDataService, Location
    >>> async with FleetDataService.create(FleetConfig.from_environment()) as service:
    ...     vehicles = await service.get_vehicles()
    ...     await service.update_location("TM 01", Location.PAT, "Jane", "123")
    ...     history = await service.get_history("TM 01")

Mode selection:

    # Cloud mode when FLEET_COSMOS_ENDPOINT (and credentials) are set
    export FLEET_COSMOS_ENDPOINT="https://fleet.documents.azure.com:443/"

    # Otherwise everything stays in the local cache
    service.current_mode  # Mode.LOCAL
"""

from .config import CosmosAuthMethod, FleetConfig, LocalBackend
from .context import SyncContext
from .exceptions import (
    ConfigurationError,
    ErrorKind,
    FleetStorageError,
    LocalCacheError,
    RemoteStoreError,
    VehicleNotFoundError,
)
from .local import FileLocalCache, LocalCache, SqliteLocalCache
from .models import (
    ActionType,
    HistoryLogEntry,
    Location,
    Mode,
    VehicleRecord,
    VehicleStatus,
)
from .remote import CosmosRemoteStore, RemoteStore
from .seed import DEFAULT_VEHICLES, SeedRegistry
from .service import FleetDataService, FleetSnapshot
from .sync import DeletionOutcome, DeletionResolver, DeletionState, SyncCoordinator

__all__ = [
    # Service
    "FleetDataService",
    "FleetSnapshot",
    # Configuration
    "FleetConfig",
    "CosmosAuthMethod",
    "LocalBackend",
    "SyncContext",
    # Models
    "VehicleRecord",
    "HistoryLogEntry",
    "Location",
    "VehicleStatus",
    "ActionType",
    "Mode",
    # Storage
    "LocalCache",
    "FileLocalCache",
    "SqliteLocalCache",
    "RemoteStore",
    "CosmosRemoteStore",
    # Sync
    "SyncCoordinator",
    "DeletionResolver",
    "DeletionOutcome",
    "DeletionState",
    "SeedRegistry",
    "DEFAULT_VEHICLES",
    # Exceptions
    "ErrorKind",
    "FleetStorageError",
    "LocalCacheError",
    "RemoteStoreError",
    "ConfigurationError",
    "VehicleNotFoundError",
]

__version__ = "0.1.0"
