"""
Remote store backends.

Example:
    >>> from fleet_sync.config import FleetConfig, CosmosAuthMethod
    >>> from fleet_sync.remote import CosmosRemoteStore
    >>> config = FleetConfig(
    ...     cosmos_endpoint="https://fleet.documents.azure.com:443/",
    ...     cosmos_auth_method=CosmosAuthMethod.DEFAULT_CREDENTIAL,
    ... )
    >>> store = CosmosRemoteStore(config)
"""

from .base import (
    DATA_FIELD,
    HISTORY_TABLE,
    KEY_FIELD,
    VEHICLE_ID_FIELD,
    VEHICLES_TABLE,
    RemoteStore,
)
from .cosmos import CosmosRemoteStore, classify_cosmos_error

__all__ = [
    "RemoteStore",
    "CosmosRemoteStore",
    "classify_cosmos_error",
    "VEHICLES_TABLE",
    "HISTORY_TABLE",
    "KEY_FIELD",
    "DATA_FIELD",
    "VEHICLE_ID_FIELD",
]
