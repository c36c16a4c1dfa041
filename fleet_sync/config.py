"""
Fleet storage configuration.

Configuration can be provided directly, via environment variables, or
from a YAML settings file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

DEFAULT_RETIRED_VEHICLE_IDS = ("ME 12", "TV 01", "VF 12")


class CosmosAuthMethod(Enum):
    """Authentication method for Cosmos DB.

    KEY: Use account key
    DEFAULT_CREDENTIAL: Use Azure DefaultAzureCredential (recommended)
        - Works with Azure CLI, Managed Identity, Environment variables, etc.
    MANAGED_IDENTITY: Use Azure Managed Identity explicitly
    SERVICE_PRINCIPAL: Use Service Principal with client_id/client_secret
    """

    KEY = "key"
    DEFAULT_CREDENTIAL = "default_credential"
    MANAGED_IDENTITY = "managed_identity"
    SERVICE_PRINCIPAL = "service_principal"


class LocalBackend(Enum):
    """Backend used for the durable local cache."""

    FILE = "file"
    SQLITE = "sqlite"


@dataclass
class FleetConfig:
    """Configuration for fleet storage.

    Environment Variables:
        FLEET_COSMOS_ENDPOINT: Cosmos DB endpoint URL (absent means local-only)
        FLEET_COSMOS_KEY: Cosmos DB key (if using key auth)
        FLEET_COSMOS_AUTH_METHOD: Auth method (default: key when a key is set,
            default_credential otherwise)
        FLEET_COSMOS_DATABASE: Database name (default: fleet-db)
        FLEET_COSMOS_VEHICLES_CONTAINER: Vehicles container (default: vehicles)
        FLEET_COSMOS_HISTORY_CONTAINER: History container (default: history_logs)
        AZURE_TENANT_ID / AZURE_CLIENT_ID / AZURE_CLIENT_SECRET: service principal
        FLEET_LOCAL_PATH: Directory for the local cache (default: ~/.fleet_sync)
        FLEET_LOCAL_BACKEND: 'file' or 'sqlite' (default: file)
        FLEET_HISTORY_SCAN_LIMIT: Rows scanned when resolving a deletion key
        FLEET_POLL_INTERVAL: Seconds between background refreshes in cloud mode
    """

    cosmos_endpoint: str | None = None
    cosmos_auth_method: CosmosAuthMethod = CosmosAuthMethod.DEFAULT_CREDENTIAL
    cosmos_key: str | None = None
    cosmos_database: str = "fleet-db"
    vehicles_container: str = "vehicles"
    history_container: str = "history_logs"

    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_client_secret: str | None = None

    local_path: str | None = None
    local_backend: LocalBackend = LocalBackend.FILE

    history_scan_limit: int = 200
    poll_interval: float = 30.0
    retired_vehicle_ids: tuple[str, ...] = DEFAULT_RETIRED_VEHICLE_IDS

    options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.history_scan_limit < 1:
            raise ConfigurationError("history_scan_limit", "must be at least 1")
        if self.poll_interval <= 0:
            raise ConfigurationError("poll_interval", "must be positive")

    @property
    def remote_configured(self) -> bool:
        """Whether enough connection parameters exist to try the remote store."""
        if not self.cosmos_endpoint:
            return False
        if self.cosmos_auth_method == CosmosAuthMethod.KEY:
            return bool(self.cosmos_key)
        return True

    @property
    def local_dir(self) -> Path:
        if self.local_path:
            return Path(self.local_path)
        return Path.home() / ".fleet_sync"

    @classmethod
    def from_environment(cls) -> FleetConfig:
        """Create configuration from environment variables."""
        return cls._from_mapping(
            {
                "cosmos_endpoint": os.environ.get("FLEET_COSMOS_ENDPOINT"),
                "cosmos_key": os.environ.get("FLEET_COSMOS_KEY"),
                "cosmos_auth_method": os.environ.get("FLEET_COSMOS_AUTH_METHOD"),
                "cosmos_database": os.environ.get("FLEET_COSMOS_DATABASE"),
                "vehicles_container": os.environ.get("FLEET_COSMOS_VEHICLES_CONTAINER"),
                "history_container": os.environ.get("FLEET_COSMOS_HISTORY_CONTAINER"),
                "azure_tenant_id": os.environ.get("AZURE_TENANT_ID"),
                "azure_client_id": os.environ.get("AZURE_CLIENT_ID"),
                "azure_client_secret": os.environ.get("AZURE_CLIENT_SECRET"),
                "local_path": os.environ.get("FLEET_LOCAL_PATH"),
                "local_backend": os.environ.get("FLEET_LOCAL_BACKEND"),
                "history_scan_limit": os.environ.get("FLEET_HISTORY_SCAN_LIMIT"),
                "poll_interval": os.environ.get("FLEET_POLL_INTERVAL"),
            }
        )

    @classmethod
    def from_file(cls, path: Path) -> FleetConfig:
        """Create configuration from the `fleet:` section of a YAML file.

        ```yaml
        fleet:
          cosmos_endpoint: "https://fleet.documents.azure.com:443/"
          cosmos_auth_method: default_credential
          cosmos_database: fleet-db
          local_path: ~/.fleet_sync
          local_backend: sqlite
          retired_vehicle_ids: ["ME 12"]
        ```

        A missing file yields the local-only defaults.
        """
        if not path.exists():
            return cls()
        try:
            with open(path, encoding="utf-8") as f:
                content = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(str(path), f"invalid YAML: {e}") from e
        section = content.get("fleet", {}) if isinstance(content, dict) else {}
        if not isinstance(section, dict):
            raise ConfigurationError("fleet", "section must be a mapping")
        return cls._from_mapping(section)

    @classmethod
    def _from_mapping(cls, values: dict[str, Any]) -> FleetConfig:
        kwargs: dict[str, Any] = {k: v for k, v in values.items() if v is not None}

        auth = kwargs.pop("cosmos_auth_method", None)
        if auth is not None:
            try:
                kwargs["cosmos_auth_method"] = CosmosAuthMethod(str(auth).lower())
            except ValueError as e:
                raise ConfigurationError("cosmos_auth_method", f"unknown method {auth!r}") from e
        elif kwargs.get("cosmos_key"):
            kwargs["cosmos_auth_method"] = CosmosAuthMethod.KEY

        backend = kwargs.pop("local_backend", None)
        if backend is not None:
            try:
                kwargs["local_backend"] = LocalBackend(str(backend).lower())
            except ValueError as e:
                raise ConfigurationError("local_backend", f"unknown backend {backend!r}") from e

        if "local_path" in kwargs:
            kwargs["local_path"] = os.path.expanduser(str(kwargs["local_path"]))

        try:
            if "history_scan_limit" in kwargs:
                kwargs["history_scan_limit"] = int(kwargs["history_scan_limit"])
            if "poll_interval" in kwargs:
                kwargs["poll_interval"] = float(kwargs["poll_interval"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError("numeric setting", str(e)) from e

        if "retired_vehicle_ids" in kwargs:
            kwargs["retired_vehicle_ids"] = tuple(kwargs["retired_vehicle_ids"])

        known = set(cls.__dataclass_fields__)
        options = {k: v for k, v in kwargs.items() if k not in known}
        kwargs = {k: v for k, v in kwargs.items() if k in known}
        if options:
            kwargs.setdefault("options", {}).update(options)
        return cls(**kwargs)
