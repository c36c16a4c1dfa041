"""
Sync context.

Holds the persistence mode and store handles for one process. It is
built once at startup and handed to the coordinator, so tests can pass
a fake remote store without touching any global state.

Usage:
    context = SyncContext.create(FleetConfig.from_environment())
    coordinator = SyncCoordinator(context)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from .config import FleetConfig
from .local import LocalCache, create_local_cache
from .models import Mode
from .remote import CosmosRemoteStore, RemoteStore

logger = logging.getLogger(__name__)

RemoteFactory = Callable[[FleetConfig], RemoteStore]


def _default_remote_factory(config: FleetConfig) -> RemoteStore:
    return CosmosRemoteStore(config)


@dataclass(frozen=True)
class SyncContext:
    """Immutable mode decision plus the stores it applies to."""

    config: FleetConfig
    local: LocalCache
    remote: RemoteStore | None = None

    @property
    def mode(self) -> Mode:
        return Mode.CLOUD if self.remote is not None else Mode.LOCAL

    @classmethod
    def create(
        cls,
        config: FleetConfig,
        local: LocalCache | None = None,
        remote_factory: RemoteFactory | None = None,
    ) -> SyncContext:
        """Decide the mode and build the stores.

        CLOUD is selected when connection parameters are configured and the
        remote client can be constructed; any construction failure falls
        back to LOCAL. The decision is never revisited.

        Args:
            config: Fleet configuration
            local: Local cache to use (built from config if None)
            remote_factory: Builds the remote store (Cosmos by default)
        """
        local = local or create_local_cache(config)

        if not config.remote_configured:
            logger.info("Running in local mode (no remote store configured)")
            return cls(config=config, local=local)

        factory = remote_factory or _default_remote_factory
        try:
            remote = factory(config)
        except Exception as e:
            logger.error(
                f"Failed to create remote store, falling back to local mode: {e}",
                extra={"mode": Mode.LOCAL.value},
            )
            return cls(config=config, local=local)

        logger.info("Connected to remote store (cloud mode)", extra={"mode": Mode.CLOUD.value})
        return cls(config=config, local=local, remote=remote)

    async def close(self) -> None:
        """Close both stores."""
        if self.remote is not None:
            await self.remote.close()
        await self.local.close()
