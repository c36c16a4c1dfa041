"""
Create the Cosmos DB database and containers used by fleet_sync.

The library never creates containers on its own, so a missing container
surfaces as a schema error instead of silently starting an empty fleet.
Run this once per database.

Usage:
    export FLEET_COSMOS_ENDPOINT="https://your-account.documents.azure.com:443/"
    export FLEET_COSMOS_DATABASE="fleet-db"
    export FLEET_COSMOS_AUTH_METHOD="default_credential"

    python scripts/provision_cosmos.py [--seed] [--json-logs]
"""

import argparse
import asyncio
import logging
import sys

from fleet_sync import FleetConfig, FleetDataService, RemoteStoreError
from fleet_sync.logging_utils import configure_structured_logging
from fleet_sync.remote import CosmosRemoteStore

logger = logging.getLogger(__name__)


async def main(seed: bool) -> int:
    config = FleetConfig.from_environment()
    if not config.remote_configured:
        logger.error("FLEET_COSMOS_ENDPOINT (and credentials) must be set")
        return 1

    store = CosmosRemoteStore(config)
    try:
        await store.provision()
    except RemoteStoreError as e:
        logger.error(f"Provisioning failed: {e}. {e.remediation}")
        return 1
    finally:
        await store.close()

    logger.info(
        f"Provisioned {config.cosmos_database}: "
        f"{config.vehicles_container}, {config.history_container}"
    )

    if seed:
        async with FleetDataService.create(config) as service:
            vehicles = await service.get_vehicles()
            logger.info(f"Fleet holds {len(vehicles)} vehicles")

    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument(
        "--seed", action="store_true", help="Read the fleet once so default vehicles get written"
    )
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit one JSON object per log line"
    )
    args = parser.parse_args()

    if args.json_logs:
        configure_structured_logging(logger_name=None)
    else:
        logging.basicConfig(
            level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    sys.exit(asyncio.run(main(args.seed)))
