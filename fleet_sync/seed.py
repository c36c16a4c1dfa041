"""
Default fleet and seed reconciliation.

The registry holds the canonical vehicles every store must contain. Reading
a store merges in any default it lacks so that empty stores are bootstrapped
and older stores pick up newly introduced vehicles.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from .models import Location, VehicleRecord, VehicleStatus

SEED_TIMESTAMP = datetime(2024, 1, 1, tzinfo=UTC)


def _seed(identifier: str, location: Location) -> VehicleRecord:
    return VehicleRecord(
        identifier=identifier,
        current_location=location,
        last_location=None,
        operator="Sistema",
        registration="",
        status=VehicleStatus.OPERATING,
        last_update=SEED_TIMESTAMP,
    )


DEFAULT_VEHICLES: tuple[VehicleRecord, ...] = (
    _seed("TM 01", Location.PAT),
    _seed("TM 02", Location.PAT),
    _seed("TM 03", Location.ETC_5),
    _seed("TM 04", Location.ETC_6),
    _seed("TM 05", Location.ETC_7),
    _seed("TM 06", Location.ECL_3),
    _seed("TM 07", Location.ECL_4),
    _seed("TM 08", Location.PIT),
    _seed("TM 09", Location.PTI),
    _seed("ME 11", Location.RAMAL_5),
    _seed("VF 11", Location.RAMAL_6),
    _seed("TV 02", Location.OFICINA),
)


@dataclass
class MergeResult:
    """Outcome of merging a store's vehicles with the seeds.

    Attributes:
        records: Store records in their original order followed by missing seeds
        missing: Seeds that were absent and must be written back to the store
    """

    records: list[VehicleRecord]
    missing: list[VehicleRecord] = field(default_factory=list)


class SeedRegistry:
    """Canonical list of default vehicles."""

    def __init__(self, seeds: Iterable[VehicleRecord] = DEFAULT_VEHICLES) -> None:
        self._seeds = tuple(seeds)
        ids = [s.identifier for s in self._seeds]
        if len(ids) != len(set(ids)):
            raise ValueError("Seed identifiers must be unique")

    @property
    def seeds(self) -> list[VehicleRecord]:
        """Fresh copies of the seeds, safe for callers to mutate."""
        return [replace(s) for s in self._seeds]

    def merge(
        self, store_list: Sequence[VehicleRecord], stored_ids: Iterable[str] = ()
    ) -> MergeResult:
        """Append every seed whose identifier is not in `store_list`.

        The store's order is preserved and seeds are appended in registry
        order. Persisting `missing` is the caller's job.

        Args:
            store_list: Decoded store records
            stored_ids: Identifiers of stored rows that could not be decoded;
                they count as present and are never seeded over
        """
        present = {v.identifier for v in store_list}
        present.update(stored_ids)
        result = MergeResult(records=list(store_list))
        for seed in self.seeds:
            if seed.identifier not in present:
                result.records.append(seed)
                result.missing.append(seed)
        return result
