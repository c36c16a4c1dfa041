"""
Audit log deletion against the remote store.

History rows are addressed by a physical key that, for rows written by older
clients, differs from the entry's logical identifier. The resolver turns a
logical id (plus an optional known key) into exactly one keyed delete:

    RESOLVING_KEY -> DELETING -> SUCCEEDED | FAILED

Key discovery tries a query on the embedded logical id first and, because
that query is unreliable on some stores, falls back to scanning a bounded
window of the most recent rows. The delete itself is always by key, so one
call removes at most one row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..exceptions import REMEDIATION_HINTS, ErrorKind, RemoteStoreError
from ..remote.base import DATA_FIELD, HISTORY_TABLE, KEY_FIELD, RemoteStore

logger = logging.getLogger(__name__)

DEFAULT_SCAN_LIMIT = 200


class DeletionState(Enum):
    """States of a single deletion."""

    RESOLVING_KEY = "resolving_key"
    DELETING = "deleting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class DeletionReason(Enum):
    """Why a deletion ended in FAILED."""

    NOT_FOUND = "not_found"
    NO_ROWS_AFFECTED = "no_rows_affected"
    REMOTE_ERROR = "remote_error"


@dataclass
class DeletionOutcome:
    """Result of one deletion request."""

    logical_id: str
    state: DeletionState
    physical_key: str | None = None
    reason: DeletionReason | None = None
    error_kind: ErrorKind | None = None
    diagnostic: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == DeletionState.SUCCEEDED


def _logical_id(row: dict[str, Any]) -> str | None:
    data = row.get(DATA_FIELD)
    if isinstance(data, dict) and data.get("id") is not None:
        return str(data["id"])
    return None


def _pick_key(logical_id: str, rows: list[dict[str, Any]]) -> str | None:
    """Choose one physical key among rows carrying `logical_id`.

    A row whose key equals the logical id (current schema) wins; otherwise
    the first match is used.
    """
    matches = [r for r in rows if _logical_id(r) == logical_id and r.get(KEY_FIELD)]
    if not matches:
        return None
    if len(matches) > 1:
        logger.warning(
            f"{len(matches)} history rows share logical id {logical_id}; deleting one",
            extra={"log_id": logical_id, "row_count": len(matches)},
        )
    for row in matches:
        if str(row[KEY_FIELD]) == logical_id:
            return logical_id
    return str(matches[0][KEY_FIELD])


class DeletionResolver:
    """Resolves and executes audit row deletions."""

    def __init__(
        self,
        remote: RemoteStore,
        table: str = HISTORY_TABLE,
        scan_limit: int = DEFAULT_SCAN_LIMIT,
    ) -> None:
        self.remote = remote
        self.table = table
        self.scan_limit = scan_limit

    async def resolve_key(self, logical_id: str) -> str | None:
        """Find the physical key of the row holding `logical_id`.

        Raises:
            RemoteStoreError: If the bounded scan itself fails
        """
        try:
            rows = await self.remote.select_where_embedded_field_equals(
                self.table, "id", logical_id
            )
        except RemoteStoreError as e:
            if e.kind in (ErrorKind.REMOTE_ACCESS_DENIED, ErrorKind.REMOTE_SCHEMA_MISSING):
                raise
            logger.info(
                f"Embedded id query failed ({e.kind.value}), scanning recent rows",
                extra={"log_id": logical_id},
            )
            rows = []

        key = _pick_key(logical_id, rows)
        if key is not None:
            return key

        recent = await self.remote.select_recent(
            self.table, self.scan_limit, order_by_key_descending=True
        )
        key = _pick_key(logical_id, recent)
        if key is None:
            logger.info(
                f"No row for {logical_id} in the {len(recent)} most recent rows",
                extra={"log_id": logical_id, "scan_limit": self.scan_limit},
            )
        return key

    async def delete(self, logical_id: str, physical_key: str | None = None) -> DeletionOutcome:
        """Delete the row for `logical_id`, using `physical_key` when known."""
        outcome = DeletionOutcome(logical_id=logical_id, state=DeletionState.RESOLVING_KEY)

        try:
            if physical_key is None:
                physical_key = await self.resolve_key(logical_id)
            if physical_key is None:
                return self._fail(
                    outcome,
                    DeletionReason.NOT_FOUND,
                    ErrorKind.DELETION_NOT_FOUND,
                    f"No history row found for {logical_id}",
                )

            outcome.physical_key = physical_key
            outcome.state = DeletionState.DELETING
            affected = await self.remote.delete_by_key(self.table, KEY_FIELD, physical_key)
        except RemoteStoreError as e:
            return self._fail(
                outcome, DeletionReason.REMOTE_ERROR, e.kind, f"{e.message}. {e.remediation}"
            )

        if affected == 0:
            return self._fail(
                outcome,
                DeletionReason.NO_ROWS_AFFECTED,
                ErrorKind.DELETION_NOT_FOUND,
                f"Delete of row {physical_key} affected no rows. "
                f"{REMEDIATION_HINTS[ErrorKind.DELETION_NOT_FOUND]}",
            )

        outcome.state = DeletionState.SUCCEEDED
        logger.info(
            f"Deleted history row {physical_key}",
            extra={"log_id": logical_id, "physical_key": physical_key},
        )
        return outcome

    def _fail(
        self,
        outcome: DeletionOutcome,
        reason: DeletionReason,
        kind: ErrorKind,
        diagnostic: str,
    ) -> DeletionOutcome:
        outcome.state = DeletionState.FAILED
        outcome.reason = reason
        outcome.error_kind = kind
        outcome.diagnostic = diagnostic
        logger.warning(
            f"History deletion failed: {diagnostic}",
            extra={
                "log_id": outcome.logical_id,
                "reason": reason.value,
                "error_kind": kind.value,
            },
        )
        return outcome
