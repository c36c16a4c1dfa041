"""Tests for structured logging."""

from __future__ import annotations

import io
import json
import logging
import sys

import pytest

from fleet_sync.exceptions import ErrorKind
from fleet_sync.logging_utils import (
    FleetLoggerAdapter,
    StructuredJsonFormatter,
    configure_structured_logging,
)
from fleet_sync.models import Mode
from fleet_sync.service import FleetDataService


def make_record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="fleet_sync.sync.coordinator",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Remote %s failed",
        args=("read_vehicles",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredJsonFormatter:
    def test_single_line_json_with_context(self) -> None:
        record = make_record(error_kind="remote_transient", table="vehicles")
        record.created = 1714564800.0

        output = StructuredJsonFormatter().format(record)

        assert "\n" not in output
        data = json.loads(output)
        assert data["timestamp"] == "2024-05-01T12:00:00+00:00"
        assert data["level"] == "WARNING"
        assert data["logger"] == "fleet_sync.sync.coordinator"
        assert data["message"] == "Remote read_vehicles failed"
        assert data["error_kind"] == "remote_transient"
        assert data["table"] == "vehicles"
        assert "lineno" not in data

    def test_enums_emitted_by_value(self) -> None:
        record = make_record(mode=Mode.CLOUD, kind=ErrorKind.REMOTE_TRANSIENT)

        data = json.loads(StructuredJsonFormatter().format(record))

        assert data["mode"] == "CLOUD"
        assert data["kind"] == "remote_transient"

    def test_unserializable_extra_is_stringified(self) -> None:
        data = json.loads(StructuredJsonFormatter().format(make_record(cause=object)))

        assert data["cause"] == str(object)

    def test_static_fields(self) -> None:
        formatter = StructuredJsonFormatter({"deployment": "depot-a"})

        assert json.loads(formatter.format(make_record()))["deployment"] == "depot-a"

    def test_exception_included(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(StructuredJsonFormatter().format(record))

        assert "RuntimeError: boom" in data["exception"]


class TestConfigureStructuredLogging:
    def test_writes_json_lines_and_replaces_own_handler(self) -> None:
        other = logging.NullHandler()
        logger = logging.getLogger("fleet_sync.test_json")
        logger.addHandler(other)
        stream = io.StringIO()

        try:
            configure_structured_logging(logging.DEBUG, "fleet_sync.test_json")
            configure_structured_logging(logging.DEBUG, "fleet_sync.test_json", stream=stream)

            assert len(logger.handlers) == 2
            assert other in logger.handlers
            assert logger.level == logging.DEBUG

            logger.info("Deleted history row %s", "row-1", extra={"log_id": "log-1"})
            data = json.loads(stream.getvalue())
            assert data["message"] == "Deleted history row row-1"
            assert data["log_id"] == "log-1"
        finally:
            logger.handlers.clear()


class TestFleetLoggerAdapter:
    def test_adds_context(self, caplog: pytest.LogCaptureFixture) -> None:
        adapter = FleetLoggerAdapter(logging.getLogger("fleet_sync.test"), {"mode": "LOCAL"})

        with caplog.at_level(logging.INFO, logger="fleet_sync.test"):
            adapter.info("hello", extra={"log_id": "log-1"})

        assert caplog.records[0].mode == "LOCAL"  # type: ignore[attr-defined]
        assert caplog.records[0].log_id == "log-1"  # type: ignore[attr-defined]

    async def test_service_tags_mode(self, local_service: FleetDataService) -> None:
        assert local_service.log.extra == {"mode": "LOCAL"}
