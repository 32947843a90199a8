"""Tests for the structured logging system (inventory_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from inventory_kernel.exceptions import InsufficientBalanceError, StorageConflictError
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite config."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def log_stream():
    """Configure the kernel logger onto an in-memory stream; return a reader."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    configure_logging(handler=handler, level=logging.DEBUG)

    def _records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _records


class TestStructuredFormatter:
    def test_envelope(self, log_stream):
        get_logger("test").info("hello")

        (record,) = log_stream()
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "inventory_kernel.test"
        assert "ts" in record

    def test_extra_fields_and_typed_values(self, log_stream):
        item_id = uuid4()
        get_logger("test").info(
            "inventory_event_applied",
            extra={"txn_type": "ISSUE", "item_id": item_id, "qty_base": Decimal("1.5")},
        )

        (record,) = log_stream()
        assert record["txn_type"] == "ISSUE"
        assert record["item_id"] == str(item_id)
        assert record["qty_base"] == "1.5"

    def test_bound_context_stamped_on_every_line(self, log_stream):
        logger = get_logger("test")
        with LogContext.bind(correlation_id="abc-123", tenant_id="t-1", site_id="s-1"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = log_stream()
        assert inside["correlation_id"] == "abc-123"
        assert inside["tenant_id"] == "t-1"
        assert inside["site_id"] == "s-1"
        assert "correlation_id" not in outside
        assert "tenant_id" not in outside

    def test_kernel_exception_fields_extracted(self, log_stream):
        try:
            raise InsufficientBalanceError("item-1", "loc-1", Decimal("10"), Decimal("15"))
        except InsufficientBalanceError:
            get_logger("test").error("issue_failed", exc_info=True)

        (record,) = log_stream()
        assert record["exc_code"] == "INSUFFICIENT_BALANCE"
        assert record["exc_type"] == "InsufficientBalanceError"
        assert record["exc_retryable"] is False
        assert record["exc_item_id"] == "item-1"
        assert record["exc_available"] == "10"
        assert record["exc_requested"] == "15"
        assert "traceback" in record

    def test_conflict_logged_as_retryable(self, log_stream):
        try:
            raise StorageConflictError("apply_issue", 4)
        except StorageConflictError:
            get_logger("test").warning("write_conflict", exc_info=True)

        (record,) = log_stream()
        assert record["exc_code"] == "STORAGE_CONFLICT"
        assert record["exc_retryable"] is True

    def test_foreign_exception_has_no_kernel_fields(self, log_stream):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            get_logger("test").error("unexpected", exc_info=True)

        (record,) = log_stream()
        assert record["exc_type"] == "RuntimeError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "exc_retryable" not in record

    def test_level_filtering(self):
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter())
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second")
        logger.debug("third")

        messages = [json.loads(line)["message"] for line in stream.getvalue().splitlines()]
        assert messages == ["first", "second"]


class TestLogContext:
    def test_get_and_get_all(self):
        with LogContext.bind(correlation_id="x", actor_id="y"):
            assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "y"}
            assert LogContext.get("actor_id") == "y"
            assert LogContext.get("unknown") is None
        assert LogContext.get_all() == {}

    def test_nested_bind_restores_outer_value(self):
        with LogContext.bind(site_id="outer"):
            with LogContext.bind(site_id="inner"):
                assert LogContext.get("site_id") == "inner"
            assert LogContext.get("site_id") == "outer"

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(tenant_id="t-1"):
                raise RuntimeError("boom")
        assert LogContext.get("tenant_id") is None

    def test_bind_stringifies_and_skips_none(self):
        uid = uuid4()
        with LogContext.bind(tenant_id=uid, event_id=None):
            assert LogContext.get("tenant_id") == str(uid)
            assert LogContext.get("event_id") is None
        assert "tenant_id" not in LogContext.get_all()

    def test_bind_rejects_unknown_field(self):
        with pytest.raises(ValueError):
            with LogContext.bind(tenent_id="typo"):
                pass

    def test_clear(self):
        with LogContext.bind(correlation_id="x"):
            LogContext.clear()
            assert LogContext.get_all() == {}


class TestConfigureLogging:
    def test_idempotent(self):
        for _ in range(2):
            configure_logging(handler=logging.StreamHandler(StringIO()))
        assert len(logging.getLogger("inventory_kernel").handlers) == 1

    def test_loggers_live_under_kernel_namespace(self):
        logger = get_logger("services.transaction_engine")
        assert logger.name == "inventory_kernel.services.transaction_engine"
