"""JSON log lines from billing_kernel.logging_config."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from billing_kernel.domain.dtos import InvoiceStatus
from billing_kernel.exceptions import InvoiceLockedError
from billing_kernel.logging_config import (
    ROOT_LOGGER_NAME,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _isolated_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def json_lines():
    """Configure logging into a buffer; call the fixture to read parsed lines."""
    buffer = StringIO()

    def read() -> list[dict]:
        return [json.loads(line) for line in buffer.getvalue().splitlines() if line]

    configure_logging(stream=buffer)
    return read


class TestRecordLayout:
    def test_base_fields(self, json_lines):
        get_logger("services.numbering").info("invoice_number_reserved")

        (line,) = json_lines()
        assert line["message"] == "invoice_number_reserved"
        assert line["level"] == "INFO"
        assert line["logger"] == "billing_kernel.services.numbering"
        assert line["ts"].endswith("+00:00")

    def test_extra_fields_merged(self, json_lines):
        get_logger("services.invoice_lifecycle").info(
            "invoice_created",
            extra={"invoice_number": "RE-2025-0001", "event_count": 5},
        )

        (line,) = json_lines()
        assert line["invoice_number"] == "RE-2025-0001"
        assert line["event_count"] == 5

    def test_context_fields_merged(self, json_lines):
        LogContext.set(issuer_id="issuer-7", invoice_id="inv-3")
        get_logger("x").info("status_changed")

        (line,) = json_lines()
        assert line["issuer_id"] == "issuer-7"
        assert line["invoice_id"] == "inv-3"

    def test_context_wins_over_extra(self, json_lines):
        LogContext.set(issuer_id="from-context")
        get_logger("x").info("m", extra={"issuer_id": "from-extra"})

        assert json_lines()[0]["issuer_id"] == "from-context"

    def test_non_json_values_serialized(self, json_lines):
        entity_id = uuid4()
        get_logger("x").info(
            "values",
            extra={
                "entity_id": entity_id,
                "total": Decimal("115.00"),
                "status": InvoiceStatus.SENT,
                "tags": ("yin", "flow"),
            },
        )

        (line,) = json_lines()
        assert line["entity_id"] == str(entity_id)
        assert line["total"] == "115.00"
        assert line["status"] == "sent"
        assert line["tags"] == ["yin", "flow"]

    def test_debug_dropped_at_info(self, json_lines):
        log = get_logger("x")
        log.debug("hidden")
        log.warning("shown")

        assert [line["message"] for line in json_lines()] == ["shown"]


class TestExceptionFields:
    def test_kernel_exception_attributes(self, json_lines):
        try:
            raise InvoiceLockedError("inv-9", "paid")
        except InvoiceLockedError:
            get_logger("x").error("edit_refused", exc_info=True)

        (line,) = json_lines()
        assert line["exc_type"] == "InvoiceLockedError"
        assert line["exc_code"] == "INVOICE_LOCKED"
        assert line["exc_invoice_id"] == "inv-9"
        assert line["exc_status"] == "paid"
        assert "Traceback" in line["traceback"]

    def test_plain_exception_has_no_code(self, json_lines):
        try:
            raise KeyError("missing")
        except KeyError:
            get_logger("x").exception("lookup_failed")

        (line,) = json_lines()
        assert line["exc_type"] == "KeyError"
        assert "exc_code" not in line


class TestLogContext:
    def test_set_ignores_none_and_unknown(self):
        LogContext.set(correlation_id="c-1", event_id=None, colour="blue")
        assert LogContext.get_all() == {"correlation_id": "c-1"}

    def test_values_stored_as_strings(self):
        issuer = uuid4()
        LogContext.set(issuer_id=issuer)
        assert LogContext.get_all() == {"issuer_id": str(issuer)}

    def test_clear(self):
        LogContext.set(actor_id="a")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_nests_and_restores(self):
        LogContext.set(invoice_id="outer")
        with LogContext.bind(invoice_id="inner", event_id="e-1"):
            assert LogContext.get_all() == {"invoice_id": "inner", "event_id": "e-1"}
        assert LogContext.get_all() == {"invoice_id": "outer"}

    def test_bind_restores_after_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(trace_id="t-1"):
                raise RuntimeError("fail")
        assert LogContext.get_all() == {}


def _structured_handlers() -> list[logging.Handler]:
    """Handlers on the kernel logger writing JSON lines, ignoring pytest's capture."""
    return [
        h
        for h in logging.getLogger(ROOT_LOGGER_NAME).handlers
        if isinstance(h.formatter, StructuredFormatter)
    ]


class TestConfiguration:
    def test_second_configure_is_ignored(self):
        configure_logging(stream=StringIO())
        configure_logging(stream=StringIO())
        assert len(_structured_handlers()) == 1

    def test_reset_allows_reconfigure(self):
        configure_logging(stream=StringIO())
        reset_logging()
        assert _structured_handlers() == []

        configure_logging(stream=StringIO(), level=logging.DEBUG)
        assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.DEBUG

    def test_reset_keeps_foreign_handlers(self):
        """Handlers attached by others, such as pytest's log capture, survive a reset."""
        foreign = logging.NullHandler()
        kernel_logger = logging.getLogger(ROOT_LOGGER_NAME)
        kernel_logger.addHandler(foreign)
        try:
            configure_logging(stream=StringIO())
            reset_logging()
            assert foreign in kernel_logger.handlers
        finally:
            kernel_logger.removeHandler(foreign)

    def test_records_do_not_reach_root_logger(self, json_lines):
        assert logging.getLogger(ROOT_LOGGER_NAME).propagate is False

    def test_nested_logger_uses_kernel_handler(self, json_lines):
        get_logger("engines.payout.tiers").warning("tier_gap")
        assert json_lines()[0]["logger"] == "billing_kernel.engines.payout.tiers"
