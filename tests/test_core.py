"""Tests for core utilities: money, notes, best-effort wrapper and logging."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from core.exceptions import NotFoundError
from core.logging_config import JSONFormatter, get_context_logger, log_transition
from core.utils import append_note_section, best_effort, ensure_aware, quantize_money, to_decimal


class TestMoney:

    def test_to_decimal_avoids_float_noise(self):
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal("12.50") == Decimal("12.50")

    def test_quantize_rounds_half_up(self):
        assert quantize_money(Decimal("10.005")) == Decimal("10.01")
        assert quantize_money(Decimal("10.004")) == Decimal("10.00")


class TestNotes:

    def test_blank_text_keeps_notes(self):
        assert append_note_section("Existing", "Label", "   ") == "Existing"
        assert append_note_section(None, "Label", None) is None

    def test_first_section_uses_prefix(self):
        assert append_note_section("", "Cancellation Reason", "late", "Cancellation reason: ") == (
            "Cancellation reason: late"
        )

    def test_appends_labeled_section(self):
        assert append_note_section("Existing", "Completion Notes", "done") == (
            "Existing\n\n--- Completion Notes ---\ndone"
        )


class TestBestEffort:

    def test_returns_result_on_success(self):
        @best_effort("add")
        def add(a, b):
            return a + b

        assert add(1, 2) == 3

    def test_failure_logged_and_default_returned(self, caplog):
        @best_effort("explode", default=list)
        def explode():
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR):
            assert explode() == []

        record = next(r for r in caplog.records if "explode failed: boom" in r.getMessage())
        assert record.exc_info is not None
        assert record.extra_data["error_type"] == "RuntimeError"


class TestLogging:

    def test_json_formatter_promotes_context(self):
        record = logging.LogRecord("deals", logging.INFO, __file__, 1, "Deal 5: PENDING -> CANCELLED", None, None)
        record.deal_id = 5
        record.extra_data = {"reason": "buyer withdrew"}

        data = json.loads(JSONFormatter().format(record))

        assert data["deal_id"] == 5
        assert data["extra"] == {"reason": "buyer withdrew"}
        assert data["level"] == "INFO"

    def test_context_logger_attaches_fields(self, caplog):
        logger = get_context_logger("test.context", deal_id=42)

        with caplog.at_level(logging.INFO, logger="test.context"):
            logger.info("Cancelling deal")

        assert caplog.records[-1].deal_id == 42

    def test_log_transition(self, caplog):
        logger = logging.getLogger("test.transition")

        with caplog.at_level(logging.INFO, logger="test.transition"):
            log_transition(logger, "deal", 5, "PENDING", "CANCELLED", reason="buyer withdrew")

        record = caplog.records[-1]
        assert record.getMessage() == "Deal 5: PENDING -> CANCELLED"
        assert record.extra_data["reason"] == "buyer withdrew"


def test_ensure_aware():
    naive = datetime(2025, 1, 1, 9, 30)
    assert ensure_aware(naive).tzinfo is timezone.utc
    assert ensure_aware(None) is None


def test_not_found_message():
    assert str(NotFoundError("Deal", 7)) == "Deal with ID 7 not found"
