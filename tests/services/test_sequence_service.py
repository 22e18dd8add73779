"""Tests for SequenceService counters and daily document numbers."""

from datetime import datetime, timezone

import pytest

from inventory_kernel.services.sequence_service import SequenceService


@pytest.fixture
def sequences(session):
    return SequenceService(session)


class TestNextValue:

    def test_first_value_is_one_and_increments(self, sequences):
        assert sequences.next_value("widgets") == 1
        assert sequences.next_value("widgets") == 2
        assert sequences.current_value("widgets") == 2

    def test_counters_are_independent(self, sequences):
        sequences.next_value("a")
        sequences.next_value("a")

        assert sequences.next_value("b") == 1

    def test_unknown_counter_has_no_value(self, sequences):
        assert sequences.current_value("never-used") is None

    def test_rollback_returns_the_value(self, session, sequences):
        sequences.next_value("widgets")
        session.commit()
        sequences.next_value("widgets")
        session.rollback()

        assert sequences.next_value("widgets") == 2


class TestDocumentNumbers:

    def test_format_and_increment(self, sequences):
        day = datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)

        assert sequences.next_document_number("REQ", day) == "REQ-20240101-001"
        assert sequences.next_document_number("REQ", day) == "REQ-20240101-002"

    def test_counter_restarts_each_day(self, sequences):
        first = datetime(2024, 1, 1, tzinfo=timezone.utc)
        second = datetime(2024, 1, 2, tzinfo=timezone.utc)
        sequences.next_document_number("PO", first)
        sequences.next_document_number("PO", first)

        assert sequences.next_document_number("PO", second) == "PO-20240102-001"

    def test_prefixes_do_not_share_counters(self, sequences):
        day = datetime(2024, 3, 15, tzinfo=timezone.utc)
        sequences.next_document_number("GRN", day)

        assert sequences.next_document_number("BATCH", day) == "BATCH-20240315-001"
