"""Unit tests for the OutboxEvent model.

Covers:
- Creation defaults (PENDING, no retries, UUIDv7 id).
- JSON payload round-trip of a staged shipment event.
- mark_as_published() and mark_as_failed() transitions.
- Relay selection and per-aggregate lookups.
"""

from __future__ import annotations

import uuid

import pytest

from modules.core.models import EventStatus, OutboxEvent

pytestmark = pytest.mark.unit


def _make_event(**overrides) -> OutboxEvent:
    defaults = {
        "event_type": "ShipmentStatusChanged",
        "payload": {
            "aggregate_id": "0190a8c4-0000-7000-8000-000000000001",
            "order_id": "ORD-5503",
            "old_status": "PICKUP_PENDING",
            "new_status": "IN_TRANSIT",
        },
        "aggregate_id": "0190a8c4-0000-7000-8000-000000000001",
        "topic": "shipments",
    }
    defaults.update(overrides)
    return OutboxEvent.objects.create(**defaults)


class TestOutboxEventCreation:
    def test_create_event_with_defaults(self):
        event = _make_event()
        event.refresh_from_db()
        assert event.event_type == "ShipmentStatusChanged"
        assert event.topic == "shipments"
        assert event.status == EventStatus.PENDING
        assert event.processed_at is None
        assert event.error_message is None
        assert event.retry_count == 0

    def test_id_is_uuid7(self):
        event = _make_event()
        assert isinstance(event.id, uuid.UUID)
        assert event.id.version == 7

    def test_payload_persisted_and_retrieved(self):
        event = _make_event()
        event.refresh_from_db()
        assert event.payload["order_id"] == "ORD-5503"
        assert event.payload["new_status"] == "IN_TRANSIT"


class TestOutboxEventTransitions:
    def test_mark_as_published(self):
        event = _make_event()

        event.mark_as_published()
        event.refresh_from_db()

        assert event.status == EventStatus.PUBLISHED
        assert event.processed_at is not None

    def test_mark_as_failed_records_error_and_counts_retries(self):
        event = _make_event()

        event.mark_as_failed("Handler timeout")
        event.mark_as_failed("Handler crashed")
        event.refresh_from_db()

        assert event.status == EventStatus.FAILED
        assert event.error_message == "Handler crashed"
        assert event.retry_count == 2

    def test_str_representation(self):
        result = str(_make_event(aggregate_id="shipment-456"))
        assert "ShipmentStatusChanged" in result
        assert "PENDING" in result
        assert "shipment-456" in result


class TestOutboxQuerySet:
    def test_relayable_selects_pending_and_retryable_failures(self):
        pending = _make_event()
        retryable = _make_event(status=EventStatus.FAILED, retry_count=1)
        _make_event(status=EventStatus.FAILED, retry_count=5)
        _make_event(status=EventStatus.PUBLISHED)

        relayable = list(OutboxEvent.objects.relayable(max_retries=5))

        assert relayable == [pending, retryable]

    def test_for_aggregate_accepts_uuid(self):
        aggregate_id = uuid.UUID("0190a8c4-0000-7000-8000-000000000002")
        event = _make_event(aggregate_id=str(aggregate_id))
        _make_event()

        assert list(OutboxEvent.objects.for_aggregate(aggregate_id)) == [event]
