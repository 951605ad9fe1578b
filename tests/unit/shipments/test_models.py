"""Unit tests for shipment models: identifiers, append-only events, partners."""

from __future__ import annotations

import re
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError

from modules.shipments.constants import (
    STATUS_DISPLAY,
    AuthorRole,
    EventType,
    ShipmentStatus,
)
from modules.shipments.exceptions import ImmutableRecordError
from modules.shipments.models import Shipment, TrackingEvent

pytestmark = pytest.mark.unit


def _saved_shipment(**overrides) -> Shipment:
    data = {
        "shipment_number": Shipment.generate_shipment_number(),
        "order_id": "ORD-1",
        "tracking_number": Shipment.generate_tracking_number(),
        "origin": "Austin",
        "destination": "London",
    }
    data.update(overrides)
    return Shipment.objects.create(**data)


def _saved_event(shipment: Shipment) -> TrackingEvent:
    return TrackingEvent.objects.create(
        shipment=shipment,
        sequence=1,
        author="System",
        author_role=AuthorRole.SYSTEM,
        message="Label generated",
        event_type=EventType.INFO,
        resulting_status=ShipmentStatus.PICKUP_PENDING,
    )


class TestShipment:
    def test_shipment_number_format(self):
        assert re.fullmatch(r"SHP-\d{8}-[0-9A-F]{6}", Shipment.generate_shipment_number())

    def test_tracking_number_format(self):
        assert re.fullmatch(r"TRK\d{13,}\d{3}", Shipment.generate_tracking_number())

    def test_defaults_and_terminal_flag(self):
        shipment = _saved_shipment()

        assert shipment.status == ShipmentStatus.PICKUP_PENDING
        assert not shipment.is_terminal
        assert shipment.id.version == 7

        shipment.status = ShipmentStatus.RETURNED
        assert shipment.is_terminal

    def test_can_transition_to(self):
        shipment = Shipment(status=ShipmentStatus.EXCEPTION)
        assert shipment.can_transition_to(ShipmentStatus.IN_TRANSIT)
        assert not shipment.can_transition_to(ShipmentStatus.DELIVERED)


class TestTrackingEventIsAppendOnly:
    def test_saved_event_cannot_be_updated(self):
        event = _saved_event(_saved_shipment())
        event.message = "Rewritten history"

        with pytest.raises(ImmutableRecordError):
            event.save()

        event.refresh_from_db()
        assert event.message == "Label generated"

    def test_saved_event_cannot_be_deleted(self):
        event = _saved_event(_saved_shipment())

        with pytest.raises(ImmutableRecordError):
            event.delete()

    def test_bulk_update_and_delete_are_refused(self):
        _saved_event(_saved_shipment())

        with pytest.raises(ImmutableRecordError):
            TrackingEvent.objects.all().update(message="x")
        with pytest.raises(ImmutableRecordError):
            TrackingEvent.objects.filter(sequence=1).delete()
        assert TrackingEvent.objects.count() == 1

    def test_changes_status(self):
        event = _saved_event(_saved_shipment())
        assert event.changes_status
        assert not TrackingEvent(resulting_status=None).changes_status


class TestDeliveryPartner:
    def test_display_name(self, partner):
        assert partner.display_name == "FastShip / Marcus Lee"
        assert str(partner) == "FastShip / Marcus Lee"

    def test_rating_out_of_range_fails_validation(self, partner_factory):
        partner = partner_factory(rating=Decimal("5.5"))
        with pytest.raises(ValidationError):
            partner.full_clean()


def test_every_status_has_display_attributes():
    assert set(STATUS_DISPLAY) == set(ShipmentStatus.values)
    assert STATUS_DISPLAY[ShipmentStatus.OUT_FOR_DELIVERY].label == "Out for Delivery"
