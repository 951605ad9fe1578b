"""Integration tests for lifecycle atomicity on the Django store.

The tracking event, the Shipment Record update and the outbox message are
written in one transaction: when any step fails, none of them persist.
"""

from __future__ import annotations

import pytest

from modules.core.models import OutboxEvent
from modules.shipments.constants import ShipmentStatus
from modules.shipments.exceptions import DuplicateOrderError, InvalidTransitionError
from modules.shipments.models import Shipment, TrackingEvent
from modules.shipments.repositories.django_repository import ShipmentDjangoRepository

pytestmark = pytest.mark.integration


class TestLifecycleAtomicity:
    def test_create_writes_shipment_seed_event_and_outbox(
        self, django_service, shipment_dto
    ):
        shipment = django_service.create_shipment(shipment_dto())

        assert Shipment.objects.count() == 1
        seed = TrackingEvent.objects.get(shipment_id=shipment.id)
        assert seed.resulting_status == ShipmentStatus.PICKUP_PENDING
        assert OutboxEvent.objects.filter(event_type="ShipmentCreated").count() == 1

    def test_change_status_rolls_back_when_record_update_fails(
        self, django_service, shipment_dto, monkeypatch
    ):
        shipment = django_service.create_shipment(shipment_dto())
        events_before = TrackingEvent.objects.count()
        outbox_before = OutboxEvent.objects.count()

        def boom(self, shipment_id, status):
            raise RuntimeError("write failed")

        monkeypatch.setattr(ShipmentDjangoRepository, "update_status", boom)

        with pytest.raises(RuntimeError):
            django_service.change_status(shipment.id, ShipmentStatus.IN_TRANSIT)

        assert TrackingEvent.objects.count() == events_before
        assert OutboxEvent.objects.count() == outbox_before
        assert Shipment.objects.get(id=shipment.id).status == ShipmentStatus.PICKUP_PENDING

    def test_rejected_transition_writes_nothing(self, django_service, shipment_dto):
        shipment = django_service.create_shipment(shipment_dto())
        events_before = TrackingEvent.objects.count()

        with pytest.raises(InvalidTransitionError):
            django_service.change_status(shipment.id, ShipmentStatus.DELIVERED)

        assert TrackingEvent.objects.count() == events_before

    def test_duplicate_order_leaves_no_trace(self, django_service, shipment_dto):
        django_service.create_shipment(shipment_dto("ORD-1"))

        with pytest.raises(DuplicateOrderError):
            django_service.create_shipment(shipment_dto("ORD-1"))

        assert Shipment.objects.count() == 1
        assert TrackingEvent.objects.count() == 1

    def test_full_journey_keeps_status_in_sync_with_log(
        self, django_service, shipment_dto, partner
    ):
        shipment = django_service.create_shipment(shipment_dto())
        django_service.change_status(shipment.id, ShipmentStatus.IN_TRANSIT)
        django_service.reassign_courier(shipment.id, partner.id)
        django_service.record_location(shipment.id, "Memphis Hub")
        django_service.change_status(shipment.id, ShipmentStatus.OUT_FOR_DELIVERY)
        result = django_service.change_status(shipment.id, ShipmentStatus.DELIVERED)

        events = django_service.list_events(shipment.id)
        assert [e.sequence for e in events] == [1, 2, 3, 4, 5, 6]
        latest = [e for e in events if e.resulting_status][-1]
        assert result.shipment.status == latest.resulting_status == ShipmentStatus.DELIVERED
        assert [e.id for e in result.shipment.events.all()] == [e.id for e in events]
        assert OutboxEvent.objects.for_aggregate(shipment.id).count() == 6
