"""Unit tests for ShipmentQueryService over the in-memory store."""

from __future__ import annotations

import pytest
from freezegun import freeze_time

from modules.shipments.constants import PartnerAvailability, ShipmentStatus

pytestmark = pytest.mark.unit


@pytest.fixture()
def seeded(memory_service, shipment_dto):
    """Five shipments spread over the dashboard buckets."""
    pending = memory_service.create_shipment(
        shipment_dto("ORD-5503", tracking_number="TRK1001", courier="FastShip")
    )
    transit = memory_service.create_shipment(
        shipment_dto("ORD-5504", tracking_number="TRK2002", courier="SwiftWay")
    )
    memory_service.change_status(transit.id, ShipmentStatus.IN_TRANSIT)
    delivered = memory_service.create_shipment(
        shipment_dto("ORD-7700", tracking_number="TRK3003", courier="FastShip")
    )
    for status in (
        ShipmentStatus.IN_TRANSIT,
        ShipmentStatus.OUT_FOR_DELIVERY,
        ShipmentStatus.DELIVERED,
    ):
        memory_service.change_status(delivered.id, status)
    returned = memory_service.create_shipment(
        shipment_dto("ORD-7701", tracking_number="TRK4004", courier="")
    )
    memory_service.change_status(returned.id, ShipmentStatus.RETURNED)
    stuck = memory_service.create_shipment(
        shipment_dto("ORD-7702", tracking_number="TRK5005", courier="fastship")
    )
    memory_service.change_status(stuck.id, ShipmentStatus.EXCEPTION)
    return {
        "pending": pending,
        "transit": transit,
        "delivered": delivered,
        "returned": returned,
        "stuck": stuck,
    }


class TestSearch:
    def test_no_filters_returns_everything_newest_first(self, memory_queries, seeded):
        results = list(memory_queries.search())
        assert [s.order_id for s in results] == [
            "ORD-7702",
            "ORD-7701",
            "ORD-7700",
            "ORD-5504",
            "ORD-5503",
        ]

    def test_query_matches_tracking_number_or_order_id(self, memory_queries, seeded):
        assert [s.order_id for s in memory_queries.search(query="trk2")] == ["ORD-5504"]
        assert [s.order_id for s in memory_queries.search(query="ord-55")] == [
            "ORD-5504",
            "ORD-5503",
        ]

    def test_filters_combine_with_and(self, memory_queries, seeded):
        results = memory_queries.search(
            status=ShipmentStatus.PICKUP_PENDING, courier="fastship", query="5503"
        )
        assert [s.order_id for s in results] == ["ORD-5503"]

        assert list(
            memory_queries.search(status=ShipmentStatus.DELIVERED, courier="SwiftWay")
        ) == []

    def test_courier_is_case_insensitive(self, memory_queries, seeded):
        results = memory_queries.search(courier="FASTSHIP")
        assert [s.order_id for s in results] == ["ORD-7702", "ORD-7700", "ORD-5503"]

    def test_blank_filters_are_ignored(self, memory_queries, seeded):
        assert len(list(memory_queries.search(status="", courier="  ", query=""))) == 5

    def test_search_by_partner(
        self, memory_service, memory_queries, memory_store, shipment_dto, partner_factory
    ):
        partner = memory_store.add_partner(partner_factory())
        assigned = memory_service.create_shipment(
            shipment_dto("ORD-1", delivery_partner_id=partner.id)
        )
        memory_service.create_shipment(shipment_dto("ORD-2"))

        results = list(memory_queries.search(partner_id=partner.id))
        assert [s.id for s in results] == [assigned.id]


class TestSummary:
    def test_buckets(self, memory_queries, seeded):
        summary = memory_queries.summary()

        assert summary.processing == 1
        assert summary.in_transit == 1
        assert summary.out_for_delivery == 0
        assert summary.delivered == 1
        assert summary.failed == 2
        assert summary.total == 5

    def test_empty_store(self, memory_queries):
        summary = memory_queries.summary()
        assert summary.total == 0
        assert summary.avg_delivery_days == 0.0

    def test_avg_delivery_days_ignores_undelivered(
        self, memory_service, memory_queries, shipment_dto
    ):
        with freeze_time("2025-06-01 09:00:00") as frozen:
            fast = memory_service.create_shipment(shipment_dto("ORD-1"))
            slow = memory_service.create_shipment(shipment_dto("ORD-2"))
            pending = memory_service.create_shipment(shipment_dto("ORD-3"))
            for shipment in (fast, slow):
                memory_service.change_status(shipment.id, ShipmentStatus.IN_TRANSIT)
                memory_service.change_status(
                    shipment.id, ShipmentStatus.OUT_FOR_DELIVERY
                )
            memory_service.change_status(pending.id, ShipmentStatus.IN_TRANSIT)

            frozen.move_to("2025-06-03 09:00:00")
            memory_service.change_status(fast.id, ShipmentStatus.DELIVERED)
            frozen.move_to("2025-06-06 09:00:00")
            memory_service.change_status(slow.id, ShipmentStatus.DELIVERED)

        assert memory_queries.summary().avg_delivery_days == 3.5


def test_couriers_are_sorted_and_distinct(memory_queries, seeded):
    assert memory_queries.couriers() == ["FastShip", "SwiftWay", "fastship"]


def test_list_partners_by_availability(memory_queries, memory_store, partner_factory):
    memory_store.add_partner(partner_factory(name="Ana"))
    memory_store.add_partner(
        partner_factory(name="Bob", availability=PartnerAvailability.ON_BREAK)
    )

    assert [p.name for p in memory_queries.list_partners()] == ["Ana", "Bob"]
    assert [
        p.name for p in memory_queries.list_partners(PartnerAvailability.ON_BREAK)
    ] == ["Bob"]
