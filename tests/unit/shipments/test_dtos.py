"""Unit tests for shipment DTOs."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from modules.shipments.constants import AuthorRole
from modules.shipments.dtos import ActorDTO, CreateShipmentDTO, ShipmentSummaryDTO

pytestmark = pytest.mark.unit


class TestCreateShipmentDTO:
    def test_minimal_payload(self):
        dto = CreateShipmentDTO(order_id=" ORD-1 ", origin="Austin", destination="London")

        assert dto.order_id == "ORD-1"
        assert dto.tracking_number is None
        assert dto.estimated_delivery is None
        assert dto.delivery_partner_id is None

    @pytest.mark.parametrize("field", ["order_id", "origin", "destination"])
    def test_required_text_must_not_be_blank(self, field):
        data = {"order_id": "ORD-1", "origin": "Austin", "destination": "London"}
        data[field] = "   "

        with pytest.raises(ValidationError):
            CreateShipmentDTO(**data)

    def test_blank_tracking_number_means_generate(self):
        dto = CreateShipmentDTO(
            order_id="ORD-1", origin="A", destination="B", tracking_number="  "
        )
        assert dto.tracking_number is None

    def test_is_frozen(self):
        dto = CreateShipmentDTO(order_id="ORD-1", origin="A", destination="B")
        with pytest.raises(ValidationError):
            dto.order_id = "ORD-2"


class TestActorDTO:
    def test_defaults_to_seller(self):
        actor = ActorDTO(name="Acme Outdoors")
        assert actor.role == AuthorRole.SELLER

    def test_role_accepts_raw_value(self):
        actor = ActorDTO(name="Marcus", role="DELIVERY_PARTNER")
        assert actor.role == AuthorRole.DELIVERY_PARTNER

    def test_unknown_role_is_rejected(self):
        with pytest.raises(ValidationError):
            ActorDTO(name="Marcus", role="COURIER")

    def test_blank_name_is_rejected(self):
        with pytest.raises(ValidationError):
            ActorDTO(name="  ")

    def test_system_actor(self):
        actor = ActorDTO.system()
        assert actor.name == "System"
        assert actor.role == AuthorRole.SYSTEM


def test_summary_defaults_to_zero():
    summary = ShipmentSummaryDTO()
    assert summary.model_dump() == {
        "processing": 0,
        "in_transit": 0,
        "out_for_delivery": 0,
        "delivered": 0,
        "failed": 0,
        "total": 0,
        "avg_delivery_days": 0.0,
    }
