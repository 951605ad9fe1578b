"""Shipment DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.shipments.constants import (
    STATUS_DISPLAY,
    AuthorRole,
    ShipmentStatus,
)
from modules.shipments.models import DeliveryPartner, Shipment, TrackingEvent

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CreateShipmentSerializer(serializers.Serializer):
    """Validates the shipment creation request payload."""

    order_id = serializers.CharField(max_length=64)
    origin = serializers.CharField(max_length=255)
    destination = serializers.CharField(max_length=255)
    customer_name = serializers.CharField(
        max_length=255, required=False, default="", allow_blank=True
    )
    seller_name = serializers.CharField(
        max_length=255, required=False, default="", allow_blank=True
    )
    courier = serializers.CharField(
        max_length=255, required=False, default="", allow_blank=True
    )
    tracking_number = serializers.CharField(
        max_length=64, required=False, allow_null=True, default=None
    )
    estimated_delivery = serializers.DateTimeField(required=False, allow_null=True)
    delivery_partner_id = serializers.UUIDField(required=False, allow_null=True)


class ActorSerializer(serializers.Serializer):
    """Optional author fields shared by every mutation payload.

    ``author`` defaults to the authenticated username and ``author_role``
    to ``SELLER``.
    """

    author = serializers.CharField(max_length=255, required=False, allow_blank=True)
    author_role = serializers.ChoiceField(choices=AuthorRole.choices, required=False)


class ChangeStatusSerializer(ActorSerializer):
    status = serializers.ChoiceField(choices=ShipmentStatus.choices)
    remarks = serializers.CharField(required=False, default="", allow_blank=True)


class ReassignCourierSerializer(ActorSerializer):
    partner_id = serializers.UUIDField()


class ReassignTrackingNumberSerializer(ActorSerializer):
    tracking_number = serializers.CharField(max_length=64)


class RecordLocationSerializer(ActorSerializer):
    location = serializers.CharField(max_length=255)
    remarks = serializers.CharField(required=False, default="", allow_blank=True)


class ShipmentSearchSerializer(serializers.Serializer):
    """Query parameters accepted by the shipment list endpoint."""

    status = serializers.ChoiceField(choices=ShipmentStatus.choices, required=False)
    courier = serializers.CharField(required=False, allow_blank=True)
    partner = serializers.UUIDField(required=False)
    q = serializers.CharField(required=False, allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class StatusDisplayField(serializers.Field):
    """Renders a status as ``{"label", "tone", "icon"}``."""

    def __init__(self, **kwargs):
        kwargs.setdefault("source", "status")
        kwargs["read_only"] = True
        super().__init__(**kwargs)

    def to_representation(self, value):
        display = STATUS_DISPLAY.get(value)
        return display._asdict() if display else None


class TrackingEventSerializer(serializers.ModelSerializer):
    """Read serializer for tracking events."""

    class Meta:
        model = TrackingEvent
        fields = [
            "id",
            "sequence",
            "occurred_at",
            "author",
            "author_role",
            "message",
            "event_type",
            "resulting_status",
            "location",
        ]
        read_only_fields = fields


class ShipmentSerializer(serializers.ModelSerializer):
    """Read serializer for shipments with the nested tracking history."""

    status_display = StatusDisplayField()
    events = TrackingEventSerializer(many=True, read_only=True)

    class Meta:
        model = Shipment
        fields = [
            "id",
            "shipment_number",
            "order_id",
            "tracking_number",
            "courier",
            "delivery_partner_id",
            "delivery_partner_name",
            "status",
            "status_display",
            "origin",
            "destination",
            "current_location",
            "customer_name",
            "seller_name",
            "estimated_delivery",
            "created_at",
            "updated_at",
            "events",
        ]
        read_only_fields = fields


class ShipmentListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for shipment lists (no nested events)."""

    status_display = StatusDisplayField()

    class Meta:
        model = Shipment
        fields = [
            "id",
            "shipment_number",
            "order_id",
            "tracking_number",
            "courier",
            "delivery_partner_name",
            "status",
            "status_display",
            "destination",
            "estimated_delivery",
            "created_at",
        ]
        read_only_fields = fields


class ShipmentSummarySerializer(serializers.Serializer):
    processing = serializers.IntegerField()
    in_transit = serializers.IntegerField()
    out_for_delivery = serializers.IntegerField()
    delivered = serializers.IntegerField()
    failed = serializers.IntegerField()
    total = serializers.IntegerField()
    avg_delivery_days = serializers.FloatField()


class DeliveryPartnerSerializer(serializers.ModelSerializer):
    """Read serializer for delivery partners."""

    class Meta:
        model = DeliveryPartner
        fields = [
            "id",
            "name",
            "provider",
            "display_name",
            "rating",
            "active_orders",
            "availability",
            "vehicle_type",
        ]
        read_only_fields = fields
