"""Domain events for the Shipments bounded context.

Order Management consumes these (fire-and-forget) to update order-level
fulfillment state.  Extra fields are plain strings so payloads stay
JSON-safe in the outbox.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class ShipmentCreated(DomainEvent):
    """Raised when a shipment is created for an order."""

    order_id: str
    tracking_number: str


@dataclass(frozen=True, kw_only=True)
class ShipmentStatusChanged(DomainEvent):
    """Raised when a shipment status changes."""

    order_id: str
    old_status: str
    new_status: str


@dataclass(frozen=True, kw_only=True)
class CourierReassigned(DomainEvent):
    """Raised when a shipment is handed to another delivery partner."""

    order_id: str
    partner_id: str
    previous_partner_id: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class TrackingNumberReassigned(DomainEvent):
    """Raised when a shipment receives a new tracking number."""

    order_id: str
    old_tracking_number: str
    new_tracking_number: str


@dataclass(frozen=True, kw_only=True)
class ShipmentLocationUpdated(DomainEvent):
    """Raised when a courier scan reports a new location."""

    order_id: str
    location: str
