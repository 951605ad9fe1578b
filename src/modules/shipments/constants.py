"""Shipment domain constants.

Defines status choices, the legal status-transition graph, tracking event
classifications and the display lookup tables used by the API.
"""

from __future__ import annotations

from typing import NamedTuple

from django.db import models


class ShipmentStatus(models.TextChoices):
    PICKUP_PENDING = "PICKUP_PENDING", "Pickup Pending"
    IN_TRANSIT = "IN_TRANSIT", "In Transit"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY", "Out for Delivery"
    DELIVERED = "DELIVERED", "Delivered"
    RETURNED = "RETURNED", "Returned"
    EXCEPTION = "EXCEPTION", "Exception"


class AuthorRole(models.TextChoices):
    SELLER = "SELLER", "Seller"
    DELIVERY_PARTNER = "DELIVERY_PARTNER", "Delivery partner"
    SYSTEM = "SYSTEM", "System"


class EventType(models.TextChoices):
    INFO = "INFO", "Info"
    WARNING = "WARNING", "Warning"
    SUCCESS = "SUCCESS", "Success"


class PartnerAvailability(models.TextChoices):
    ONLINE = "ONLINE", "Online"
    OFFLINE = "OFFLINE", "Offline"
    ON_BREAK = "ON_BREAK", "On break"


class VehicleType(models.TextChoices):
    BIKE = "BIKE", "Bike"
    VAN = "VAN", "Van"
    TRUCK = "TRUCK", "Truck"


class RejectionReason(models.TextChoices):
    IDENTITY_TRANSITION = "identity transition", "Identity transition"
    TERMINAL_STATE = "terminal state", "Terminal state"
    NO_SUCH_EDGE = "no such edge", "No such edge"


VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    ShipmentStatus.PICKUP_PENDING: frozenset(
        {ShipmentStatus.IN_TRANSIT, ShipmentStatus.EXCEPTION, ShipmentStatus.RETURNED}
    ),
    ShipmentStatus.IN_TRANSIT: frozenset(
        {
            ShipmentStatus.OUT_FOR_DELIVERY,
            ShipmentStatus.EXCEPTION,
            ShipmentStatus.RETURNED,
        }
    ),
    ShipmentStatus.OUT_FOR_DELIVERY: frozenset(
        {ShipmentStatus.DELIVERED, ShipmentStatus.EXCEPTION, ShipmentStatus.RETURNED}
    ),
    ShipmentStatus.DELIVERED: frozenset(),
    ShipmentStatus.RETURNED: frozenset(),
    # An exception is either resolved back into transit or finalized as a return.
    ShipmentStatus.EXCEPTION: frozenset(
        {ShipmentStatus.IN_TRANSIT, ShipmentStatus.RETURNED}
    ),
}

TERMINAL_STATES: frozenset[str] = frozenset(
    {ShipmentStatus.DELIVERED, ShipmentStatus.RETURNED}
)

EVENT_TYPE_BY_STATUS: dict[str, str] = {
    ShipmentStatus.PICKUP_PENDING: EventType.INFO,
    ShipmentStatus.IN_TRANSIT: EventType.INFO,
    ShipmentStatus.OUT_FOR_DELIVERY: EventType.INFO,
    ShipmentStatus.DELIVERED: EventType.SUCCESS,
    ShipmentStatus.RETURNED: EventType.WARNING,
    ShipmentStatus.EXCEPTION: EventType.WARNING,
}

DEFAULT_STATUS_MESSAGES: dict[str, str] = {
    ShipmentStatus.PICKUP_PENDING: "Awaiting courier pickup",
    ShipmentStatus.IN_TRANSIT: "Package handed to courier",
    ShipmentStatus.OUT_FOR_DELIVERY: "Out for delivery",
    ShipmentStatus.DELIVERED: "Package delivered",
    ShipmentStatus.RETURNED: "Package returned to sender",
    ShipmentStatus.EXCEPTION: "Delivery exception reported",
}

SEED_EVENT_MESSAGE = "Label generated"
SYSTEM_AUTHOR = "System"


class StatusDisplay(NamedTuple):
    label: str
    tone: str
    icon: str


STATUS_DISPLAY: dict[str, StatusDisplay] = {
    ShipmentStatus.PICKUP_PENDING: StatusDisplay("Pickup Pending", "amber", "📦"),
    ShipmentStatus.IN_TRANSIT: StatusDisplay("In Transit", "blue", "🚚"),
    ShipmentStatus.OUT_FOR_DELIVERY: StatusDisplay("Out for Delivery", "purple", "📍"),
    ShipmentStatus.DELIVERED: StatusDisplay("Delivered", "green", "✓"),
    ShipmentStatus.RETURNED: StatusDisplay("Returned", "red", "↩️"),
    ShipmentStatus.EXCEPTION: StatusDisplay("Exception", "rose", "⚠️"),
}

# Dashboard buckets: RETURNED and EXCEPTION are both reported as failed.
SUMMARY_BUCKETS: dict[str, tuple[str, ...]] = {
    "processing": (ShipmentStatus.PICKUP_PENDING,),
    "in_transit": (ShipmentStatus.IN_TRANSIT,),
    "out_for_delivery": (ShipmentStatus.OUT_FOR_DELIVERY,),
    "delivered": (ShipmentStatus.DELIVERED,),
    "failed": (ShipmentStatus.RETURNED, ShipmentStatus.EXCEPTION),
}

SHIPMENT_NUMBER_MAX_RETRIES = 5
TRACKING_NUMBER_MAX_RETRIES = 5
