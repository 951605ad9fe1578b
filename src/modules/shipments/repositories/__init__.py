"""Shipment repositories package."""

from modules.shipments.repositories.django_repository import (
    DeliveryPartnerDjangoRepository,
    ShipmentDjangoRepository,
    TrackingEventDjangoLog,
)
from modules.shipments.repositories.interfaces import (
    IDeliveryPartnerRepository,
    IShipmentRepository,
    ITrackingEventLog,
)

__all__ = [
    "DeliveryPartnerDjangoRepository",
    "IDeliveryPartnerRepository",
    "IShipmentRepository",
    "ITrackingEventLog",
    "ShipmentDjangoRepository",
    "TrackingEventDjangoLog",
]
