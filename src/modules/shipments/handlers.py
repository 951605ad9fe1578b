"""Event handlers for Shipments domain events.

Order Management owns the reaction to these events; inside this service
the handlers only leave an audit trail in the logs.
"""

from __future__ import annotations

import structlog

from modules.shipments.events import (
    CourierReassigned,
    ShipmentCreated,
    ShipmentLocationUpdated,
    ShipmentStatusChanged,
    TrackingNumberReassigned,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class ShipmentCreatedHandler(IEventHandler[ShipmentCreated]):
    def handle(self, event: ShipmentCreated) -> None:
        logger.info(
            "shipment.event.created",
            shipment_id=str(event.aggregate_id),
            order_id=event.order_id,
            tracking_number=event.tracking_number,
        )


class ShipmentStatusChangedHandler(IEventHandler[ShipmentStatusChanged]):
    def handle(self, event: ShipmentStatusChanged) -> None:
        logger.info(
            "shipment.event.status_changed",
            shipment_id=str(event.aggregate_id),
            order_id=event.order_id,
            old_status=event.old_status,
            new_status=event.new_status,
        )


class CourierReassignedHandler(IEventHandler[CourierReassigned]):
    def handle(self, event: CourierReassigned) -> None:
        logger.info(
            "shipment.event.courier_reassigned",
            shipment_id=str(event.aggregate_id),
            partner_id=event.partner_id,
            previous_partner_id=event.previous_partner_id,
        )


class TrackingNumberReassignedHandler(IEventHandler[TrackingNumberReassigned]):
    def handle(self, event: TrackingNumberReassigned) -> None:
        logger.info(
            "shipment.event.tracking_number_reassigned",
            shipment_id=str(event.aggregate_id),
            old_tracking_number=event.old_tracking_number,
            new_tracking_number=event.new_tracking_number,
        )


class ShipmentLocationUpdatedHandler(IEventHandler[ShipmentLocationUpdated]):
    def handle(self, event: ShipmentLocationUpdated) -> None:
        logger.info(
            "shipment.event.location_updated",
            shipment_id=str(event.aggregate_id),
            location=event.location,
        )


shipment_created_handler = ShipmentCreatedHandler()
shipment_status_changed_handler = ShipmentStatusChangedHandler()
courier_reassigned_handler = CourierReassignedHandler()
tracking_number_reassigned_handler = TrackingNumberReassignedHandler()
shipment_location_updated_handler = ShipmentLocationUpdatedHandler()
