from django.apps import AppConfig


class ShipmentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.shipments"
    label = "shipments"

    def ready(self) -> None:
        from modules.shipments.events import (
            CourierReassigned,
            ShipmentCreated,
            ShipmentLocationUpdated,
            ShipmentStatusChanged,
            TrackingNumberReassigned,
        )
        from modules.shipments.handlers import (
            courier_reassigned_handler,
            shipment_created_handler,
            shipment_location_updated_handler,
            shipment_status_changed_handler,
            tracking_number_reassigned_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(ShipmentCreated, shipment_created_handler)
        event_bus.subscribe(ShipmentStatusChanged, shipment_status_changed_handler)
        event_bus.subscribe(CourierReassigned, courier_reassigned_handler)
        event_bus.subscribe(TrackingNumberReassigned, tracking_number_reassigned_handler)
        event_bus.subscribe(ShipmentLocationUpdated, shipment_location_updated_handler)
