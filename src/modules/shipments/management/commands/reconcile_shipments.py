from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from modules.shipments.exceptions import ShipmentNotFound
from modules.shipments.models import Shipment
from modules.shipments.repositories.django_repository import (
    DeliveryPartnerDjangoRepository,
    ShipmentDjangoRepository,
    TrackingEventDjangoLog,
)
from modules.shipments.services import ShipmentLifecycleService


class Command(BaseCommand):
    help = "Re-derive cached shipment statuses from their tracking events."

    def add_arguments(self, parser):
        parser.add_argument(
            "shipment_ids",
            nargs="*",
            help="Shipments to reconcile (default: all).",
        )

    def handle(self, *args, **options):
        service = ShipmentLifecycleService(
            shipment_repository=ShipmentDjangoRepository(),
            event_log=TrackingEventDjangoLog(),
            partner_repository=DeliveryPartnerDjangoRepository(),
        )

        shipment_ids = options["shipment_ids"] or list(
            Shipment.objects.order_by("created_at").values_list("id", flat=True)
        )
        self.stdout.write(f"Reconciling {len(shipment_ids)} shipment(s)...")

        repaired = 0
        for shipment_id in shipment_ids:
            try:
                changed = service.reconcile(shipment_id)
            except ShipmentNotFound as exc:
                raise CommandError(str(exc)) from exc
            if changed:
                repaired += 1
                self.stdout.write(f"  repaired {shipment_id}")

        self.stdout.write(
            self.style.SUCCESS(
                f"Reconcile completed: checked={len(shipment_ids)}, repaired={repaired}"
            )
        )
