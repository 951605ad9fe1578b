"""Django ORM implementation of the shipment repositories.

Satisfies ``IShipmentRepository``, ``ITrackingEventLog`` and
``IDeliveryPartnerRepository`` using Django's QuerySet API.

Concurrency control relies on ``select_for_update()`` on the shipment row
(no ``version`` field exists on the model): every mutation of a shipment
and every append to its tracking log first locks that row, so writers on
the same shipment are serialized while different shipments never contend.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Dict, Iterator, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Count, Max, Q, QuerySet
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.shipments.constants import (
    SHIPMENT_NUMBER_MAX_RETRIES,
    ShipmentStatus,
)
from modules.shipments.exceptions import (
    DuplicateOrderError,
    DuplicateTrackingNumber,
    ShipmentNotFound,
)
from modules.shipments.models import DeliveryPartner, Shipment, TrackingEvent
from modules.shipments.repositories.interfaces import (
    IDeliveryPartnerRepository,
    IShipmentRepository,
    ITrackingEventLog,
)
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)

OUTBOX_TOPIC = "shipments"


def _lock_shipment(shipment_id: Any) -> Optional[Shipment]:
    """``SELECT ... FOR UPDATE`` on a shipment row; ``None`` if unknown/invalid."""
    try:
        return (
            Shipment.objects.select_for_update()
            .filter(id=shipment_id)
            .first()
        )
    except (ValueError, ValidationError):
        return None


class ShipmentDjangoRepository(IShipmentRepository):
    """Concrete Shipment repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def atomic(self):
        return transaction.atomic()

    @contextmanager
    def locked(self, shipment_id: Any) -> Iterator[Shipment]:
        """Open a transaction and hold the shipment row lock until it ends."""
        with transaction.atomic():
            shipment = _lock_shipment(shipment_id)
            if shipment is None:
                raise ShipmentNotFound(f"Shipment {shipment_id} not found.")
            yield shipment

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Shipment:
        """Insert a new shipment in ``PICKUP_PENDING``.

        Generated identifiers (shipment number, tracking number) are
        retried on collision.  A uniqueness violation on ``order_id`` or on
        a caller-supplied tracking number is translated into the matching
        domain conflict.
        """
        order_id = data["order_id"]
        supplied_tracking = data.get("tracking_number")

        if Shipment.objects.filter(order_id=order_id).exists():
            raise DuplicateOrderError(f"Order {order_id} already has a shipment.")
        if supplied_tracking and self.get_by_tracking_number(supplied_tracking):
            raise DuplicateTrackingNumber(
                f"Tracking number {supplied_tracking} is already in use."
            )

        partner = data.get("delivery_partner")
        for attempt in range(1, SHIPMENT_NUMBER_MAX_RETRIES + 1):
            shipment = Shipment(
                shipment_number=Shipment.generate_shipment_number(),
                order_id=order_id,
                tracking_number=supplied_tracking
                or Shipment.generate_tracking_number(),
                courier=data.get("courier", ""),
                delivery_partner=partner,
                delivery_partner_name=data.get("delivery_partner_name", ""),
                status=ShipmentStatus.PICKUP_PENDING,
                origin=data["origin"],
                destination=data["destination"],
                customer_name=data.get("customer_name", ""),
                seller_name=data.get("seller_name", ""),
                estimated_delivery=data.get("estimated_delivery"),
            )
            try:
                with transaction.atomic():
                    shipment.save()
            except IntegrityError:
                if Shipment.objects.filter(order_id=order_id).exists():
                    raise DuplicateOrderError(
                        f"Order {order_id} already has a shipment."
                    ) from None
                if supplied_tracking and self.get_by_tracking_number(
                    supplied_tracking
                ):
                    raise DuplicateTrackingNumber(
                        f"Tracking number {supplied_tracking} is already in use."
                    ) from None
                if attempt == SHIPMENT_NUMBER_MAX_RETRIES:
                    raise
                logger.warning(
                    "shipment.identifier_collision",
                    order_id=order_id,
                    attempt=attempt,
                )
                continue
            break

        logger.info(
            "shipment.persisted",
            shipment_id=str(shipment.id),
            shipment_number=shipment.shipment_number,
            order_id=order_id,
        )
        return shipment

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def _update(self, shipment_id: Any, **values: Any) -> None:
        values["updated_at"] = timezone.now()
        updated = Shipment.objects.filter(id=shipment_id).update(**values)
        if not updated:
            raise ShipmentNotFound(f"Shipment {shipment_id} not found.")

    def update_status(self, shipment_id: Any, status: str) -> None:
        self._update(shipment_id, status=status)

    @transaction.atomic
    def update_tracking_number(self, shipment_id: Any, tracking_number: str) -> None:
        clash = (
            Shipment.objects.filter(tracking_number__iexact=tracking_number)
            .exclude(id=shipment_id)
            .exists()
        )
        if clash:
            raise DuplicateTrackingNumber(
                f"Tracking number {tracking_number} is already in use."
            )
        try:
            with transaction.atomic():
                self._update(shipment_id, tracking_number=tracking_number)
        except IntegrityError:
            raise DuplicateTrackingNumber(
                f"Tracking number {tracking_number} is already in use."
            ) from None

    def update_courier(self, shipment_id: Any, partner: DeliveryPartner) -> None:
        self._update(
            shipment_id,
            delivery_partner=partner,
            delivery_partner_name=partner.display_name,
            courier=partner.provider,
        )

    def update_location(self, shipment_id: Any, location: str) -> None:
        self._update(shipment_id, current_location=location)

    def record_domain_events(self, events: List[DomainEvent]) -> None:
        """Write one ``OutboxEvent`` per domain event in the open transaction."""
        for event in events:
            OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=event.to_payload(),
                topic=OUTBOX_TOPIC,
            )
        if events:
            logger.info("shipment.events_staged", event_count=len(events))

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _queryset(self) -> QuerySet:
        return Shipment.objects.select_related("delivery_partner").prefetch_related(
            "events"
        )

    def get_by_id(self, id: Any) -> Optional[Shipment]:
        """Retrieve a shipment with its partner and tracking events.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return self._queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_order_id(self, order_id: str) -> Optional[Shipment]:
        return self._queryset().filter(order_id=order_id).first()

    def get_by_tracking_number(self, tracking_number: str) -> Optional[Shipment]:
        return (
            self._queryset()
            .filter(tracking_number__iexact=tracking_number.strip())
            .first()
        )

    def search(
        self,
        status: Optional[str] = None,
        courier: Optional[str] = None,
        query: Optional[str] = None,
        partner_id: Optional[Any] = None,
    ) -> QuerySet:
        queryset = Shipment.objects.select_related("delivery_partner")
        if status:
            queryset = queryset.filter(status=status)
        if courier:
            queryset = queryset.filter(courier__iexact=courier)
        if query:
            queryset = queryset.filter(
                Q(tracking_number__icontains=query) | Q(order_id__icontains=query)
            )
        if partner_id:
            queryset = queryset.filter(delivery_partner_id=partner_id)
        return queryset.order_by("-created_at", "-id")

    def count_by_status(self) -> Dict[str, int]:
        rows = Shipment.objects.order_by().values("status").annotate(total=Count("id"))
        return {row["status"]: row["total"] for row in rows}

    def distinct_couriers(self) -> List[str]:
        return list(
            Shipment.objects.exclude(courier="")
            .order_by("courier")
            .values_list("courier", flat=True)
            .distinct()
        )

    def delivery_durations(self) -> List[timedelta]:
        rows = (
            TrackingEvent.objects.filter(
                resulting_status=ShipmentStatus.DELIVERED,
                shipment__status=ShipmentStatus.DELIVERED,
            )
            .order_by()
            .values("shipment_id", "shipment__created_at")
            .annotate(delivered_at=Max("occurred_at"))
        )
        return [row["delivered_at"] - row["shipment__created_at"] for row in rows]


class TrackingEventDjangoLog(ITrackingEventLog):
    """Append-only tracking log backed by the ``tracking_events`` table."""

    @transaction.atomic
    def append(self, shipment_id: Any, data: Dict[str, Any]) -> TrackingEvent:
        """Append an event under the shipment row lock.

        The lock makes ``Max(sequence) + 1`` safe against concurrent
        appenders.  ``occurred_at`` never precedes the previous event so the
        (occurred_at, sequence) order always matches insertion order.
        """
        shipment = _lock_shipment(shipment_id)
        if shipment is None:
            raise ShipmentNotFound(f"Shipment {shipment_id} not found.")

        last = (
            TrackingEvent.objects.filter(shipment=shipment)
            .order_by("-sequence")
            .first()
        )
        occurred_at = timezone.now()
        if last is not None and last.occurred_at > occurred_at:
            occurred_at = last.occurred_at

        event = TrackingEvent(
            shipment=shipment,
            sequence=(last.sequence if last else 0) + 1,
            occurred_at=occurred_at,
            author=data["author"],
            author_role=data["author_role"],
            message=data["message"],
            event_type=data["event_type"],
            resulting_status=data.get("resulting_status"),
            location=data.get("location"),
        )
        event.save()

        logger.info(
            "tracking_event.appended",
            shipment_id=str(shipment.id),
            sequence=event.sequence,
            event_type=event.event_type,
            resulting_status=event.resulting_status,
        )
        return event

    def list_for_shipment(self, shipment_id: Any) -> List[TrackingEvent]:
        try:
            return list(
                TrackingEvent.objects.filter(shipment_id=shipment_id).order_by(
                    "occurred_at", "sequence"
                )
            )
        except (ValueError, ValidationError):
            return []

    def latest_status_event(self, shipment_id: Any) -> Optional[TrackingEvent]:
        try:
            return (
                TrackingEvent.objects.filter(
                    shipment_id=shipment_id, resulting_status__isnull=False
                )
                .order_by("-occurred_at", "-sequence")
                .first()
            )
        except (ValueError, ValidationError):
            return None


class DeliveryPartnerDjangoRepository(IDeliveryPartnerRepository):
    """Delivery partner lookups backed by Django ORM."""

    def get_by_id(self, id: Any) -> Optional[DeliveryPartner]:
        try:
            return DeliveryPartner.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = DeliveryPartner.objects.all()
        filters = filters or {}
        if filters.get("availability"):
            queryset = queryset.filter(availability=filters["availability"])
        if filters.get("provider"):
            queryset = queryset.filter(provider__iexact=filters["provider"])
        if filters.get("vehicle_type"):
            queryset = queryset.filter(vehicle_type=filters["vehicle_type"])
        return queryset
