"""Shipment, TrackingEvent and DeliveryPartner models.

Business rules implemented:
- One shipment per order (``order_id`` unique, also checked by the service).
- ``tracking_number`` is unique across shipments.
- ``Shipment.status`` is a cached projection of the tracking log: it always
  equals the ``resulting_status`` of the latest status-bearing event.
- Tracking events are append-only: persisted rows refuse updates/deletes.
- Shipments are never deleted (logistics history is kept for audit).
- ``delivery_partner`` is a weak reference: the display name is
  denormalized on the shipment and survives partner removal.
"""

from __future__ import annotations

import secrets
import time
from decimal import Decimal
from typing import Any

import structlog
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.shipments.constants import (
    TERMINAL_STATES,
    AuthorRole,
    EventType,
    PartnerAvailability,
    ShipmentStatus,
    VehicleType,
)
from modules.shipments.exceptions import ImmutableRecordError
from modules.shipments.transitions import validate
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)


class DeliveryPartner(BaseModel):
    """Courier agent assignable to shipments."""

    name: models.CharField = models.CharField(max_length=255)
    provider: models.CharField = models.CharField(max_length=255)
    rating: models.DecimalField = models.DecimalField(
        max_digits=2,
        decimal_places=1,
        default=Decimal("0.0"),
        validators=[
            MinValueValidator(Decimal("0.0")),
            MaxValueValidator(Decimal("5.0")),
        ],
    )
    active_orders: models.PositiveIntegerField = models.PositiveIntegerField(
        default=0
    )
    availability: models.CharField = models.CharField(
        max_length=20,
        choices=PartnerAvailability.choices,
        default=PartnerAvailability.OFFLINE,
    )
    vehicle_type: models.CharField = models.CharField(
        max_length=20,
        choices=VehicleType.choices,
        default=VehicleType.VAN,
    )

    class Meta:
        db_table = "delivery_partners"
        ordering = ["provider", "name"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(rating__gte=0) & models.Q(rating__lte=5),
                name="delivery_partners_rating_range",
            ),
        ]

    @property
    def display_name(self) -> str:
        """``"<provider> / <name>"``, as shown on shipments."""
        return f"{self.provider} / {self.name}"

    def __str__(self) -> str:
        return self.display_name


class Shipment(DomainEventMixin, BaseModel):
    """Shipment aggregate root: one physical delivery for one order.

    ``shipment_number`` is a human-readable identifier
    (``SHP-YYYYMMDD-XXXXXX``); the UUIDv7 ``id`` is used for lookups.
    Mutations go exclusively through ``ShipmentLifecycleService``.
    """

    shipment_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    order_id: models.CharField = models.CharField(max_length=64, unique=True)
    tracking_number: models.CharField = models.CharField(max_length=64, unique=True)
    courier: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )
    delivery_partner: models.ForeignKey = models.ForeignKey(
        "shipments.DeliveryPartner",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="shipments",
    )
    delivery_partner_name: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=ShipmentStatus.choices,
        default=ShipmentStatus.PICKUP_PENDING,
    )
    origin: models.CharField = models.CharField(max_length=255)
    destination: models.CharField = models.CharField(max_length=255)
    current_location: models.CharField = models.CharField(  # noqa: DJ01
        max_length=255, null=True, blank=True
    )
    customer_name: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )
    seller_name: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )
    estimated_delivery: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )

    class Meta:
        db_table = "shipments"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["status"], name="shipments_status_idx"),
            models.Index(fields=["courier"], name="shipments_courier_idx"),
            models.Index(fields=["-created_at"], name="shipments_created_idx"),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the shipment is DELIVERED or RETURNED."""
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether transitioning to *new_status* is valid."""
        return validate(self.status, new_status).is_allowed

    # ------------------------------------------------------------------
    # Identifier generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_shipment_number() -> str:
        """Generate a human-readable shipment number: ``SHP-YYYYMMDD-XXXXXX``."""
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"SHP-{now:%Y%m%d}-{suffix}"

    @staticmethod
    def generate_tracking_number() -> str:
        """Generate a carrier-style tracking number: ``TRK<epoch-ms><3 digits>``."""
        return f"TRK{int(time.time() * 1000)}{secrets.randbelow(1000):03d}"

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.shipment_number} ({self.status})"


class AppendOnlyQuerySet(models.QuerySet):
    """QuerySet that refuses bulk updates and deletes."""

    def update(self, **kwargs: Any) -> int:
        raise ImmutableRecordError("Tracking events cannot be updated.")

    def delete(self) -> tuple[int, dict[str, int]]:
        raise ImmutableRecordError("Tracking events cannot be deleted.")


class TrackingEvent(BaseModel):
    """One immutable, timestamped fact in a shipment's history.

    Ordered by ``occurred_at`` then ``sequence`` (per-shipment insertion
    counter starting at 1), so events sharing a timestamp keep insertion
    order.  ``resulting_status`` is ``None`` for events that do not change
    the status (location updates, reassignments).
    """

    shipment: models.ForeignKey = models.ForeignKey(
        "shipments.Shipment",
        on_delete=models.CASCADE,
        related_name="events",
    )
    sequence: models.PositiveIntegerField = models.PositiveIntegerField()
    occurred_at: models.DateTimeField = models.DateTimeField(default=timezone.now)
    author: models.CharField = models.CharField(max_length=255)
    author_role: models.CharField = models.CharField(
        max_length=20,
        choices=AuthorRole.choices,
        default=AuthorRole.SYSTEM,
    )
    message: models.TextField = models.TextField()
    event_type: models.CharField = models.CharField(
        max_length=10,
        choices=EventType.choices,
        default=EventType.INFO,
    )
    resulting_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=ShipmentStatus.choices,
        null=True,
        blank=True,
    )
    location: models.CharField = models.CharField(  # noqa: DJ01
        max_length=255, null=True, blank=True
    )

    objects = AppendOnlyQuerySet.as_manager()

    class Meta:
        db_table = "tracking_events"
        ordering = ["occurred_at", "sequence"]
        constraints = [
            models.UniqueConstraint(
                fields=["shipment", "sequence"],
                name="tracking_events_shipment_sequence_uniq",
            ),
        ]
        indexes = [
            models.Index(
                fields=["shipment", "occurred_at"],
                name="te_shipment_occurred_idx",
            ),
        ]

    # ------------------------------------------------------------------
    # Persistence (append-only)
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            logger.warning("tracking_event.update_rejected", event_id=str(self.id))
            raise ImmutableRecordError(f"Tracking event {self.id} is immutable.")
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False) -> tuple[int, dict[str, int]]:
        raise ImmutableRecordError(f"Tracking event {self.id} is immutable.")

    @property
    def changes_status(self) -> bool:
        return self.resulting_status is not None

    def __str__(self) -> str:
        return f"#{self.sequence} {self.event_type}: {self.message}"
