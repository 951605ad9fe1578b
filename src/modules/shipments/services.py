"""Shipment service layer (Use Cases).

``ShipmentLifecycleService`` is the only entry point that mutates
shipments.  Each mutation runs inside ``IShipmentRepository.locked()``:
the shipment is locked and loaded, the request is validated, then the new
tracking event and the updated Shipment Record are written in the same
unit of work.  If any step raises, nothing is persisted.

Business rules enforced:
- One shipment per order.
- Status changes follow the transition graph (``transitions.validate``).
- ``Shipment.status`` always equals the ``resulting_status`` of the latest
  status-bearing tracking event.
- Shipments in a terminal state (DELIVERED, RETURNED) accept no further
  status change, courier change, tracking-number change or location scan.

Domain events are staged through ``record_domain_events`` inside the unit
of work (transactional outbox) and relayed to the event bus by the
``core.relay_outbox`` task.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog
from django.conf import settings
from django.utils import timezone

from modules.shipments.constants import (
    DEFAULT_STATUS_MESSAGES,
    EVENT_TYPE_BY_STATUS,
    SEED_EVENT_MESSAGE,
    EventType,
    ShipmentStatus,
)
from modules.shipments.dtos import ActorDTO
from modules.shipments.events import (
    CourierReassigned,
    ShipmentCreated,
    ShipmentLocationUpdated,
    ShipmentStatusChanged,
    TrackingNumberReassigned,
)
from modules.shipments.exceptions import (
    DeliveryPartnerNotFound,
    DuplicateOrderError,
    InvalidTransitionError,
    ShipmentNotFound,
    TerminalStateError,
)
from modules.shipments.transitions import validate

if TYPE_CHECKING:
    from modules.shipments.dtos import CreateShipmentDTO
    from modules.shipments.models import Shipment, TrackingEvent
    from modules.shipments.repositories.interfaces import (
        IDeliveryPartnerRepository,
        IShipmentRepository,
        ITrackingEventLog,
    )

logger = structlog.get_logger(__name__)

DEFAULT_TRANSIT_DAYS = 5


@dataclass(frozen=True)
class ShipmentMutation:
    """Outcome of a lifecycle mutation.

    ``event`` is ``None`` when the request was a no-op (e.g. reassigning
    the tracking number the shipment already holds).
    """

    shipment: Shipment
    event: Optional[TrackingEvent]


class ShipmentLifecycleService:
    """Application service for shipment use-cases.

    Receives repositories via constructor injection (DIP).
    """

    def __init__(
        self,
        shipment_repository: IShipmentRepository,
        event_log: ITrackingEventLog,
        partner_repository: IDeliveryPartnerRepository,
    ) -> None:
        self._shipment_repo = shipment_repository
        self._event_log = event_log
        self._partner_repo = partner_repository

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_shipment(self, dto: CreateShipmentDTO) -> Shipment:
        """Create a shipment in ``PICKUP_PENDING`` with its seed event.

        Raises:
            DuplicateOrderError: the order already has a shipment.
            DuplicateTrackingNumber: the supplied tracking number is taken.
            DeliveryPartnerNotFound: ``delivery_partner_id`` is unknown.
        """
        log = logger.bind(order_id=dto.order_id)
        log.info("shipment.creation_started")

        if self._shipment_repo.get_by_order_id(dto.order_id):
            log.warning("shipment.duplicate_order")
            raise DuplicateOrderError(f"Order {dto.order_id} already has a shipment.")

        data: Dict[str, Any] = dto.model_dump(exclude={"delivery_partner_id"})
        if dto.estimated_delivery is None:
            transit_days = getattr(
                settings, "SHIPMENT_DEFAULT_TRANSIT_DAYS", DEFAULT_TRANSIT_DAYS
            )
            data["estimated_delivery"] = timezone.now() + timedelta(days=transit_days)

        if dto.delivery_partner_id:
            partner = self._partner_repo.get_by_id(dto.delivery_partner_id)
            if partner is None:
                raise DeliveryPartnerNotFound(
                    f"Delivery partner {dto.delivery_partner_id} not found."
                )
            data["delivery_partner"] = partner
            data["delivery_partner_name"] = partner.display_name
            data["courier"] = dto.courier or partner.provider

        with self._shipment_repo.atomic():
            shipment = self._shipment_repo.create(data)
            self._event_log.append(
                shipment.id,
                self._event_data(
                    ActorDTO.system(),
                    SEED_EVENT_MESSAGE,
                    EventType.INFO,
                    resulting_status=ShipmentStatus.PICKUP_PENDING,
                ),
            )
            shipment.add_domain_event(
                ShipmentCreated(
                    aggregate_id=shipment.id,
                    order_id=shipment.order_id,
                    tracking_number=shipment.tracking_number,
                )
            )
            self._flush_events(shipment)

        log.info(
            "shipment.created",
            shipment_id=str(shipment.id),
            shipment_number=shipment.shipment_number,
            tracking_number=shipment.tracking_number,
        )
        return self.get_shipment(shipment.id)

    def change_status(
        self,
        shipment_id: Any,
        requested_status: str,
        remarks: str = "",
        actor: Optional[ActorDTO] = None,
    ) -> ShipmentMutation:
        """Move a shipment to *requested_status*.

        The event type is derived from the target status (DELIVERED is a
        SUCCESS, EXCEPTION and RETURNED are WARNINGs).  Without *remarks*
        a default message for the target status is recorded.

        Raises:
            ShipmentNotFound: shipment does not exist.
            InvalidTransitionError: the graph rejects the change; ``reason``
                is ``identity transition``, ``terminal state`` or
                ``no such edge``.  Nothing is written.
        """
        actor = actor or ActorDTO.system()

        with self._shipment_repo.locked(shipment_id) as shipment:
            old_status = shipment.status
            log = logger.bind(
                shipment_id=str(shipment.id),
                current_status=old_status,
                new_status=requested_status,
            )

            decision = validate(old_status, requested_status)
            if not decision.is_allowed:
                log.warning("shipment.invalid_transition", reason=str(decision.reason))
                raise InvalidTransitionError(
                    decision.reason, current=old_status, requested=requested_status
                )

            event = self._event_log.append(
                shipment.id,
                self._event_data(
                    actor,
                    remarks.strip() or DEFAULT_STATUS_MESSAGES[requested_status],
                    EVENT_TYPE_BY_STATUS[requested_status],
                    resulting_status=requested_status,
                ),
            )
            self._shipment_repo.update_status(shipment.id, requested_status)
            shipment.add_domain_event(
                ShipmentStatusChanged(
                    aggregate_id=shipment.id,
                    order_id=shipment.order_id,
                    old_status=old_status,
                    new_status=requested_status,
                )
            )
            self._flush_events(shipment)

        log.info("shipment.status_changed", author=actor.name, role=actor.role)
        return ShipmentMutation(self.get_shipment(shipment.id), event)

    def reassign_courier(
        self,
        shipment_id: Any,
        partner_id: Any,
        actor: Optional[ActorDTO] = None,
    ) -> ShipmentMutation:
        """Hand the shipment to another delivery partner; status is unchanged.

        Raises:
            ShipmentNotFound: shipment does not exist.
            TerminalStateError: shipment is DELIVERED or RETURNED.
            DeliveryPartnerNotFound: *partner_id* is unknown.
        """
        actor = actor or ActorDTO.system()

        with self._shipment_repo.locked(shipment_id) as shipment:
            self._ensure_not_terminal(shipment, "courier cannot be reassigned")

            partner = self._partner_repo.get_by_id(partner_id)
            if partner is None:
                raise DeliveryPartnerNotFound(f"Delivery partner {partner_id} not found.")

            previous_partner_id = shipment.delivery_partner_id
            if previous_partner_id == partner.id:
                logger.info(
                    "shipment.courier_unchanged",
                    shipment_id=str(shipment.id),
                    partner_id=str(partner.id),
                )
                return ShipmentMutation(self.get_shipment(shipment.id), None)

            event = self._event_log.append(
                shipment.id,
                self._event_data(
                    actor,
                    f"Courier reassigned to {partner.display_name}",
                    EventType.INFO,
                ),
            )
            self._shipment_repo.update_courier(shipment.id, partner)
            shipment.add_domain_event(
                CourierReassigned(
                    aggregate_id=shipment.id,
                    order_id=shipment.order_id,
                    partner_id=str(partner.id),
                    previous_partner_id=(
                        str(previous_partner_id) if previous_partner_id else None
                    ),
                )
            )
            self._flush_events(shipment)

        logger.info(
            "shipment.courier_reassigned",
            shipment_id=str(shipment.id),
            partner_id=str(partner.id),
            author=actor.name,
        )
        return ShipmentMutation(self.get_shipment(shipment.id), event)

    def reassign_tracking_number(
        self,
        shipment_id: Any,
        new_tracking_number: str,
        actor: Optional[ActorDTO] = None,
    ) -> ShipmentMutation:
        """Replace the tracking number; status is unchanged.

        Raises:
            ValueError: the new tracking number is blank.
            ShipmentNotFound: shipment does not exist.
            TerminalStateError: shipment is DELIVERED or RETURNED.
            DuplicateTrackingNumber: another shipment holds the number.
        """
        actor = actor or ActorDTO.system()
        new_tracking_number = new_tracking_number.strip().upper()
        if not new_tracking_number:
            raise ValueError("Tracking number must not be blank.")

        with self._shipment_repo.locked(shipment_id) as shipment:
            self._ensure_not_terminal(shipment, "tracking number cannot be changed")

            old_tracking_number = shipment.tracking_number
            if old_tracking_number.upper() == new_tracking_number:
                logger.info(
                    "shipment.tracking_number_unchanged",
                    shipment_id=str(shipment.id),
                )
                return ShipmentMutation(self.get_shipment(shipment.id), None)

            self._shipment_repo.update_tracking_number(shipment.id, new_tracking_number)
            event = self._event_log.append(
                shipment.id,
                self._event_data(
                    actor,
                    f"Tracking number changed from {old_tracking_number} "
                    f"to {new_tracking_number}",
                    EventType.INFO,
                ),
            )
            shipment.add_domain_event(
                TrackingNumberReassigned(
                    aggregate_id=shipment.id,
                    order_id=shipment.order_id,
                    old_tracking_number=old_tracking_number,
                    new_tracking_number=new_tracking_number,
                )
            )
            self._flush_events(shipment)

        logger.info(
            "shipment.tracking_number_reassigned",
            shipment_id=str(shipment.id),
            old_tracking_number=old_tracking_number,
            new_tracking_number=new_tracking_number,
        )
        return ShipmentMutation(self.get_shipment(shipment.id), event)

    def record_location(
        self,
        shipment_id: Any,
        location: str,
        remarks: str = "",
        actor: Optional[ActorDTO] = None,
    ) -> ShipmentMutation:
        """Record a courier scan at *location* without changing the status.

        Raises:
            ValueError: *location* is blank.
            ShipmentNotFound: shipment does not exist.
            TerminalStateError: shipment is DELIVERED or RETURNED.
        """
        actor = actor or ActorDTO.system()
        location = location.strip()
        if not location:
            raise ValueError("Location must not be blank.")

        with self._shipment_repo.locked(shipment_id) as shipment:
            self._ensure_not_terminal(shipment, "location cannot be updated")

            event = self._event_log.append(
                shipment.id,
                self._event_data(
                    actor,
                    remarks.strip() or f"Scanned at {location}",
                    EventType.INFO,
                    location=location,
                ),
            )
            self._shipment_repo.update_location(shipment.id, location)
            shipment.add_domain_event(
                ShipmentLocationUpdated(
                    aggregate_id=shipment.id,
                    order_id=shipment.order_id,
                    location=location,
                )
            )
            self._flush_events(shipment)

        logger.info(
            "shipment.location_recorded", shipment_id=str(shipment.id), location=location
        )
        return ShipmentMutation(self.get_shipment(shipment.id), event)

    def reconcile(self, shipment_id: Any) -> bool:
        """Re-derive the cached status from the tracking log (read repair).

        Returns ``True`` when the cached status was stale and got rewritten.

        Raises:
            ShipmentNotFound: shipment does not exist.
        """
        with self._shipment_repo.locked(shipment_id) as shipment:
            latest = self._event_log.latest_status_event(shipment.id)
            if latest is None or latest.resulting_status == shipment.status:
                return False
            self._shipment_repo.update_status(shipment.id, latest.resulting_status)

        logger.warning(
            "shipment.status_repaired",
            shipment_id=str(shipment.id),
            cached_status=shipment.status,
            derived_status=latest.resulting_status,
        )
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_shipment(self, shipment_id: Any) -> Shipment:
        """Retrieve a single shipment by ID.

        Raises:
            ShipmentNotFound: if the shipment does not exist.
        """
        shipment = self._shipment_repo.get_by_id(shipment_id)
        if not shipment:
            raise ShipmentNotFound(f"Shipment {shipment_id} not found.")
        return shipment

    def get_shipment_by_order(self, order_id: str) -> Shipment:
        """Retrieve the shipment for an order (exact match on ``order_id``).

        Raises:
            ShipmentNotFound: if the order has no shipment.
        """
        shipment = self._shipment_repo.get_by_order_id(order_id)
        if not shipment:
            raise ShipmentNotFound(f"No shipment for order {order_id}.")
        return shipment

    def list_events(self, shipment_id: Any) -> List[TrackingEvent]:
        """Tracking history of a shipment, oldest first."""
        shipment = self.get_shipment(shipment_id)
        return self._event_log.list_for_shipment(shipment.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _event_data(
        actor: ActorDTO,
        message: str,
        event_type: str,
        resulting_status: Optional[str] = None,
        location: Optional[str] = None,
    ) -> Dict[str, Any]:
        return {
            "author": actor.name,
            "author_role": actor.role,
            "message": message,
            "event_type": event_type,
            "resulting_status": resulting_status,
            "location": location,
        }

    @staticmethod
    def _ensure_not_terminal(shipment: Shipment, action: str) -> None:
        if shipment.is_terminal:
            logger.warning(
                "shipment.terminal_mutation_rejected",
                shipment_id=str(shipment.id),
                status=shipment.status,
            )
            raise TerminalStateError(
                f"Shipment {shipment.shipment_number} is {shipment.status}; {action}."
            )

    def _flush_events(self, shipment: Shipment) -> None:
        self._shipment_repo.record_domain_events(shipment.domain_events)
        shipment.clear_domain_events()
