"""Shipment repository interfaces.

Three capability contracts back the Lifecycle Service:

- ``IShipmentRepository``: the current-state projection (Shipment Record)
  plus the unit-of-work seams (``atomic`` / ``locked``).
- ``ITrackingEventLog``: the append-only tracking history.
- ``IDeliveryPartnerRepository``: read access to courier agents.

The Service Layer depends exclusively on these contracts (DIP).  Two
implementations exist: Django ORM (``django_repository``) and in-memory
(``memory_repository``).  Writes made through the event log and the
shipment repository inside one ``locked()`` / ``atomic()`` block commit or
roll back together.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import (
    TYPE_CHECKING,
    Any,
    ContextManager,
    Dict,
    Iterable,
    List,
    Optional,
)

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.shipments.models import DeliveryPartner, Shipment, TrackingEvent
    from shared.domain.events import DomainEvent


class IShipmentRepository(IRepository["Shipment"]):
    """Repository contract for the Shipment aggregate root."""

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @abstractmethod
    def atomic(self) -> ContextManager[None]:
        """Store-wide unit of work (used for creation)."""

    @abstractmethod
    def locked(self, shipment_id: Any) -> ContextManager[Shipment]:
        """Exclusive per-shipment unit of work.

        Yields the current shipment.  Raises ``ShipmentNotFound`` for an
        unknown ID.  Concurrent ``locked`` blocks on the same shipment run
        one after the other; different shipments never share a lock.  If
        the block raises, every write performed inside it is undone.
        """

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Shipment:
        """Create a shipment in ``PICKUP_PENDING``.

        ``data`` must include ``order_id``, ``origin`` and ``destination``;
        optional keys mirror ``CreateShipmentDTO``.  Raises
        ``DuplicateOrderError`` if the order already has a shipment and
        ``DuplicateTrackingNumber`` if a supplied tracking number is taken.
        """

    @abstractmethod
    def update_status(self, shipment_id: Any, status: str) -> None:
        """Overwrite the cached status (Lifecycle Service only)."""

    @abstractmethod
    def update_tracking_number(self, shipment_id: Any, tracking_number: str) -> None:
        """Raises ``DuplicateTrackingNumber`` if another shipment holds it."""

    @abstractmethod
    def update_courier(self, shipment_id: Any, partner: DeliveryPartner) -> None:
        """Point the shipment at *partner* and refresh denormalized names."""

    @abstractmethod
    def update_location(self, shipment_id: Any, location: str) -> None:
        """Overwrite ``current_location``."""

    @abstractmethod
    def record_domain_events(self, events: List[DomainEvent]) -> None:
        """Stage outgoing domain events inside the current unit of work."""

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @abstractmethod
    def get_by_order_id(self, order_id: str) -> Optional[Shipment]:
        """Retrieve the shipment for an order."""

    @abstractmethod
    def get_by_tracking_number(self, tracking_number: str) -> Optional[Shipment]:
        """Retrieve a shipment by tracking number (case-insensitive)."""

    @abstractmethod
    def search(
        self,
        status: Optional[str] = None,
        courier: Optional[str] = None,
        query: Optional[str] = None,
        partner_id: Optional[Any] = None,
    ) -> Iterable[Shipment]:
        """Lazy, stably ordered (newest first) search; AND semantics.

        ``query`` matches tracking number OR order ID as a case-insensitive
        substring; ``courier`` matches the courier name case-insensitively.
        """

    def list(self, filters: Optional[Dict[str, Any]] = None) -> Iterable[Shipment]:
        return self.search(**(filters or {}))

    @abstractmethod
    def count_by_status(self) -> Dict[str, int]:
        """Number of shipments per status (absent statuses omitted)."""

    @abstractmethod
    def distinct_couriers(self) -> List[str]:
        """Sorted, non-empty courier names in use."""

    @abstractmethod
    def delivery_durations(self) -> List[timedelta]:
        """Time from creation to the DELIVERED event, per delivered shipment."""


class ITrackingEventLog(ABC):
    """Append-only, ordered storage of tracking events per shipment.

    There is deliberately no update or delete operation.
    """

    @abstractmethod
    def append(self, shipment_id: Any, data: Dict[str, Any]) -> TrackingEvent:
        """Persist a new event and return it with ``id`` and ``sequence``.

        ``data`` keys: ``author``, ``author_role``, ``message``,
        ``event_type``, ``resulting_status`` (may be ``None``) and
        optionally ``location``.  Raises ``ShipmentNotFound`` for an
        unknown shipment.  Safe against concurrent appends to the same
        shipment.
        """

    @abstractmethod
    def list_for_shipment(self, shipment_id: Any) -> List[TrackingEvent]:
        """All events of a shipment, oldest first (empty list if none)."""

    @abstractmethod
    def latest_status_event(self, shipment_id: Any) -> Optional[TrackingEvent]:
        """Most recent event whose ``resulting_status`` is not ``None``."""


class IDeliveryPartnerRepository(IRepository["DeliveryPartner"]):
    """Read contract for delivery partners.

    Supported ``list`` filter keys: ``availability``, ``provider``
    (case-insensitive) and ``vehicle_type``.
    """
