"""In-memory implementation of the shipment repositories.

Used by the service unit tests and for embedding the lifecycle logic
without a database.  Entities are regular (unsaved) model instances kept
in dictionaries of ``InMemoryLogisticsStore``.

Consistency model:
- every shipment has its own re-entrant lock; ``locked()`` and
  ``append()`` hold it, so writers on one shipment are serialized and
  writers on different shipments run in parallel;
- uniqueness indexes (order ID, tracking number, shipment number) are
  guarded by one short-lived index lock;
- each write made inside a unit of work registers an undo callback; if
  the outermost block raises, the journal is replayed backwards.
"""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Callable, Dict, Iterator, List, Optional
from uuid import UUID

import structlog
from django.utils import timezone

from modules.shipments.constants import (
    SHIPMENT_NUMBER_MAX_RETRIES,
    TRACKING_NUMBER_MAX_RETRIES,
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


def _as_uuid(value: Any) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class InMemoryLogisticsStore:
    """Shared state behind the three in-memory repositories."""

    def __init__(self) -> None:
        self.shipments: Dict[UUID, Shipment] = {}
        self.events: Dict[UUID, List[TrackingEvent]] = {}
        self.partners: Dict[UUID, DeliveryPartner] = {}
        self.outbox: List[DomainEvent] = []
        self.index_lock = threading.RLock()
        self._registry_lock = threading.Lock()
        self._shipment_locks: Dict[UUID, threading.RLock] = {}
        self._local = threading.local()

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def lock_for(self, shipment_id: UUID) -> threading.RLock:
        with self._registry_lock:
            lock = self._shipment_locks.get(shipment_id)
            if lock is None:
                lock = self._shipment_locks[shipment_id] = threading.RLock()
            return lock

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @contextmanager
    def unit_of_work(self, lock: Optional[threading.RLock] = None) -> Iterator[None]:
        """Run a block with rollback; optionally while holding *lock*.

        Units of work nest.  Locks taken through ``hold()`` are released
        when the outermost unit of work ends.
        """
        if lock is not None:
            lock.acquire()
        local = self._local
        depth = getattr(local, "depth", 0)
        if depth == 0:
            local.journal = []
            local.held = []
        mark = len(local.journal)
        local.depth = depth + 1
        try:
            yield
        except BaseException:
            journal = local.journal
            while len(journal) > mark:
                journal.pop()()
            raise
        finally:
            local.depth = depth
            if depth == 0:
                for held in reversed(local.held):
                    held.release()
                local.journal = []
                local.held = []
            if lock is not None:
                lock.release()

    def remember(self, undo: Callable[[], None]) -> None:
        """Register the inverse of a write just performed."""
        if getattr(self._local, "depth", 0):
            self._local.journal.append(undo)

    def hold(self, lock: threading.RLock) -> None:
        """Acquire *lock* until the outermost unit of work ends."""
        if not getattr(self._local, "depth", 0):
            return
        lock.acquire()
        self._local.held.append(lock)

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------

    def add_partner(self, partner: DeliveryPartner) -> DeliveryPartner:
        self.partners[partner.id] = partner
        return partner


class ShipmentMemoryRepository(IShipmentRepository):
    """Shipment repository over an ``InMemoryLogisticsStore``.

    Readers receive copies; the stored instances are only changed by the
    update methods below.
    """

    def __init__(self, store: InMemoryLogisticsStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def atomic(self):
        return self._store.unit_of_work()

    @contextmanager
    def locked(self, shipment_id: Any) -> Iterator[Shipment]:
        key = _as_uuid(shipment_id)
        if key is None or key not in self._store.shipments:
            raise ShipmentNotFound(f"Shipment {shipment_id} not found.")
        with self._store.unit_of_work(self._store.lock_for(key)):
            yield copy.copy(self._store.shipments[key])

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, data: Dict[str, Any]) -> Shipment:
        store = self._store
        order_id = data["order_id"]
        partner = data.get("delivery_partner")

        with store.index_lock:
            if self._find(lambda s: s.order_id == order_id):
                raise DuplicateOrderError(f"Order {order_id} already has a shipment.")

            tracking_number = data.get("tracking_number")
            if tracking_number:
                if self._holder_of(tracking_number):
                    raise DuplicateTrackingNumber(
                        f"Tracking number {tracking_number} is already in use."
                    )
            else:
                tracking_number = self._unique(
                    Shipment.generate_tracking_number,
                    lambda n: self._holder_of(n) is not None,
                    TRACKING_NUMBER_MAX_RETRIES,
                )
            shipment_number = self._unique(
                Shipment.generate_shipment_number,
                lambda n: self._find(lambda s: s.shipment_number == n) is not None,
                SHIPMENT_NUMBER_MAX_RETRIES,
            )

            now = timezone.now()
            shipment = Shipment(
                shipment_number=shipment_number,
                order_id=order_id,
                tracking_number=tracking_number,
                courier=data.get("courier", ""),
                delivery_partner_id=partner.id if partner else None,
                delivery_partner_name=data.get("delivery_partner_name", ""),
                status=ShipmentStatus.PICKUP_PENDING,
                origin=data["origin"],
                destination=data["destination"],
                customer_name=data.get("customer_name", ""),
                seller_name=data.get("seller_name", ""),
                estimated_delivery=data.get("estimated_delivery"),
                created_at=now,
                updated_at=now,
            )
            # Nobody may mutate the new shipment before its unit of work ends.
            store.hold(store.lock_for(shipment.id))
            store.shipments[shipment.id] = shipment
            store.events[shipment.id] = []

        def undo() -> None:
            store.shipments.pop(shipment.id, None)
            store.events.pop(shipment.id, None)

        store.remember(undo)
        logger.info(
            "shipment.persisted",
            shipment_id=str(shipment.id),
            shipment_number=shipment.shipment_number,
            order_id=order_id,
        )
        return copy.copy(shipment)

    @staticmethod
    def _unique(
        generate: Callable[[], str], taken: Callable[[str], bool], retries: int
    ) -> str:
        for _ in range(retries):
            candidate = generate()
            if not taken(candidate):
                return candidate
        raise RuntimeError("Could not generate a unique identifier.")

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def _stored(self, shipment_id: Any) -> Shipment:
        key = _as_uuid(shipment_id)
        shipment = self._store.shipments.get(key) if key else None
        if shipment is None:
            raise ShipmentNotFound(f"Shipment {shipment_id} not found.")
        return shipment

    def _update(self, shipment_id: Any, **values: Any) -> None:
        shipment = self._stored(shipment_id)
        values["updated_at"] = timezone.now()
        previous = {field: getattr(shipment, field) for field in values}
        for field, value in values.items():
            setattr(shipment, field, value)

        def undo() -> None:
            for field, value in previous.items():
                setattr(shipment, field, value)

        self._store.remember(undo)

    def update_status(self, shipment_id: Any, status: str) -> None:
        self._update(shipment_id, status=status)

    def update_tracking_number(self, shipment_id: Any, tracking_number: str) -> None:
        with self._store.index_lock:
            holder = self._holder_of(tracking_number)
            if holder is not None and holder.id != _as_uuid(shipment_id):
                raise DuplicateTrackingNumber(
                    f"Tracking number {tracking_number} is already in use."
                )
            self._update(shipment_id, tracking_number=tracking_number)

    def update_courier(self, shipment_id: Any, partner: DeliveryPartner) -> None:
        self._update(
            shipment_id,
            delivery_partner_id=partner.id,
            delivery_partner_name=partner.display_name,
            courier=partner.provider,
        )

    def update_location(self, shipment_id: Any, location: str) -> None:
        self._update(shipment_id, current_location=location)

    def record_domain_events(self, events: List[DomainEvent]) -> None:
        outbox = self._store.outbox
        staged = list(events)
        outbox.extend(staged)

        def undo() -> None:
            for event in staged:
                outbox.remove(event)

        self._store.remember(undo)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _find(self, predicate: Callable[[Shipment], bool]) -> Optional[Shipment]:
        for shipment in list(self._store.shipments.values()):
            if predicate(shipment):
                return shipment
        return None

    def _holder_of(self, tracking_number: str) -> Optional[Shipment]:
        wanted = tracking_number.strip().upper()
        return self._find(lambda s: s.tracking_number.upper() == wanted)

    def get_by_id(self, id: Any) -> Optional[Shipment]:
        key = _as_uuid(id)
        shipment = self._store.shipments.get(key) if key else None
        return copy.copy(shipment) if shipment else None

    def get_by_order_id(self, order_id: str) -> Optional[Shipment]:
        shipment = self._find(lambda s: s.order_id == order_id)
        return copy.copy(shipment) if shipment else None

    def get_by_tracking_number(self, tracking_number: str) -> Optional[Shipment]:
        shipment = self._holder_of(tracking_number)
        return copy.copy(shipment) if shipment else None

    def search(
        self,
        status: Optional[str] = None,
        courier: Optional[str] = None,
        query: Optional[str] = None,
        partner_id: Optional[Any] = None,
    ) -> Iterator[Shipment]:
        snapshot = sorted(
            self._store.shipments.values(),
            key=lambda s: (s.created_at, s.id),
            reverse=True,
        )
        needle = query.lower() if query else None
        partner_key = _as_uuid(partner_id) if partner_id else None

        def matches(shipment: Shipment) -> bool:
            if status and shipment.status != status:
                return False
            if courier and shipment.courier.lower() != courier.lower():
                return False
            if needle and not (
                needle in shipment.tracking_number.lower()
                or needle in shipment.order_id.lower()
            ):
                return False
            if partner_id and shipment.delivery_partner_id != partner_key:
                return False
            return True

        return (copy.copy(s) for s in snapshot if matches(s))

    def count_by_status(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for shipment in list(self._store.shipments.values()):
            counts[shipment.status] = counts.get(shipment.status, 0) + 1
        return counts

    def distinct_couriers(self) -> List[str]:
        return sorted(
            {s.courier for s in list(self._store.shipments.values()) if s.courier}
        )

    def delivery_durations(self) -> List[timedelta]:
        durations: List[timedelta] = []
        for shipment in list(self._store.shipments.values()):
            if shipment.status != ShipmentStatus.DELIVERED:
                continue
            delivered_at = [
                e.occurred_at
                for e in list(self._store.events.get(shipment.id, []))
                if e.resulting_status == ShipmentStatus.DELIVERED
            ]
            if delivered_at:
                durations.append(max(delivered_at) - shipment.created_at)
        return durations


class TrackingEventMemoryLog(ITrackingEventLog):
    """Append-only tracking log over an ``InMemoryLogisticsStore``."""

    def __init__(self, store: InMemoryLogisticsStore) -> None:
        self._store = store

    def append(self, shipment_id: Any, data: Dict[str, Any]) -> TrackingEvent:
        store = self._store
        key = _as_uuid(shipment_id)
        if key is None or key not in store.shipments:
            raise ShipmentNotFound(f"Shipment {shipment_id} not found.")

        with store.unit_of_work(store.lock_for(key)):
            log = store.events.setdefault(key, [])
            occurred_at = timezone.now()
            if log and log[-1].occurred_at > occurred_at:
                occurred_at = log[-1].occurred_at
            event = TrackingEvent(
                shipment_id=key,
                sequence=len(log) + 1,
                occurred_at=occurred_at,
                author=data["author"],
                author_role=data["author_role"],
                message=data["message"],
                event_type=data["event_type"],
                resulting_status=data.get("resulting_status"),
                location=data.get("location"),
                created_at=occurred_at,
                updated_at=occurred_at,
            )
            log.append(event)
            store.remember(lambda: log.remove(event))

        logger.info(
            "tracking_event.appended",
            shipment_id=str(key),
            sequence=event.sequence,
            event_type=event.event_type,
            resulting_status=event.resulting_status,
        )
        return event

    def list_for_shipment(self, shipment_id: Any) -> List[TrackingEvent]:
        key = _as_uuid(shipment_id)
        return list(self._store.events.get(key, [])) if key else []

    def latest_status_event(self, shipment_id: Any) -> Optional[TrackingEvent]:
        for event in reversed(self.list_for_shipment(shipment_id)):
            if event.resulting_status is not None:
                return event
        return None


class DeliveryPartnerMemoryRepository(IDeliveryPartnerRepository):
    """Delivery partner lookups over an ``InMemoryLogisticsStore``."""

    def __init__(self, store: InMemoryLogisticsStore) -> None:
        self._store = store

    def get_by_id(self, id: Any) -> Optional[DeliveryPartner]:
        key = _as_uuid(id)
        return self._store.partners.get(key) if key else None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[DeliveryPartner]:
        filters = filters or {}
        partners = sorted(
            self._store.partners.values(), key=lambda p: (p.provider, p.name)
        )
        if filters.get("availability"):
            partners = [p for p in partners if p.availability == filters["availability"]]
        if filters.get("provider"):
            wanted = filters["provider"].lower()
            partners = [p for p in partners if p.provider.lower() == wanted]
        if filters.get("vehicle_type"):
            partners = [p for p in partners if p.vehicle_type == filters["vehicle_type"]]
        return partners
