"""Read-only shipment queries (search, dashboard counters, partners).

Never takes locks: results may reflect a snapshot taken just before a
concurrent mutation commits.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any, Iterable, List, Optional

from modules.shipments.constants import SUMMARY_BUCKETS
from modules.shipments.dtos import ShipmentSummaryDTO

SECONDS_PER_DAY = 86400

if TYPE_CHECKING:
    from modules.shipments.models import DeliveryPartner, Shipment
    from modules.shipments.repositories.interfaces import (
        IDeliveryPartnerRepository,
        IShipmentRepository,
    )


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ShipmentQueryService:
    def __init__(
        self,
        shipment_repository: IShipmentRepository,
        partner_repository: IDeliveryPartnerRepository,
    ) -> None:
        self._shipment_repo = shipment_repository
        self._partner_repo = partner_repository

    def search(
        self,
        status: Optional[str] = None,
        courier: Optional[str] = None,
        query: Optional[str] = None,
        partner_id: Optional[Any] = None,
    ) -> Iterable[Shipment]:
        """Shipments matching every given filter, newest first.

        ``query`` is a case-insensitive substring of the tracking number or
        the order ID.  Blank filters are ignored; no filter returns all.
        """
        return self._shipment_repo.search(
            status=_clean(status),
            courier=_clean(courier),
            query=_clean(query),
            partner_id=partner_id or None,
        )

    def summary(self) -> ShipmentSummaryDTO:
        counts = self._shipment_repo.count_by_status()
        buckets = {
            bucket: sum(counts.get(status, 0) for status in statuses)
            for bucket, statuses in SUMMARY_BUCKETS.items()
        }
        return ShipmentSummaryDTO(
            **buckets,
            total=sum(counts.values()),
            avg_delivery_days=self._average_days(
                self._shipment_repo.delivery_durations()
            ),
        )

    @staticmethod
    def _average_days(durations: List[timedelta]) -> float:
        if not durations:
            return 0.0
        seconds = sum(d.total_seconds() for d in durations) / len(durations)
        return round(seconds / SECONDS_PER_DAY, 1)

    def couriers(self) -> List[str]:
        return self._shipment_repo.distinct_couriers()

    def list_partners(
        self, availability: Optional[str] = None
    ) -> Iterable[DeliveryPartner]:
        return self._partner_repo.list({"availability": _clean(availability)})
