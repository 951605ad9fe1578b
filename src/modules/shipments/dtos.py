"""Shipment DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``ActorDTO``: who performs a mutation (free-text name + role).
- ``CreateShipmentDTO``: input for shipment creation.
- ``ShipmentSummaryDTO``: dashboard counters per status bucket.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from modules.shipments.constants import SYSTEM_AUTHOR, AuthorRole

# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class ActorDTO(BaseModel):
    """Author of a tracking event."""

    model_config = ConfigDict(frozen=True)

    name: str
    role: AuthorRole = AuthorRole.SELLER

    @field_validator("name")
    @classmethod
    def name_must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Actor name must not be blank.")
        return v

    @classmethod
    def system(cls) -> ActorDTO:
        return cls(name=SYSTEM_AUTHOR, role=AuthorRole.SYSTEM)


class CreateShipmentDTO(BaseModel):
    """Immutable DTO for shipment creation requests.

    ``tracking_number`` is generated when omitted and ``estimated_delivery``
    defaults to the configured transit time from now.
    """

    model_config = ConfigDict(frozen=True)

    order_id: str
    origin: str
    destination: str
    customer_name: str = ""
    seller_name: str = ""
    courier: str = ""
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    delivery_partner_id: Optional[UUID] = None

    @field_validator("order_id", "origin", "destination")
    @classmethod
    def required_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field must not be blank.")
        return v

    @field_validator("tracking_number")
    @classmethod
    def normalize_tracking_number(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().upper()
        return v or None


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class ShipmentSummaryDTO(BaseModel):
    """Shipment counters for the logistics dashboard.

    ``avg_delivery_days`` averages creation-to-DELIVERED time over delivered
    shipments, rounded to one decimal; ``0.0`` when nothing was delivered.
    """

    model_config = ConfigDict(frozen=True)

    processing: int = 0
    in_transit: int = 0
    out_for_delivery: int = 0
    delivered: int = 0
    failed: int = 0
    total: int = 0
    avg_delivery_days: float = 0.0
