"""Shipment domain exceptions.

Raised by the repositories and the Lifecycle Service when a business rule
is violated.  The API layer (Views) catches these and translates them into
HTTP responses; nothing here is resolved locally.
"""

from __future__ import annotations

from typing import Optional


class NotFoundError(Exception):
    """A referenced shipment, order or delivery partner does not exist."""


class ShipmentNotFound(NotFoundError):
    """The requested shipment does not exist."""


class DeliveryPartnerNotFound(NotFoundError):
    """The delivery partner referenced by a reassignment does not exist."""


class ConflictError(Exception):
    """A uniqueness constraint would be violated."""


class DuplicateOrderError(ConflictError):
    """A shipment already exists for this order (one shipment per order)."""


class DuplicateTrackingNumber(ConflictError):
    """Another shipment already holds this tracking number."""


class InvalidTransitionError(Exception):
    """A status change violates the transition graph.

    ``reason`` is one of ``identity transition``, ``terminal state`` or
    ``no such edge`` so callers can render a precise message.
    """

    def __init__(
        self,
        reason: str,
        current: Optional[str] = None,
        requested: Optional[str] = None,
    ) -> None:
        self.reason = str(reason)
        self.current = current
        self.requested = requested
        if current is not None and requested is not None:
            message = f"Cannot transition from {current} to {requested}: {self.reason}."
        else:
            message = self.reason
        super().__init__(message)


class TerminalStateError(Exception):
    """A courier, tracking-number or location change hit a DELIVERED/RETURNED shipment."""


class ImmutableRecordError(Exception):
    """Attempt to update or delete an append-only tracking event."""
