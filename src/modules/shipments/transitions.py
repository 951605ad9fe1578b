"""Shipment status transition validator.

Pure decision function over the status graph in ``constants``: no I/O,
no exceptions.  The Lifecycle Service turns a ``Rejected`` decision into
``InvalidTransitionError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from modules.shipments.constants import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    RejectionReason,
)


@dataclass(frozen=True)
class Allowed:
    """The proposed transition is legal."""

    @property
    def is_allowed(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    """The proposed transition is illegal, with the reason why."""

    reason: RejectionReason

    @property
    def is_allowed(self) -> bool:
        return False


TransitionDecision = Union[Allowed, Rejected]

ALLOWED = Allowed()


def validate(current: str, requested: str) -> TransitionDecision:
    """Decide whether ``current -> requested`` is a legal status change.

    Checks run in order: identity (``requested == current``), terminal
    source state, then graph membership. Identity wins even on terminal
    shipments: ``validate("DELIVERED", "DELIVERED")`` is rejected as
    ``identity transition``, never ``terminal state``.
    Unknown statuses have no outgoing edges and are rejected as
    ``no such edge``.
    """
    if requested == current:
        return Rejected(RejectionReason.IDENTITY_TRANSITION)
    if current in TERMINAL_STATES:
        return Rejected(RejectionReason.TERMINAL_STATE)
    if requested not in VALID_TRANSITIONS.get(current, frozenset()):
        return Rejected(RejectionReason.NO_SUCH_EDGE)
    return ALLOWED


def allowed_targets(current: str) -> frozenset[str]:
    """Statuses reachable from ``current`` in one step."""
    return VALID_TRANSITIONS.get(current, frozenset())
