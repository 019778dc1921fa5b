"""
Booking lifecycle graph

Status values are the ``Booking.Status`` strings; the graph is kept free of
model imports so it can be used from jobs, sweeps and tests alike.
"""

from typing import Dict, FrozenSet

PENDING_OWNER_APPROVAL = "PENDING_OWNER_APPROVAL"
PENDING_PAYMENT = "PENDING_PAYMENT"
CONFIRMED = "CONFIRMED"
IN_PROGRESS = "IN_PROGRESS"
AWAITING_RETURN_INSPECTION = "AWAITING_RETURN_INSPECTION"
COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"
DISPUTED = "DISPUTED"

PENDING_STATES: FrozenSet[str] = frozenset({PENDING_OWNER_APPROVAL, PENDING_PAYMENT})

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PENDING_OWNER_APPROVAL: frozenset({PENDING_PAYMENT, CANCELLED}),
    PENDING_PAYMENT: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({IN_PROGRESS, CANCELLED}),
    IN_PROGRESS: frozenset({AWAITING_RETURN_INSPECTION, DISPUTED}),
    AWAITING_RETURN_INSPECTION: frozenset({COMPLETED, DISPUTED}),
    DISPUTED: frozenset({COMPLETED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())
