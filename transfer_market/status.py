from __future__ import annotations

"""Offer status transition table.

Every status write goes through :func:`require_transition`; a pair missing
from the table is a conflict, never silently applied.
"""

from typing import Dict, FrozenSet

from .errors import OFFER_INVALID_TRANSITION, ConflictError


TERMINAL_STATUSES: FrozenSet[str] = frozenset({"completed", "rejected", "expired", "cancelled"})

OFFER_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"counter", "accepted", "rejected", "expired", "cancelled"}),
    "counter": frozenset({"counter", "accepted", "rejected", "expired", "cancelled"}),
    "accepted": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "rejected": frozenset(),
    "expired": frozenset(),
    "cancelled": frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in OFFER_TRANSITIONS.get(str(current), frozenset())


def require_transition(current: str, target: str, *, offer_id: str = "") -> None:
    if not can_transition(current, target):
        raise ConflictError(
            OFFER_INVALID_TRANSITION,
            f"Offer cannot move from {current!r} to {target!r}",
            {"offer_id": offer_id, "from": current, "to": target},
        )


def sources_for(target: str) -> FrozenSet[str]:
    """Statuses from which ``target`` is reachable (used for guarded bulk updates)."""
    return frozenset(src for src, targets in OFFER_TRANSITIONS.items() if target in targets)


def is_terminal(status: str) -> bool:
    return str(status) in TERMINAL_STATUSES
