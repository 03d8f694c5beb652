from __future__ import annotations
from typing import Any, Dict, FrozenSet, Optional
from datetime import datetime

from storefront.core.errors import InvalidStatusTransition, OptimisticLockError
from storefront.models.fields import utcnow


ORDER_STATUSES = (
    "pending",
    "confirmed",
    "processing",
    "shipped",
    "delivered",
    "cancelled",
    "returned",
    "refunded",
)

# strict whitelist: anything not listed here is rejected
ORDER_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"processing", "cancelled"}),
    "processing": frozenset({"shipped", "cancelled"}),
    "shipped": frozenset({"delivered", "returned"}),
    "delivered": frozenset({"returned", "refunded"}),
    "cancelled": frozenset({"refunded"}),
    "returned": frozenset({"refunded"}),
    "refunded": frozenset(),
}

# entering one of these puts the order's stock back on the shelf
RESTORING_STATUSES: FrozenSet[str] = frozenset({"cancelled", "returned", "refunded"})

STATUS_TIMESTAMP_FIELDS: Dict[str, str] = {
    "confirmed": "confirmed_at",
    "shipped": "shipped_at",
    "delivered": "delivered_at",
    "cancelled": "cancelled_at",
}

HistoryEntry = Dict[str, Any]


def can_transition(from_status: str, to_status: str,
                   transitions: Dict[str, FrozenSet[str]] = ORDER_TRANSITIONS) -> bool:
    return to_status in transitions.get(from_status, frozenset())


def restores_inventory(from_status: str, to_status: str) -> bool:
    """
    True when moving from `from_status` to `to_status` must release the order's stock.
    Only the first move into a restoring status releases, so cancelled -> refunded
    does not put the same units back twice.
    """
    return to_status in RESTORING_STATUSES and from_status not in RESTORING_STATUSES


class StateMachine:
    """
    Order status state machine with:
      - allowed transitions map (ORDER_TRANSITIONS by default)
      - a history entry built for every applied transition (actor / comment / visibility)
      - optimistic versioning (caller may supply expected_version)

    Usage:
      sm = StateMachine(state=order.status, version=order.version)
      entry = sm.apply("shipped", actor=admin_id, comment="Left the warehouse")
      order.status = sm.state
      order.version = sm.version
    """

    def __init__(self, state: str, allowed_transitions: Optional[Dict[str, FrozenSet[str]]] = None,
                 version: int = 0):
        self.state = state or ""
        self.allowed_transitions = ORDER_TRANSITIONS if allowed_transitions is None else allowed_transitions
        self.version = int(version or 0)

    def can_transition(self, to_state: str) -> bool:
        return can_transition(self.state, to_state, self.allowed_transitions)

    def apply(self, to_state: str, actor: Optional[str] = None, comment: Optional[str] = None,
              is_customer_visible: bool = True, expected_version: Optional[int] = None,
              at: Optional[datetime] = None) -> HistoryEntry:
        """
        Attempt to transition to `to_state`. Raises InvalidStatusTransition or OptimisticLockError
        without changing anything. Returns the history entry describing the transition.
        """
        to_state = (to_state or "").strip()

        if expected_version is not None and int(expected_version) != self.version:
            raise OptimisticLockError(int(expected_version), self.version)

        if not self.can_transition(to_state):
            raise InvalidStatusTransition(self.state, to_state or "<empty>")

        entry: HistoryEntry = {
            "previous_status": self.state,
            "new_status": to_state,
            "comment": comment,
            "changed_by": actor,
            "is_customer_visible": bool(is_customer_visible),
            "created_at": at or utcnow(),
        }
        self.state = to_state
        self.version += 1
        return entry
