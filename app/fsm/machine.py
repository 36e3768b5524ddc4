"""
FSM Machine - Order lifecycle transitions.
"""

from typing import Dict, FrozenSet

from app.fsm.states import OrderStatus

# Allowed transitions. paid -> paid is allowed so that a payment id can be
# filled in on an order that was marked paid without one.
TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.CANCELLED}
    ),
    OrderStatus.PAID: frozenset({OrderStatus.PAID}),
    OrderStatus.FAILED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current, target: OrderStatus) -> bool:
    """
    Check whether an order may move from `current` to `target`.
    `current` may be a raw stored value; unknown states go nowhere.
    """
    try:
        current = OrderStatus(current)
    except ValueError:
        return False
    return target in TRANSITIONS.get(current, frozenset())
