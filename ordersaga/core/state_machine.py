"""
Order State Machine - Manages order lifecycle transitions.

Ensures orders move through valid states only. Transitions never touch the
order total; only line item changes do.

State Diagram:

    ┌─────────┐   pay    ┌──────┐  process  ┌────────────┐  ship  ┌─────────┐
    │ PENDING │ ───────→ │ PAID │ ────────→ │ PROCESSING │ ─────→ │ SHIPPED │
    └────┬────┘          └──┬───┘           └─────┬──────┘        └────┬────┘
         │                  │                     │                    │ deliver
         │ cancel           │ cancel              │ cancel             ▼
         │                  ▼                     │              ┌───────────┐
         └──────────────→ ┌───────────┐ ←─────────┘              │ DELIVERED │
                          │ CANCELLED │                          └───────────┘
                          └───────────┘
"""

from collections.abc import Callable
from typing import Any

from ordersaga.core.exceptions import InvalidOrderStateError
from ordersaga.core.models import Order
from ordersaga.core.types import OrderStatus


class OrderStateMachine:
    """
    State machine for the order lifecycle.

    Usage:
        >>> sm = OrderStateMachine()
        >>> sm.can_transition(OrderStatus.PENDING, OrderStatus.PAID)
        True
        >>> order = sm.transition(order, OrderStatus.PAID)
    """

    # Valid transitions: from_status -> {to_status, ...}
    VALID_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
        OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
        OrderStatus.PAID: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
        OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
        OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
        OrderStatus.DELIVERED: frozenset(),  # Terminal state
        OrderStatus.CANCELLED: frozenset(),  # Terminal state
    }

    def __init__(
        self,
        on_transition: Callable[[Order, OrderStatus, OrderStatus], Any] | None = None,
    ):
        """
        Args:
            on_transition: Optional callback invoked after each successful transition
        """
        self._on_transition = on_transition

    def allowed_transitions(self, status: OrderStatus) -> frozenset[OrderStatus]:
        return self.VALID_TRANSITIONS.get(status, frozenset())

    def can_transition(self, from_status: OrderStatus, to_status: OrderStatus) -> bool:
        return to_status in self.allowed_transitions(from_status)

    def validate(self, order: Order, target_status: OrderStatus) -> None:
        """Raise InvalidOrderStateError if the order cannot move to target_status."""
        if not self.can_transition(order.status, target_status):
            raise InvalidOrderStateError(order.status, target_status)

    def transition(self, order: Order, target_status: OrderStatus) -> Order:
        """
        Move an order to a new status.

        Args:
            order: The order to update (mutated in place)
            target_status: Desired status

        Returns:
            The same order, with status and updated_at changed

        Raises:
            InvalidOrderStateError: If the transition is not allowed. The
                order is left untouched.
        """
        old_status = order.status
        self.validate(order, target_status)

        order.status = target_status
        order.touch()

        if self._on_transition:
            self._on_transition(order, old_status, target_status)

        return order


_default_machine = OrderStateMachine()


def can_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    return _default_machine.can_transition(from_status, to_status)


def allowed_transitions(status: OrderStatus) -> frozenset[OrderStatus]:
    return _default_machine.allowed_transitions(status)


def transition(order: Order, target_status: OrderStatus) -> Order:
    """Module-level shortcut for OrderStateMachine().transition()."""
    return _default_machine.transition(order, target_status)
