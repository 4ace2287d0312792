"""
Order entities and request/response value objects.

Orders reference products by id only; they never hold catalog or inventory
objects. The order total is derived from the line items and recomputed
whenever the item list changes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Generic, TypeVar

from ordersaga.core.types import OrderStatus

T = TypeVar("T")

CENTS = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Convert a number or numeric string to a 2-place Decimal."""
    if isinstance(value, bool):
        msg = f"Invalid monetary amount: {value!r}"
        raise ValueError(msg)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        msg = f"Invalid monetary amount: {value!r}"
        raise ValueError(msg) from None
    if not amount.is_finite():
        msg = f"Invalid monetary amount: {value!r}"
        raise ValueError(msg)
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def validate_quantity(quantity: Any, *, allow_zero: bool = False) -> int:
    """Quantities are plain ints: no bools, no fractions, never negative."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        msg = f"Quantity must be an integer, got {quantity!r}"
        raise ValueError(msg)
    minimum = 0 if allow_zero else 1
    if quantity < minimum:
        msg = f"Quantity must be >= {minimum}, got {quantity}"
        raise ValueError(msg)
    return quantity


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Product:
    """Catalog view of a product, as seen by the ordering saga."""

    id: str
    name: str
    price: Decimal
    active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "price", to_money(self.price))


@dataclass(frozen=True)
class LineItemRequest:
    """One requested line of a new order."""

    product_id: str
    quantity: int

    def __post_init__(self) -> None:
        validate_quantity(self.quantity)


@dataclass(frozen=True)
class OrderLineItem:
    """
    A line of an order.

    The unit price is a snapshot taken when stock was reserved; later
    catalog price changes never reach it.
    """

    product_id: str
    quantity: int
    unit_price: Decimal

    def __post_init__(self) -> None:
        validate_quantity(self.quantity)
        object.__setattr__(self, "unit_price", to_money(self.unit_price))

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "subtotal": str(self.subtotal),
        }


@dataclass
class Order:
    """
    A customer's order.

    ``items`` is always a tuple and every assignment to it recomputes the
    read-only ``total_amount``. Status changes go through
    ``ordersaga.core.state_machine.transition``.
    """

    customer_id: str
    id: int | None = None
    items: tuple[OrderLineItem, ...] = ()
    status: OrderStatus = OrderStatus.PENDING
    shipping_address: str | None = None
    payment_id: str | None = None
    notes: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 0
    _total_amount: Decimal = field(default=Decimal("0.00"), init=False, repr=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "items":
            object.__setattr__(self, "items", tuple(value))
            self._recalculate_total()
            return
        object.__setattr__(self, name, value)

    def __post_init__(self) -> None:
        # __init__ assigns the _total_amount default after items
        self._recalculate_total()

    @property
    def total_amount(self) -> Decimal:
        return self._total_amount

    def add_item(self, item: OrderLineItem) -> None:
        self.items = (*self.items, item)
        self.touch()

    def replace_items(self, items: list[OrderLineItem] | tuple[OrderLineItem, ...]) -> None:
        self.items = items
        self.touch()

    def touch(self) -> None:
        self.updated_at = utcnow()

    def _recalculate_total(self) -> None:
        self._total_amount = to_money(sum((i.subtotal for i in self.items), Decimal("0")))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "status": self.status.value,
            "total_amount": str(self.total_amount),
            "shipping_address": self.shipping_address,
            "payment_id": self.payment_id,
            "notes": self.notes,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "version": self.version,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass(frozen=True)
class PaymentRequest:
    """Request to pay for an order with a single-shot charge."""

    order_id: int
    payment_method: str = "card"
    amount: Decimal | None = None
    currency: str | None = None
    idempotency_key: str | None = None

    def __post_init__(self) -> None:
        if self.amount is not None:
            object.__setattr__(self, "amount", to_money(self.amount))
        if self.currency is not None and len(self.currency) != 3:
            msg = f"Currency must be a 3-letter code, got {self.currency!r}"
            raise ValueError(msg)


@dataclass(frozen=True)
class PaymentOutcome:
    """Result of a successful payment saga."""

    order: Order
    payment: Any


@dataclass
class Page(Generic[T]):
    """One page of a paged query."""

    items: list[T]
    page: int
    size: int
    total_items: int

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return math.ceil(self.total_items / self.size)

    @property
    def first(self) -> bool:
        return self.page == 0

    @property
    def last(self) -> bool:
        return self.page >= self.total_pages - 1

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 0


def paginate(items: list[T], page: int, size: int) -> Page[T]:
    """Slice an already-sorted list into a Page."""
    if page < 0 or size <= 0:
        msg = f"Invalid page request: page={page}, size={size}"
        raise ValueError(msg)
    start = page * size
    return Page(items=items[start : start + size], page=page, size=size, total_items=len(items))
