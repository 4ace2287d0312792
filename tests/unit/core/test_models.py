"""
Tests for order entities, money handling and paging.
"""

from decimal import Decimal

import pytest

from ordersaga.core.models import (
    LineItemRequest,
    Order,
    OrderLineItem,
    Page,
    PaymentRequest,
    Product,
    paginate,
    to_money,
    validate_quantity,
)
from ordersaga.core.types import OrderStatus


class TestMoney:
    """Monetary amounts are 2-place decimals rounded half up."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("19.99", Decimal("19.99")),
            (5, Decimal("5.00")),
            ("0.005", Decimal("0.01")),
            ("2.344", Decimal("2.34")),
            (Decimal("1.115"), Decimal("1.12")),
        ],
    )
    def test_to_money(self, value, expected):
        assert to_money(value) == expected
        assert to_money(value).as_tuple().exponent == -2

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", True, None])
    def test_to_money_rejects_garbage(self, value):
        with pytest.raises(ValueError, match="Invalid monetary amount"):
            to_money(value)

    def test_product_price_is_normalized(self):
        assert Product("P-1", "Thing", "3.5").price == Decimal("3.50")


class TestQuantity:
    """Quantities are positive ints."""

    @pytest.mark.parametrize("value", [0, -1, 1.5, "2", True])
    def test_rejects_invalid(self, value):
        with pytest.raises(ValueError):
            validate_quantity(value)

    def test_zero_allowed_when_requested(self):
        assert validate_quantity(0, allow_zero=True) == 0

    def test_line_item_request_validates(self):
        with pytest.raises(ValueError):
            LineItemRequest("P-1", 0)

    def test_order_line_item_validates(self):
        with pytest.raises(ValueError):
            OrderLineItem("P-1", -3, "1.00")


class TestOrder:
    """Order totals follow the line items."""

    def test_new_order_defaults(self):
        order = Order(customer_id="c-1")
        assert order.id is None
        assert order.status == OrderStatus.PENDING
        assert order.items == ()
        assert order.total_amount == Decimal("0.00")
        assert order.version == 0

    def test_total_from_constructor_items(self):
        order = Order(
            customer_id="c-1",
            items=[OrderLineItem("P-1", 3, "19.99"), OrderLineItem("P-2", 2, "0.50")],
        )
        assert order.total_amount == Decimal("60.97")

    def test_add_item_recomputes_total(self):
        order = Order(customer_id="c-1")
        order.add_item(OrderLineItem("P-1", 2, "1.25"))
        order.add_item(OrderLineItem("P-2", 1, "10"))
        assert order.total_amount == Decimal("12.50")
        assert len(order.items) == 2

    def test_replace_items_recomputes_total(self):
        order = Order(customer_id="c-1", items=[OrderLineItem("P-1", 1, "99.00")])
        order.replace_items([OrderLineItem("P-2", 4, "0.25")])
        assert order.total_amount == Decimal("1.00")

    def test_items_are_immutable_tuple(self):
        order = Order(customer_id="c-1", items=[OrderLineItem("P-1", 1, "1.00")])
        assert isinstance(order.items, tuple)
        with pytest.raises(AttributeError):
            order.items.append(OrderLineItem("P-2", 1, "1.00"))

    def test_assigning_items_recomputes_total(self):
        order = Order(customer_id="c-1", items=[OrderLineItem("P-1", 1, "99.00")])

        order.items = [OrderLineItem("P-2", 3, "2.00")]

        assert isinstance(order.items, tuple)
        assert order.total_amount == Decimal("6.00")

    def test_total_is_read_only(self):
        order = Order(customer_id="c-1")
        with pytest.raises(AttributeError):
            order.total_amount = Decimal("5.00")

    def test_line_item_subtotal(self):
        assert OrderLineItem("P-1", 3, "0.333").subtotal == Decimal("0.99")

    def test_to_dict(self):
        order = Order(customer_id="c-1", id=7, items=[OrderLineItem("P-1", 2, "1.50")])
        data = order.to_dict()
        assert data["id"] == 7
        assert data["status"] == "PENDING"
        assert data["total_amount"] == "3.00"
        assert data["items"] == [
            {"product_id": "P-1", "quantity": 2, "unit_price": "1.50", "subtotal": "3.00"}
        ]


class TestPaymentRequest:
    def test_defaults(self):
        request = PaymentRequest(order_id=1)
        assert request.payment_method == "card"
        assert request.amount is None
        assert request.idempotency_key is None

    def test_amount_normalized(self):
        assert PaymentRequest(order_id=1, amount="10.5").amount == Decimal("10.50")

    def test_currency_must_be_three_letters(self):
        with pytest.raises(ValueError, match="3-letter"):
            PaymentRequest(order_id=1, currency="EURO")


class TestPaging:
    """Page arithmetic."""

    def test_paginate_slices(self):
        page = paginate(list(range(10)), page=1, size=4)
        assert page.items == [4, 5, 6, 7]
        assert page.total_items == 10
        assert page.total_pages == 3
        assert page.has_next
        assert page.has_previous
        assert not page.first
        assert not page.last

    def test_last_page(self):
        page = paginate(list(range(10)), page=2, size=4)
        assert page.items == [8, 9]
        assert page.last
        assert not page.has_next

    def test_empty(self):
        page = paginate([], page=0, size=5)
        assert page.items == []
        assert page.total_pages == 0
        assert page.first

    @pytest.mark.parametrize(("page", "size"), [(-1, 5), (0, 0)])
    def test_invalid_request(self, page, size):
        with pytest.raises(ValueError, match="Invalid page request"):
            paginate([1, 2], page, size)

    def test_zero_size_page_has_no_pages(self):
        assert Page(items=[], page=0, size=0, total_items=3).total_pages == 0
