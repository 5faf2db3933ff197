"""Unit tests for the order ledger: money math, order numbers and the status state machine.

Pure functions only, no database.
"""

import re
from decimal import Decimal

import pytest
from services.store_service.errors import InvalidTransitionError
from services.store_service.models import Order, OrderItem, OrderStatus
from services.store_service.services.ledger import (
    FLAT_SHIPPING_FEE,
    can_transition,
    apply_status,
    compute_totals,
    generate_order_number,
    line_total,
    recompute_order_totals,
    set_item_pricing,
)

ORDER_NUMBER_RE = re.compile(r"^ORD-\d+-[0-9A-Z]{9}$")


def _order(status=OrderStatus.PENDING, **kwargs):
    return Order(status=status, shipped_at=None, delivered_at=None, **kwargs)


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_totals_below_free_shipping_threshold():
    totals = compute_totals(Decimal("30.00"))

    assert totals.subtotal == Decimal("30.00")
    assert totals.tax == Decimal("6.00")
    assert totals.shipping == FLAT_SHIPPING_FEE
    assert totals.total == Decimal("41.99")


@pytest.mark.unit
def test_totals_above_threshold_ship_free():
    totals = compute_totals(Decimal("60.00"))

    assert totals.shipping == Decimal("0.00")
    assert totals.total == Decimal("72.00")


@pytest.mark.unit
def test_exactly_fifty_still_pays_shipping():
    """Free shipping needs a subtotal strictly above 50.00."""
    totals = compute_totals(Decimal("50.00"))

    assert totals.shipping == Decimal("5.99")
    assert totals.total == Decimal("65.99")


@pytest.mark.unit
def test_tax_rounds_half_up():
    # 10.03 * 0.20 = 2.006
    totals = compute_totals(Decimal("10.03"))

    assert totals.tax == Decimal("2.01")


@pytest.mark.unit
def test_discount_is_subtracted_and_total_never_negative():
    assert compute_totals(Decimal("30.00"), Decimal("5.00")).total == Decimal("36.99")
    assert compute_totals(Decimal("1.00"), Decimal("100.00")).total == Decimal("0.00")


@pytest.mark.unit
def test_line_total():
    assert line_total(3, Decimal("9.99")) == Decimal("29.97")


# ---------------------------------------------------------------------------
# Order numbers
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_order_number_format():
    number = generate_order_number(now_ms=1767225600000)

    assert number.startswith("ORD-1767225600000-")
    assert ORDER_NUMBER_RE.match(number)


@pytest.mark.unit
def test_order_numbers_are_distinct():
    numbers = {generate_order_number(now_ms=1) for _ in range(200)}
    assert len(numbers) == 200


# ---------------------------------------------------------------------------
# Item edits
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_set_item_pricing_recomputes_line_total():
    item = OrderItem(quantity=2, price=Decimal("10.00"), total=Decimal("20.00"))

    set_item_pricing(item, quantity=3)
    assert item.total == Decimal("30.00")

    set_item_pricing(item, price=Decimal("7.50"))
    assert item.total == Decimal("22.50")


@pytest.mark.unit
def test_recompute_order_totals_keeps_discount():
    order = _order(discount=Decimal("2.00"))
    items = [
        OrderItem(quantity=1, price=Decimal("10.00"), total=Decimal("10.00")),
        OrderItem(quantity=2, price=Decimal("5.00"), total=Decimal("10.00")),
    ]

    recompute_order_totals(order, items)

    assert order.subtotal == Decimal("20.00")
    assert order.tax == Decimal("4.00")
    assert order.shipping == Decimal("5.99")
    assert order.total == Decimal("27.99")


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    "current,target",
    [
        (OrderStatus.PENDING, OrderStatus.PAID),
        (OrderStatus.PENDING, OrderStatus.CANCELLED),
        (OrderStatus.PAID, OrderStatus.PROCESSING),
        (OrderStatus.PAID, OrderStatus.CANCELLED),
        (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
        (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
        (OrderStatus.SHIPPED, OrderStatus.REFUNDED),
    ],
)
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.unit
@pytest.mark.parametrize(
    "current,target",
    [
        (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
        (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
        (OrderStatus.DELIVERED, OrderStatus.REFUNDED),
        (OrderStatus.CANCELLED, OrderStatus.PAID),
        (OrderStatus.REFUNDED, OrderStatus.PENDING),
        (OrderStatus.PENDING, OrderStatus.SHIPPED),
    ],
)
def test_rejected_transitions(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidTransitionError):
        apply_status(_order(status=current), target)


@pytest.mark.unit
def test_shipped_and_delivered_stamped_once():
    order = _order(status=OrderStatus.PROCESSING)

    apply_status(order, OrderStatus.SHIPPED)
    first_shipped = order.shipped_at
    assert first_shipped is not None

    apply_status(order, OrderStatus.SHIPPED)
    assert order.shipped_at == first_shipped

    apply_status(order, OrderStatus.DELIVERED)
    delivered = order.delivered_at
    assert delivered is not None

    # Admin override back and forth keeps the first stamps
    apply_status(order, OrderStatus.SHIPPED, enforce=False)
    apply_status(order, OrderStatus.DELIVERED, enforce=False)
    assert order.shipped_at == first_shipped
    assert order.delivered_at == delivered


@pytest.mark.unit
def test_admin_override_skips_state_machine():
    order = _order(status=OrderStatus.CANCELLED)

    apply_status(order, OrderStatus.PROCESSING, enforce=False)

    assert order.status == OrderStatus.PROCESSING
