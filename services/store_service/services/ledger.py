"""Order ledger: order numbers, money math, and the order status state machine.

Everything here is pure and synchronous so it can be called explicitly at the
exact sites that create or edit orders.
"""

import secrets
import string
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from libs.common.currency import round_money
from libs.common.datetime_utils import utc_now
from services.store_service.errors import InvalidTransitionError
from services.store_service.models import Order, OrderItem, OrderStatus

# Flat VAT and shipping rules, no jurisdiction logic
TAX_RATE = Decimal("0.20")
FREE_SHIPPING_THRESHOLD = Decimal("50.00")
FLAT_SHIPPING_FEE = Decimal("5.99")

ORDER_NUMBER_PREFIX = "ORD"
_BASE36 = string.digits + string.ascii_uppercase

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.PAID, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
    ),
    OrderStatus.PAID: frozenset(
        {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
    ),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.REFUNDED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.REFUNDED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PAID})


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal


def generate_order_number(now_ms: Optional[int] = None) -> str:
    """Generate an order number like ORD-1767225600000-K3Z9QW1AB.

    Epoch millis plus nine random base36 characters. Collisions are not
    retried; the unique index on ``order_number`` is the backstop.
    """
    millis = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{ORDER_NUMBER_PREFIX}-{millis}-{suffix}"


def line_total(quantity: int, price: Decimal) -> Decimal:
    return round_money(Decimal(quantity) * Decimal(price))


def compute_shipping(subtotal: Decimal) -> Decimal:
    return Decimal("0.00") if subtotal > FREE_SHIPPING_THRESHOLD else FLAT_SHIPPING_FEE


def compute_totals(subtotal: Decimal, discount: Decimal = Decimal("0")) -> OrderTotals:
    """Derive tax, shipping and total from a subtotal.

    total = subtotal + tax + shipping - discount, floored at zero.
    """
    subtotal = round_money(subtotal)
    discount = round_money(discount)
    tax = round_money(subtotal * TAX_RATE)
    shipping = compute_shipping(subtotal)
    total = round_money(max(subtotal + tax + shipping - discount, Decimal("0")))
    return OrderTotals(
        subtotal=subtotal, tax=tax, shipping=shipping, discount=discount, total=total
    )


def apply_totals(order: Order, totals: OrderTotals) -> None:
    order.subtotal = totals.subtotal
    order.tax = totals.tax
    order.shipping = totals.shipping
    order.discount = totals.discount
    order.total = totals.total


def set_item_pricing(
    item: OrderItem, *, quantity: Optional[int] = None, price: Optional[Decimal] = None
) -> None:
    """Update quantity and/or unit price and recompute the line total."""
    if quantity is not None:
        item.quantity = quantity
    if price is not None:
        item.price = round_money(price)
    item.total = line_total(item.quantity, item.price)


def recompute_order_totals(order: Order, items: Iterable[OrderItem]) -> OrderTotals:
    """Re-derive an order's totals from its line items, keeping its discount."""
    subtotal = sum((Decimal(item.total) for item in items), Decimal("0"))
    totals = compute_totals(subtotal, Decimal(order.discount or 0))
    apply_totals(order, totals)
    return totals


# ============================================================================
# STATUS STATE MACHINE
# ============================================================================


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def apply_status(order: Order, new_status: OrderStatus, *, enforce: bool = True) -> None:
    """Move ``order`` to ``new_status``.

    With ``enforce`` the move must be an edge of the state machine; admin
    overrides pass ``enforce=False``. Re-entering the current status is
    allowed either way. ``shipped_at``/``delivered_at`` are stamped only the
    first time the order enters that status.
    """
    current = OrderStatus(order.status)
    if enforce and new_status != current and not can_transition(current, new_status):
        raise InvalidTransitionError(current.value, new_status.value)

    order.status = new_status

    if new_status == OrderStatus.SHIPPED and order.shipped_at is None:
        order.shipped_at = utc_now()
    elif new_status == OrderStatus.DELIVERED and order.delivered_at is None:
        order.delivered_at = utc_now()
