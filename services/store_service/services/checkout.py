"""Checkout: turn the user's active cart into a persisted order.

1. Verify the address belongs to the user
2. Load the cart items and re-read each product/variant (variants locked FOR UPDATE)
3. Validate every line and price it at current catalog prices
4. Create the order and its item snapshots
5. Take stock for every variant line (guarded UPDATE)
6. Clear the cart items and commit steps 4-6 together
7. Request a charge intent; failures are logged and the order stays pending
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from libs.common.config import get_settings
from libs.common.currency import to_minor_units
from libs.common.logging import bind_request_context, get_logger
from services.store_service.errors import (
    EmptyCartError,
    InsufficientStockError,
    NotFoundError,
    ProductUnavailableError,
    StoreError,
    VariantRequiredError,
    VariantUnavailableError,
)
from services.store_service.models import (
    Address,
    CartItem,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    Product,
    ProductVariant,
)
from services.store_service.payments import (
    ChargeIntent,
    PaymentGateway,
    PaymentGatewayError,
)
from services.store_service.services import cart as cart_store
from services.store_service.services import catalog
from services.store_service.services.ledger import (
    compute_totals,
    generate_order_number,
    line_total,
)
from services.store_service.services.orders import load_order
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

STRIPE_PAYMENT_METHOD = "stripe"


@dataclass
class PricedLine:
    """A validated cart line priced at current catalog prices."""

    cart_item: CartItem
    product: Product
    variant: Optional[ProductVariant]
    unit_price: Decimal

    @property
    def total(self) -> Decimal:
        return line_total(self.cart_item.quantity, self.unit_price)


@dataclass
class CheckoutResult:
    order: Order
    payment_intent: Optional[ChargeIntent] = None


async def get_user_address(
    db: AsyncSession, user_id: str, address_id: uuid.UUID
) -> Address:
    result = await db.execute(
        select(Address).where(Address.id == address_id, Address.user_id == user_id)
    )
    address = result.scalar_one_or_none()
    if not address:
        raise NotFoundError("Address", address_id)
    return address


def price_cart_lines(
    items: list[CartItem],
    products: dict[uuid.UUID, Product],
    variants: dict[uuid.UUID, ProductVariant],
    variant_backed: Optional[set[uuid.UUID]] = None,
) -> list[PricedLine]:
    """Validate every cart line against the current catalog state, in cart order.

    ``variant_backed`` holds products that now have variants; a line without
    a variant for one of them can no longer be bought as unlimited stock.
    Raises on the first line that cannot be bought; nothing is written.
    """
    lines = []
    for item in items:
        product = products.get(item.product_id)
        if product is None:
            raise NotFoundError("Product", item.product_id)
        if not product.is_active:
            raise ProductUnavailableError(product.name, product.id)

        variant = None
        if item.variant_id is not None:
            variant = variants.get(item.variant_id)
            if variant is None:
                raise NotFoundError("Variant", item.variant_id)
            if not variant.is_active:
                raise VariantUnavailableError(product.name, variant.name, variant.id)
            if variant.stock < item.quantity:
                raise InsufficientStockError(
                    product.name,
                    variant.name,
                    available=variant.stock,
                    requested=item.quantity,
                )
            unit_price = variant.current_price(product)
        elif variant_backed and product.id in variant_backed:
            raise VariantRequiredError(product.name)
        else:
            unit_price = product.current_price

        lines.append(
            PricedLine(
                cart_item=item,
                product=product,
                variant=variant,
                unit_price=Decimal(unit_price),
            )
        )
    return lines


def build_order_items(order: Order, lines: list[PricedLine]) -> list[OrderItem]:
    """Freeze name, sku and price for each line onto the order."""
    return [
        OrderItem(
            order_id=order.id,
            product_id=line.product.id,
            variant_id=line.variant.id if line.variant else None,
            product_name=line.product.name,
            variant_name=line.variant.name if line.variant else None,
            sku=line.variant.sku if line.variant else line.product.sku,
            quantity=line.cart_item.quantity,
            price=line.unit_price,
            total=line.total,
        )
        for line in lines
    ]


async def place_order(
    db: AsyncSession,
    *,
    user_id: str,
    address_id: uuid.UUID,
    payment_method: str,
    gateway: PaymentGateway,
) -> CheckoutResult:
    """Convert the user's active cart into an order.

    Order creation, stock decrements and cart clearing commit as one unit; a
    validation failure anywhere rolls the session back before any of them is
    visible. The gateway call happens after that commit and never undoes it.
    """
    settings = get_settings()

    try:
        await get_user_address(db, user_id, address_id)

        cart = await cart_store.get_active_cart(db, user_id)
        items = await cart_store.list_cart_items(db, cart.id) if cart else []
        if not items:
            raise EmptyCartError()

        products = await catalog.load_products(db, (i.product_id for i in items))
        variants = await catalog.lock_variants(
            db, (i.variant_id for i in items if i.variant_id is not None)
        )
        variant_backed = await catalog.products_with_variants(
            db, (i.product_id for i in items if i.variant_id is None)
        )
        lines = price_cart_lines(items, products, variants, variant_backed)

        subtotal = sum((line.total for line in lines), Decimal("0"))
        totals = compute_totals(subtotal)

        order = Order(
            id=uuid.uuid4(),
            order_number=generate_order_number(),
            user_id=user_id,
            address_id=address_id,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            payment_method=payment_method,
            currency=settings.STORE_CURRENCY,
            subtotal=totals.subtotal,
            tax=totals.tax,
            shipping=totals.shipping,
            discount=totals.discount,
            total=totals.total,
        )
        db.add(order)
        await db.flush()
        db.add_all(build_order_items(order, lines))

        for line in lines:
            if line.variant is not None:
                await catalog.decrement_stock(
                    db,
                    line.variant,
                    line.cart_item.quantity,
                    product_name=line.product.name,
                )

        await cart_store.clear_items(db, cart.id)
        await db.commit()
    except StoreError as exc:
        await db.rollback()
        logger.warning(
            "Checkout rejected for user %s: %s (%s)", user_id, exc.message, exc.kind
        )
        raise
    except Exception:
        await db.rollback()
        raise

    bind_request_context(order_number=order.order_number)
    logger.info(
        "Order %s placed for user %s: %d items, total %s %s",
        order.order_number,
        user_id,
        len(lines),
        order.total,
        order.currency,
    )

    order_id = order.id
    payment_intent = None
    if payment_method == STRIPE_PAYMENT_METHOD:
        payment_intent = await _request_charge_intent(db, order, gateway)

    order = await load_order(db, order_id)
    return CheckoutResult(order=order, payment_intent=payment_intent)


async def _request_charge_intent(
    db: AsyncSession, order: Order, gateway: PaymentGateway
) -> Optional[ChargeIntent]:
    """Ask the gateway for a charge intent and record its reference.

    The order is already committed. Any failure here, from the gateway or
    from saving the intent id, leaves it pending for reconciliation instead
    of failing the checkout.
    """
    order_number = order.order_number
    try:
        intent = await gateway.create_charge_intent(
            to_minor_units(order.total),
            order.currency,
            {
                "order_id": str(order.id),
                "order_number": order_number,
                "user_id": order.user_id,
            },
            idempotency_key=f"order-{order.id}",
        )
        order.payment_intent_id = intent.intent_id
        await db.commit()
    except PaymentGatewayError as exc:
        logger.error(
            "Payment gateway failed for order %s: %s", order_number, exc.message
        )
        return None
    except Exception:
        await db.rollback()
        logger.exception("Charge intent failed for order %s", order_number)
        return None

    return intent
