"""Cart store: the active cart for a user and its line items."""

import uuid
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.store_service.errors import (
    InsufficientStockError,
    NotFoundError,
    ProductUnavailableError,
    VariantRequiredError,
    VariantUnavailableError,
)
from services.store_service.models import Cart, CartItem
from services.store_service.services import catalog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def get_active_cart(db: AsyncSession, user_id: str) -> Optional[Cart]:
    result = await db.execute(
        select(Cart)
        .where(Cart.user_id == user_id, Cart.is_active.is_(True))
        .order_by(Cart.created_at.desc())
    )
    return result.scalars().first()


async def get_or_create_cart(db: AsyncSession, user_id: str) -> Cart:
    cart = await get_active_cart(db, user_id)
    if cart:
        return cart

    cart = Cart(user_id=user_id)
    db.add(cart)
    await db.commit()
    await db.refresh(cart)
    return cart


async def list_cart_items(db: AsyncSession, cart_id: uuid.UUID) -> list[CartItem]:
    """Cart items in the order they were added."""
    result = await db.execute(
        select(CartItem)
        .where(CartItem.cart_id == cart_id)
        .order_by(CartItem.created_at, CartItem.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def clear_items(db: AsyncSession, cart_id: uuid.UUID) -> None:
    """Delete every item in the cart, keeping the cart itself. Does not commit."""
    await db.execute(
        delete(CartItem)
        .where(CartItem.cart_id == cart_id)
        .execution_options(synchronize_session="fetch")
    )


async def add_item(
    db: AsyncSession,
    *,
    user_id: str,
    product_id: uuid.UUID,
    variant_id: Optional[uuid.UUID],
    quantity: int,
) -> CartItem:
    """Add a product (and variant, when the product has any) to the user's cart.

    The current price is captured on the line. Adding an existing
    product/variant pair increases its quantity.
    """
    cart = await get_or_create_cart(db, user_id)
    product, variant = await catalog.get_product_with_variant(db, product_id, variant_id)

    if not product.is_active:
        raise ProductUnavailableError(product.name, product.id)

    if variant is None and await catalog.product_has_variants(db, product.id):
        raise VariantRequiredError(product.name)

    existing_result = await db.execute(
        select(CartItem).where(
            CartItem.cart_id == cart.id,
            CartItem.product_id == product.id,
            (
                CartItem.variant_id == variant.id
                if variant
                else CartItem.variant_id.is_(None)
            ),
        )
    )
    existing = existing_result.scalar_one_or_none()
    new_quantity = quantity + (existing.quantity if existing else 0)

    if variant is not None:
        if not variant.is_active:
            raise VariantUnavailableError(product.name, variant.name, variant.id)
        if variant.stock < new_quantity:
            raise InsufficientStockError(
                product.name, variant.name, available=variant.stock, requested=new_quantity
            )
        price = variant.current_price(product)
    else:
        price = product.current_price

    if existing:
        existing.quantity = new_quantity
        existing.price = price
        item = existing
    else:
        item = CartItem(
            cart_id=cart.id,
            product_id=product.id,
            variant_id=variant.id if variant else None,
            quantity=quantity,
            price=price,
        )
        db.add(item)

    cart.updated_at = utc_now()
    await db.commit()
    await db.refresh(item)
    logger.info(
        "Cart %s: %s x%d at %s", cart.id, product.name, item.quantity, item.price
    )
    return item


async def _get_user_cart_item(
    db: AsyncSession, user_id: str, item_id: uuid.UUID
) -> CartItem:
    result = await db.execute(
        select(CartItem)
        .join(Cart, Cart.id == CartItem.cart_id)
        .where(
            CartItem.id == item_id,
            Cart.user_id == user_id,
            Cart.is_active.is_(True),
        )
    )
    item = result.scalar_one_or_none()
    if not item:
        raise NotFoundError("Cart item", item_id)
    return item


async def update_item_quantity(
    db: AsyncSession, *, user_id: str, item_id: uuid.UUID, quantity: int
) -> CartItem:
    item = await _get_user_cart_item(db, user_id, item_id)
    product, variant = await catalog.get_product_with_variant(
        db, item.product_id, item.variant_id
    )
    if variant is not None and variant.stock < quantity:
        raise InsufficientStockError(
            product.name, variant.name, available=variant.stock, requested=quantity
        )

    item.quantity = quantity
    await db.commit()
    await db.refresh(item)
    return item


async def remove_item(db: AsyncSession, *, user_id: str, item_id: uuid.UUID) -> None:
    item = await _get_user_cart_item(db, user_id, item_id)
    await db.execute(
        delete(CartItem)
        .where(CartItem.id == item.id)
        .execution_options(synchronize_session="fetch")
    )
    await db.commit()
