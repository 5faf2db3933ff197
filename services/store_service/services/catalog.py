"""Catalog store access for checkout: explicit product/variant reads and guarded stock updates.

Nothing here commits. Callers own the transaction boundary.
"""

import uuid
from typing import Iterable, Optional

from libs.common.logging import get_logger
from services.store_service.errors import InsufficientStockError, NotFoundError
from services.store_service.models import Product, ProductVariant
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def load_products(
    db: AsyncSession, product_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, Product]:
    ids = set(product_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(Product).where(Product.id.in_(ids)).execution_options(
            populate_existing=True
        )
    )
    return {product.id: product for product in result.scalars().all()}


async def lock_variants(
    db: AsyncSession, variant_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, ProductVariant]:
    """Load variants with ``SELECT ... FOR UPDATE``.

    Rows are locked in ascending id order so concurrent checkouts touching
    the same variants always acquire locks in the same sequence.
    """
    ids = sorted(set(variant_ids))
    if not ids:
        return {}
    result = await db.execute(
        select(ProductVariant)
        .where(ProductVariant.id.in_(ids))
        .order_by(ProductVariant.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {variant.id: variant for variant in result.scalars().all()}


async def get_product_with_variant(
    db: AsyncSession,
    product_id: uuid.UUID,
    variant_id: Optional[uuid.UUID] = None,
) -> tuple[Product, Optional[ProductVariant]]:
    product = await db.get(Product, product_id)
    if not product:
        raise NotFoundError("Product", product_id)

    variant = None
    if variant_id is not None:
        variant = await db.get(ProductVariant, variant_id)
        if not variant or variant.product_id != product.id:
            raise NotFoundError("Variant", variant_id)
    return product, variant


async def product_has_variants(db: AsyncSession, product_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(ProductVariant.id).where(ProductVariant.product_id == product_id).limit(1)
    )
    return result.first() is not None


async def products_with_variants(
    db: AsyncSession, product_ids: Iterable[uuid.UUID]
) -> set[uuid.UUID]:
    """The subset of ``product_ids`` that have at least one variant."""
    ids = set(product_ids)
    if not ids:
        return set()
    result = await db.execute(
        select(ProductVariant.product_id)
        .where(ProductVariant.product_id.in_(ids))
        .distinct()
    )
    return set(result.scalars().all())


async def decrement_stock(
    db: AsyncSession,
    variant: ProductVariant,
    quantity: int,
    *,
    product_name: str,
) -> int:
    """Atomically take ``quantity`` units from a variant.

    The ``stock >= quantity`` guard makes the update a no-op when another
    transaction got there first; that surfaces as ``InsufficientStockError``
    and the caller rolls back. Returns the new stock level.
    """
    result = await db.execute(
        update(ProductVariant)
        .where(ProductVariant.id == variant.id, ProductVariant.stock >= quantity)
        .values(stock=ProductVariant.stock - quantity)
        .returning(ProductVariant.stock)
        .execution_options(synchronize_session="fetch")
    )
    new_stock = result.scalar_one_or_none()
    if new_stock is None:
        current = await db.scalar(
            select(ProductVariant.stock).where(ProductVariant.id == variant.id)
        )
        logger.warning(
            "Stock guard rejected decrement of %d for variant %s (stock=%s)",
            quantity,
            variant.id,
            current,
        )
        raise InsufficientStockError(
            product_name, variant.name, available=current or 0, requested=quantity
        )
    return new_stock


async def increment_stock(
    db: AsyncSession, variant_id: uuid.UUID, quantity: int
) -> Optional[int]:
    """Return ``quantity`` units to a variant. Returns the new stock, or None if the variant is gone."""
    result = await db.execute(
        update(ProductVariant)
        .where(ProductVariant.id == variant_id)
        .values(stock=ProductVariant.stock + quantity)
        .returning(ProductVariant.stock)
        .execution_options(synchronize_session="fetch")
    )
    new_stock = result.scalar_one_or_none()
    if new_stock is None:
        logger.warning(
            "Could not restock %d units: variant %s no longer exists",
            quantity,
            variant_id,
        )
    return new_stock
