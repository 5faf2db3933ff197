"""Order status operations: lookups, customer cancellation, admin transitions and edits."""

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import end_of_day, start_of_day
from libs.common.logging import bind_request_context, get_logger
from services.store_service.errors import InvalidTransitionError, NotFoundError
from services.store_service.models import Order, OrderItem, OrderStatus, PaymentStatus
from services.store_service.services import catalog
from services.store_service.services.ledger import (
    CANCELLABLE_STATUSES,
    apply_status,
    recompute_order_totals,
    set_item_pricing,
)
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)


def _with_details(query):
    return query.options(selectinload(Order.items), selectinload(Order.address))


async def load_order(db: AsyncSession, order_id: uuid.UUID) -> Order:
    """Load an order with its items and address."""
    result = await db.execute(
        _with_details(select(Order).where(Order.id == order_id)).execution_options(
            populate_existing=True
        )
    )
    order = result.scalar_one_or_none()
    if not order:
        raise NotFoundError("Order", order_id)
    return order


async def _list_with_count(db: AsyncSession, query, page: int, limit: int):
    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    result = await db.execute(
        _with_details(query)
        .order_by(Order.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def list_orders(
    db: AsyncSession,
    *,
    user_id: str,
    page: int = 1,
    limit: int = 10,
    status: Optional[OrderStatus] = None,
) -> tuple[list[Order], int]:
    """A user's orders, newest first, with the total count for pagination."""
    query = select(Order).where(Order.user_id == user_id)
    if status:
        query = query.where(Order.status == status)
    return await _list_with_count(db, query, page, limit)


async def admin_list_orders(
    db: AsyncSession,
    *,
    page: int = 1,
    limit: int = 20,
    status: Optional[OrderStatus] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> tuple[list[Order], int]:
    query = select(Order)
    if status:
        query = query.where(Order.status == status)
    if date_from:
        query = query.where(Order.created_at >= start_of_day(date_from))
    if date_to:
        query = query.where(Order.created_at <= end_of_day(date_to))
    return await _list_with_count(db, query, page, limit)


async def get_order(db: AsyncSession, *, user_id: str, order_id: uuid.UUID) -> Order:
    result = await db.execute(
        _with_details(
            select(Order).where(Order.id == order_id, Order.user_id == user_id)
        )
    )
    order = result.scalar_one_or_none()
    if not order:
        raise NotFoundError("Order", order_id)
    return order


# ============================================================================
# CUSTOMER CANCELLATION
# ============================================================================


async def cancel_order(
    db: AsyncSession, *, user_id: str, order_id: uuid.UUID
) -> Order:
    """Cancel a pending or paid order and put its variant stock back.

    The order row is locked for the duration so two cancellations cannot
    both restock. Restock and status change commit together.
    """
    try:
        result = await db.execute(
            select(Order)
            .where(Order.id == order_id, Order.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise NotFoundError("Order", order_id)

        if order.status not in CANCELLABLE_STATUSES:
            raise InvalidTransitionError(
                OrderStatus(order.status).value,
                OrderStatus.CANCELLED.value,
                message="Order cannot be cancelled at this stage",
            )

        items_result = await db.execute(
            select(OrderItem).where(OrderItem.order_id == order.id)
        )
        for item in items_result.scalars().all():
            if item.variant_id is not None:
                await catalog.increment_stock(db, item.variant_id, item.quantity)

        apply_status(order, OrderStatus.CANCELLED)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    bind_request_context(order_number=order.order_number)
    logger.info("Order %s cancelled by user %s", order.order_number, user_id)
    return await load_order(db, order.id)


# ============================================================================
# ADMIN OPERATIONS
# ============================================================================


async def set_status(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    new_status: OrderStatus,
    notes: Optional[str] = None,
) -> Order:
    """Administrative status override.

    Skips the customer state machine but still stamps shipped/delivered
    timestamps only once. No stock side effects.
    """
    try:
        order = await db.get(Order, order_id)
        if not order:
            raise NotFoundError("Order", order_id)

        old_status = OrderStatus(order.status)
        apply_status(order, new_status, enforce=False)
        if notes:
            order.notes = notes
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Order %s status changed %s -> %s by admin",
        order.order_number,
        old_status.value,
        new_status.value,
    )
    return await load_order(db, order.id)


async def mark_paid(db: AsyncSession, *, order_id: uuid.UUID) -> Order:
    """Record a confirmed payment. Idempotent for orders already paid."""
    try:
        order = await db.get(Order, order_id)
        if not order:
            raise NotFoundError("Order", order_id)

        if (
            order.status == OrderStatus.PAID
            and order.payment_status == PaymentStatus.PAID
        ):
            return await load_order(db, order.id)

        apply_status(order, OrderStatus.PAID)
        order.payment_status = PaymentStatus.PAID
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Order %s marked paid", order.order_number)
    return await load_order(db, order.id)


async def update_order_item(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    item_id: uuid.UUID,
    quantity: Optional[int] = None,
    price: Optional[Decimal] = None,
) -> Order:
    """Administrative edit of a line's quantity or unit price.

    The line total and the order totals are recomputed. Stock is untouched.
    """
    try:
        order = await db.get(Order, order_id)
        if not order:
            raise NotFoundError("Order", order_id)

        items_result = await db.execute(
            select(OrderItem).where(OrderItem.order_id == order.id)
        )
        items = list(items_result.scalars().all())
        item = next((i for i in items if i.id == item_id), None)
        if item is None:
            raise NotFoundError("Order item", item_id)

        set_item_pricing(item, quantity=quantity, price=price)
        recompute_order_totals(order, items)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Order %s item %s edited: qty=%d price=%s total=%s",
        order.order_number,
        item.id,
        item.quantity,
        item.price,
        order.total,
    )
    return await load_order(db, order.id)
