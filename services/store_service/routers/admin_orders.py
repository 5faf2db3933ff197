"""Admin order management router."""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.store_service.models import OrderStatus
from services.store_service.routers._helpers import paginate_orders
from services.store_service.schemas import (
    OrderItemUpdate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
)
from services.store_service.services import orders as order_service
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["admin-store"])


@router.get("/orders", response_model=OrderListResponse)
async def admin_list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    orders, total = await order_service.admin_list_orders(
        db,
        page=page,
        limit=limit,
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
    )
    return paginate_orders(orders, total, page, limit)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def admin_get_order(
    order_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await order_service.load_order(db, order_id)


@router.patch("/orders/{order_id}/status", response_model=OrderResponse)
async def admin_update_order_status(
    order_id: uuid.UUID,
    update_in: OrderStatusUpdate,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Set any status. Shipped and delivered timestamps are stamped once."""
    return await order_service.set_status(
        db, order_id=order_id, new_status=update_in.status, notes=update_in.notes
    )


@router.post("/orders/{order_id}/mark-paid", response_model=OrderResponse)
async def admin_mark_order_paid(
    order_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await order_service.mark_paid(db, order_id=order_id)


@router.patch("/orders/{order_id}/items/{item_id}", response_model=OrderResponse)
async def admin_update_order_item(
    order_id: uuid.UUID,
    item_id: uuid.UUID,
    update_in: OrderItemUpdate,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await order_service.update_order_item(
        db,
        order_id=order_id,
        item_id=item_id,
        quantity=update_in.quantity,
        price=update_in.price,
    )
