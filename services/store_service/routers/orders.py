"""Store orders router: checkout, order history and cancellation."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.store_service.models import OrderStatus
from services.store_service.payments import PaymentGateway, get_payment_gateway
from services.store_service.routers._helpers import paginate_orders
from services.store_service.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    OrderListResponse,
    OrderResponse,
    PaymentIntentResponse,
)
from services.store_service.services import orders as order_service
from services.store_service.services.checkout import place_order
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["store"])


# ============================================================================
# CHECKOUT
# ============================================================================


@router.post(
    "/orders", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED
)
async def create_order(
    request: CheckoutRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Turn the active cart into an order and reserve its stock.

    ``payment_intent`` is null when the method is not card payment or when
    the gateway could not be reached; the order stays pending either way.
    """
    result = await place_order(
        db,
        user_id=current_user.user_id,
        address_id=request.address_id,
        payment_method=request.payment_method,
        gateway=gateway,
    )

    payment_intent = None
    if result.payment_intent:
        payment_intent = PaymentIntentResponse(
            id=result.payment_intent.intent_id,
            client_secret=result.payment_intent.client_secret,
        )
    return CheckoutResponse(
        order=OrderResponse.model_validate(result.order),
        payment_intent=payment_intent,
    )


# ============================================================================
# ORDER HISTORY
# ============================================================================


@router.get("/orders", response_model=OrderListResponse)
async def list_my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    orders, total = await order_service.list_orders(
        db, user_id=current_user.user_id, page=page, limit=limit, status=status_filter
    )
    return paginate_orders(orders, total, page, limit)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_my_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await order_service.get_order(
        db, user_id=current_user.user_id, order_id=order_id
    )


@router.post("/orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_my_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Cancel a pending or paid order; reserved stock is returned."""
    return await order_service.cancel_order(
        db, user_id=current_user.user_id, order_id=order_id
    )
