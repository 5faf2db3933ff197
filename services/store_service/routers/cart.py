"""Store cart router: view the active cart and edit its lines."""

import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.store_service.schemas import (
    CartItemCreate,
    CartItemResponse,
    CartItemUpdate,
    CartResponse,
)
from services.store_service.services import cart as cart_store
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["store"])


async def _cart_response(db: AsyncSession, user_id: str) -> CartResponse:
    cart = await cart_store.get_or_create_cart(db, user_id)
    items = await cart_store.list_cart_items(db, cart.id)
    return CartResponse(
        id=cart.id,
        items=[CartItemResponse.model_validate(i) for i in items],
        subtotal=sum((i.line_total for i in items), Decimal("0")),
    )


@router.get("/cart", response_model=CartResponse)
async def get_cart(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Get the current user's cart, creating an empty one if needed."""
    return await _cart_response(db, current_user.user_id)


@router.post(
    "/cart/items", response_model=CartResponse, status_code=status.HTTP_201_CREATED
)
async def add_cart_item(
    item_in: CartItemCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await cart_store.add_item(
        db,
        user_id=current_user.user_id,
        product_id=item_in.product_id,
        variant_id=item_in.variant_id,
        quantity=item_in.quantity,
    )
    return await _cart_response(db, current_user.user_id)


@router.patch("/cart/items/{item_id}", response_model=CartResponse)
async def update_cart_item(
    item_id: uuid.UUID,
    item_in: CartItemUpdate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await cart_store.update_item_quantity(
        db, user_id=current_user.user_id, item_id=item_id, quantity=item_in.quantity
    )
    return await _cart_response(db, current_user.user_id)


@router.delete("/cart/items/{item_id}", response_model=CartResponse)
async def remove_cart_item(
    item_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await cart_store.remove_item(db, user_id=current_user.user_id, item_id=item_id)
    return await _cart_response(db, current_user.user_id)
