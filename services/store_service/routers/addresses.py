"""Store addresses router: a customer's saved shipping and billing addresses."""

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.store_service.models import Address
from services.store_service.schemas import AddressCreate, AddressResponse
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["store"])


@router.get("/addresses", response_model=list[AddressResponse])
async def list_addresses(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    result = await db.execute(
        select(Address)
        .where(Address.user_id == current_user.user_id)
        .order_by(Address.is_default.desc(), Address.created_at.desc())
    )
    return result.scalars().all()


@router.post(
    "/addresses", response_model=AddressResponse, status_code=status.HTTP_201_CREATED
)
async def create_address(
    address_in: AddressCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Save an address. A new default address replaces the previous default."""
    if address_in.is_default:
        await db.execute(
            update(Address)
            .where(
                Address.user_id == current_user.user_id,
                Address.type == address_in.type,
            )
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )

    address = Address(user_id=current_user.user_id, **address_in.model_dump())
    db.add(address)
    await db.commit()
    await db.refresh(address)
    return address
