"""Store Service models package."""

from services.store_service.models.catalog import Product, ProductVariant
from services.store_service.models.commerce import (
    Address,
    Cart,
    CartItem,
    Order,
    OrderItem,
)
from services.store_service.models.enums import (
    AddressType,
    OrderStatus,
    PaymentStatus,
)

__all__ = [
    "Address",
    "AddressType",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "Product",
    "ProductVariant",
]
