"""Store catalog models: products and their purchasable variants."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer
from sqlalchemy import Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# CATALOG MODELS
# ============================================================================


class Product(Base):
    """Products available in the store.

    Stock lives on variants. A product with no variants is sold directly and
    is treated as having unlimited stock.
    """

    __tablename__ = "store_products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(100), unique=True, nullable=True)

    # Pricing
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    sale_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), nullable=True
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("base_price >= 0", name="product_base_price_non_negative"),
    )

    # Relationships
    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="raise",
    )

    @property
    def current_price(self) -> Decimal:
        """Sale price when it undercuts the base price, else the base price."""
        if self.sale_price is not None and self.sale_price < self.base_price:
            return self.sale_price
        return self.base_price

    def __repr__(self):
        return f"<Product {self.name}>"


class ProductVariant(Base):
    """Product variants (e.g., 'Red - Large') with their own stock counter."""

    __tablename__ = "store_product_variants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("store_products.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(100), unique=True, nullable=True)

    # Pricing override (null = use product base price)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    sale_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), nullable=True
    )

    stock: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (CheckConstraint("stock >= 0", name="variant_stock_non_negative"),)

    # Relationships
    product = relationship("Product", back_populates="variants", lazy="raise")

    def current_price(self, product: Product) -> Decimal:
        """Resolve the unit price: variant sale price, variant price, product base price."""
        if self.sale_price is not None:
            return self.sale_price
        if self.price is not None:
            return self.price
        return product.base_price

    def __repr__(self):
        return f"<ProductVariant {self.sku or self.name} stock={self.stock}>"
