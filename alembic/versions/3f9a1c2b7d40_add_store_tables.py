"""add_store_tables

Revision ID: 3f9a1c2b7d40
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c2b7d40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

order_status_enum = sa.Enum(
    'pending', 'paid', 'processing', 'shipped', 'delivered', 'cancelled', 'refunded',
    name='store_order_status_enum',
)
payment_status_enum = sa.Enum(
    'pending', 'paid', 'failed', 'refunded', name='store_payment_status_enum'
)
address_type_enum = sa.Enum('billing', 'shipping', name='store_address_type_enum')


def _timestamps(updated: bool = True) -> list:
    columns = [sa.Column('created_at', sa.DateTime(timezone=True), nullable=True)]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True))
    return columns


def upgrade() -> None:
    """Upgrade schema - Add store catalog, cart and order tables."""

    op.create_table(
        'store_products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('sku', sa.String(length=100), nullable=True),
        sa.Column('base_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('sale_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=True),
        *_timestamps(),
        sa.CheckConstraint('base_price >= 0', name='product_base_price_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
        sa.UniqueConstraint('sku'),
    )

    op.create_table(
        'store_product_variants',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=100), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=True),
        sa.Column('sale_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('stock', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=True),
        *_timestamps(),
        sa.CheckConstraint('stock >= 0', name='variant_stock_non_negative'),
        sa.ForeignKeyConstraint(['product_id'], ['store_products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
    )
    op.create_index(
        'ix_store_product_variants_product_id', 'store_product_variants', ['product_id']
    )

    op.create_table(
        'store_addresses',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('type', address_type_enum, server_default='shipping', nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('company', sa.String(length=255), nullable=True),
        sa.Column('address1', sa.String(length=255), nullable=False),
        sa.Column('address2', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=False),
        sa.Column('state', sa.String(length=100), nullable=False),
        sa.Column('postal_code', sa.String(length=20), nullable=False),
        sa.Column('country', sa.String(length=100), server_default='France', nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('is_default', sa.Boolean(), server_default='false', nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_store_addresses_user_id', 'store_addresses', ['user_id'])

    op.create_table(
        'store_carts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_store_carts_user_id', 'store_carts', ['user_id'])
    op.create_index(
        'ix_store_carts_user_id_active', 'store_carts', ['user_id', 'is_active']
    )

    op.create_table(
        'store_cart_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('cart_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('variant_id', sa.Uuid(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('quantity > 0', name='cart_item_positive_quantity'),
        sa.ForeignKeyConstraint(['cart_id'], ['store_carts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['store_products.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['store_product_variants.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_store_cart_items_cart_id', 'store_cart_items', ['cart_id'])

    op.create_table(
        'store_orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_number', sa.String(length=50), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('address_id', sa.Uuid(), nullable=False),
        sa.Column('status', order_status_enum, server_default='pending', nullable=True),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False),
        sa.Column('tax', sa.Numeric(10, 2), server_default='0', nullable=False),
        sa.Column('shipping', sa.Numeric(10, 2), server_default='0', nullable=False),
        sa.Column('discount', sa.Numeric(10, 2), server_default='0', nullable=False),
        sa.Column('total', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), server_default='EUR', nullable=False),
        sa.Column('payment_method', sa.String(length=50), nullable=True),
        sa.Column(
            'payment_status', payment_status_enum, server_default='pending', nullable=True
        ),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            'subtotal >= 0 AND tax >= 0 AND shipping >= 0 AND discount >= 0 AND total >= 0',
            name='order_amounts_non_negative',
        ),
        sa.ForeignKeyConstraint(['address_id'], ['store_addresses.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_store_orders_order_number', 'store_orders', ['order_number'], unique=True
    )
    op.create_index('ix_store_orders_user_id', 'store_orders', ['user_id'])
    op.create_index('ix_store_orders_status', 'store_orders', ['status'])
    op.create_index(
        'ix_store_orders_payment_intent_id', 'store_orders', ['payment_intent_id']
    )
    op.create_index(
        'ix_store_orders_user_id_created_at', 'store_orders', ['user_id', 'created_at']
    )

    op.create_table(
        'store_order_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('variant_id', sa.Uuid(), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('variant_name', sa.String(length=255), nullable=True),
        sa.Column('sku', sa.String(length=100), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('total', sa.Numeric(10, 2), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint('quantity > 0', name='order_item_positive_quantity'),
        sa.CheckConstraint(
            'price >= 0 AND total >= 0', name='order_item_amounts_non_negative'
        ),
        sa.ForeignKeyConstraint(['order_id'], ['store_orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['store_products.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['store_product_variants.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_store_order_items_order_id', 'store_order_items', ['order_id'])


def downgrade() -> None:
    """Downgrade schema - Drop store tables."""
    op.drop_table('store_order_items')
    op.drop_table('store_orders')
    op.drop_table('store_cart_items')
    op.drop_table('store_carts')
    op.drop_table('store_addresses')
    op.drop_table('store_product_variants')
    op.drop_table('store_products')

    bind = op.get_bind()
    order_status_enum.drop(bind, checkfirst=True)
    payment_status_enum.drop(bind, checkfirst=True)
    address_type_enum.drop(bind, checkfirst=True)
