"""Create catalog tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create users, merchants, taxonomy, products and product_variants tables."""
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('fullname', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('gender', sa.String(20), nullable=True),
        sa.Column('birth', sa.DateTime(timezone=True), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('avatar', sa.String(500), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sa.UniqueConstraint('email', name='uq_users_email'),
    )

    op.create_table(
        'merchants',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False, index=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('avatar', sa.String(500), nullable=True),
        sa.Column('type', sa.String(50), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['user_id'], ['users.id'], name='fk_merchants_user_id', ondelete='RESTRICT'
        ),
    )

    # Reference data
    op.create_table(
        'categories',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('type', sa.String(100), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'colours',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('hex', sa.String(7), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'sizes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('length', sa.Float(), nullable=True),
        sa.Column('height', sa.Float(), nullable=True),
        sa.Column('width', sa.Float(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('merchant_id', sa.String(36), nullable=False, index=True),
        sa.Column('category_id', sa.String(36), nullable=True, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price', sa.Numeric(14, 2), nullable=False),
        sa.Column('discount', sa.Numeric(14, 2), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('has_variant', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('weight', sa.Float(), nullable=True),
        sa.Column('avatar', sa.String(500), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['merchant_id'], ['merchants.id'], name='fk_products_merchant_id', ondelete='RESTRICT'
        ),
        sa.ForeignKeyConstraint(
            ['category_id'], ['categories.id'], name='fk_products_category_id', ondelete='SET NULL'
        ),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
    )

    op.create_table(
        'product_variants',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('product_id', sa.String(36), nullable=False, index=True),
        sa.Column('colour_id', sa.String(36), nullable=True),
        sa.Column('size_id', sa.String(36), nullable=True),
        sa.Column('sku', sa.String(100), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['product_id'], ['products.id'], name='fk_product_variants_product_id', ondelete='CASCADE'
        ),
        sa.ForeignKeyConstraint(
            ['colour_id'], ['colours.id'], name='fk_product_variants_colour_id', ondelete='SET NULL'
        ),
        sa.ForeignKeyConstraint(
            ['size_id'], ['sizes.id'], name='fk_product_variants_size_id', ondelete='SET NULL'
        ),
        sa.UniqueConstraint('sku', name='uq_product_variants_sku'),
        sa.CheckConstraint('stock >= 0', name='ck_product_variants_stock_non_negative'),
    )


def downgrade() -> None:
    """Drop catalog tables."""
    op.drop_table('product_variants')
    op.drop_table('products')
    op.drop_table('sizes')
    op.drop_table('colours')
    op.drop_table('categories')
    op.drop_table('merchants')
    op.drop_table('users')
