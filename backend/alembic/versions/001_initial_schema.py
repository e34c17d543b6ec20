"""Initial schema: customers, offers and orders.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ### Customers table ###
    op.create_table(
        'customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('phone', sa.String(20), unique=True, index=True, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ### Offers table ###
    op.create_table(
        'offers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('code', sa.String(50), unique=True, index=True, nullable=False),
        sa.Column('discount_type', sa.String(20), nullable=False, server_default='percentage'),
        sa.Column('discount_value', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('min_order_value', sa.Numeric(precision=12, scale=2), server_default='0'),
        sa.Column('valid_from', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('valid_to', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("discount_type IN ('percentage', 'flat')", name='ck_offers_discount_type'),
    )

    # ### Orders table ###
    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id', ondelete='SET NULL'), index=True),
        sa.Column('gateway_order_id', sa.String(64), unique=True, index=True),
        sa.Column('gateway_payment_id', sa.String(64)),
        sa.Column('gateway_signature', sa.String(128)),
        sa.Column('items', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('subtotal', sa.Numeric(precision=12, scale=2), server_default='0'),
        sa.Column('discount_amount', sa.Numeric(precision=12, scale=2), server_default='0'),
        sa.Column('discount_code', sa.String(50)),
        sa.Column('delivery_fee', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('platform_fee', sa.Numeric(precision=12, scale=2), server_default='0'),
        sa.Column('tax_amount', sa.Numeric(precision=12, scale=2), server_default='0'),
        sa.Column('donation_amount', sa.Numeric(precision=12, scale=2), server_default='0'),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(3), server_default='INR'),
        sa.Column('order_type', sa.String(20), server_default='Dine-in'),
        sa.Column('delivery_address', postgresql.JSONB()),
        sa.Column('status', sa.String(20), server_default='Pending', index=True),
        sa.Column('is_accepted', sa.Boolean(), server_default=sa.false()),
        sa.Column('accepted_at', sa.DateTime(timezone=True)),
        sa.Column('payment_method', sa.String(20), server_default='Cash'),
        sa.Column('payment_status', sa.String(20), server_default='Pending', index=True),
        sa.Column('payment_verified_at', sa.DateTime(timezone=True)),
        sa.Column('payment_anomaly', sa.Text()),
        sa.Column('customer_note', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('Pending', 'Preparing', 'Ready', 'Delivered', 'Cancelled')",
            name='ck_orders_status',
        ),
        sa.CheckConstraint(
            "payment_status IN ('Pending', 'Initiated', 'Paid', 'Failed')",
            name='ck_orders_payment_status',
        ),
        sa.CheckConstraint('total_amount >= 0', name='ck_orders_total_non_negative'),
    )

    # Staff board query
    op.create_index(
        'ix_orders_payment_method_status_created',
        'orders',
        ['payment_method', 'payment_status', 'created_at'],
    )


def downgrade() -> None:
    op.drop_index('ix_orders_payment_method_status_created', table_name='orders')
    op.drop_table('orders')
    op.drop_table('offers')
    op.drop_table('customers')
