"""Store settings documents and UPI transfer proofs on orders.

Revision ID: 002_settings_proofs
Revises: 001_initial
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '002_settings_proofs'
down_revision: Union[str, None] = '001_initial'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ### Store settings table ###
    op.create_table(
        'store_settings',
        sa.Column('key', sa.String(50), primary_key=True),
        sa.Column('value', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('updated_by', sa.String(100)),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ### Payment proof columns ###
    op.add_column('orders', sa.Column('payment_proof_url', sa.String(1000)))
    op.add_column('orders', sa.Column('payment_proof_submitted_at', sa.DateTime(timezone=True)))
    op.add_column('orders', sa.Column('payment_proof_verified', sa.Boolean()))
    op.add_column('orders', sa.Column('payment_proof_reviewed_at', sa.DateTime(timezone=True)))
    op.add_column('orders', sa.Column('payment_proof_reviewed_by', sa.String(100)))


def downgrade() -> None:
    op.drop_column('orders', 'payment_proof_reviewed_by')
    op.drop_column('orders', 'payment_proof_reviewed_at')
    op.drop_column('orders', 'payment_proof_verified')
    op.drop_column('orders', 'payment_proof_submitted_at')
    op.drop_column('orders', 'payment_proof_url')
    op.drop_table('store_settings')
