"""add invoices

Revision ID: 8d2f5b6a1e93
Revises: 3e7a1c9b2d40
Create Date: 2025-10-09 16:40:05.902114
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = '8d2f5b6a1e93'
down_revision: Union[str, Sequence[str], None] = '3e7a1c9b2d40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('payment_id', sa.Integer(), sa.ForeignKey('payments.id'), nullable=False),
        sa.Column('invoice_number', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='XOF'),
        sa.Column('issued_at', sa.DateTime(), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('payment_id', name='uq_invoices_payment_id'),
        sa.UniqueConstraint('invoice_number', name='uq_invoices_invoice_number'),
    )
    op.create_index('ix_invoices_id', 'invoices', ['id'])
    op.create_index('ix_invoices_user_id', 'invoices', ['user_id'])


def downgrade() -> None:
    op.drop_table('invoices')
