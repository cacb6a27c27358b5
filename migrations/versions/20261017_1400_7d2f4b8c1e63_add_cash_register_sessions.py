"""add cash register sessions

Revision ID: 7d2f4b8c1e63
Revises: 3b7c1e5a9d20
Create Date: 2026-10-17 14:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '7d2f4b8c1e63'
down_revision: Union[str, Sequence[str], None] = '3b7c1e5a9d20'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(14, 2)


def upgrade():
    op.create_table(
        'cash_sessions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('school_id', sa.Uuid(), sa.ForeignKey('schools.id'), nullable=False, index=True),
        sa.Column('session_number', sa.String(48), nullable=False),
        sa.Column('cashier_id', sa.String(64), nullable=False),
        sa.Column('session_date', sa.Date(), nullable=False),
        sa.Column('opening_balance', MONEY, nullable=False),
        sa.Column('expected_closing_balance', MONEY),
        sa.Column('actual_closing_balance', MONEY),
        sa.Column('cash_difference', MONEY),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('notes', sa.String(255)),
        sa.Column('opened_at', sa.DateTime(), nullable=False),
        sa.Column('closed_at', sa.DateTime()),
        sa.CheckConstraint("status IN ('in_progress','closed')", name='ck_cash_session_status'),
        sa.CheckConstraint('opening_balance >= 0', name='ck_cash_session_opening_positive'),
        sa.CheckConstraint(
            'actual_closing_balance IS NULL OR actual_closing_balance >= 0',
            name='ck_cash_session_actual_positive',
        ),
        sa.UniqueConstraint('school_id', 'session_number', name='uix_cash_session_number'),
    )
    op.create_index(
        'ix_cash_sessions_school_cashier', 'cash_sessions', ['school_id', 'cashier_id', 'status'],
    )

    op.create_table(
        'cash_movements',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('school_id', sa.Uuid(), sa.ForeignKey('schools.id'), nullable=False, index=True),
        sa.Column('session_id', sa.Uuid(), sa.ForeignKey('cash_sessions.id'), nullable=False, index=True),
        sa.Column('movement_number', sa.String(48), nullable=False),
        sa.Column('movement_type', sa.String(8), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('movement_date', sa.Date(), nullable=False),
        sa.Column('reason', sa.String(128), nullable=False),
        sa.Column('description', sa.String(255)),
        sa.Column('created_by', sa.String(64)),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("movement_type IN ('in','out')", name='ck_cash_movement_type'),
        sa.CheckConstraint('amount > 0', name='ck_cash_movement_amount_positive'),
        sa.UniqueConstraint('school_id', 'movement_number', name='uix_cash_movement_number'),
    )

    # Batch mode so the foreign key can be added on SQLite as well
    with op.batch_alter_table('payments') as batch_op:
        batch_op.add_column(sa.Column('session_id', sa.Uuid()))
        batch_op.create_foreign_key('fk_payments_session_id', 'cash_sessions', ['session_id'], ['id'])
        batch_op.create_index('ix_payments_session_id', ['session_id'])


def downgrade():
    with op.batch_alter_table('payments') as batch_op:
        batch_op.drop_index('ix_payments_session_id')
        batch_op.drop_constraint('fk_payments_session_id', type_='foreignkey')
        batch_op.drop_column('session_id')
    op.drop_table('cash_movements')
    op.drop_index('ix_cash_sessions_school_cashier', table_name='cash_sessions')
    op.drop_table('cash_sessions')
