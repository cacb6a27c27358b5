"""initial ledger schema

Revision ID: 3b7c1e5a9d20
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b7c1e5a9d20'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(14, 2)


def _timestamps(updated: bool = True):
    columns = [sa.Column('created_at', sa.DateTime(), nullable=False)]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), nullable=False))
    return columns


def upgrade():
    op.create_table(
        'schools',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('code', sa.String(16), nullable=False, unique=True),
        sa.Column('name', sa.String(128), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'sections',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('school_id', sa.Uuid(), sa.ForeignKey('schools.id'), nullable=False, index=True),
        sa.Column('name', sa.String(64), nullable=False),
        sa.Column('code', sa.String(16)),
        *_timestamps(updated=False),
    )

    op.create_table(
        'classes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('school_id', sa.Uuid(), sa.ForeignKey('schools.id'), nullable=False, index=True),
        sa.Column('section_id', sa.Uuid(), sa.ForeignKey('sections.id'), index=True),
        sa.Column('name', sa.String(64), nullable=False),
        *_timestamps(updated=False),
    )

    op.create_table(
        'students',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('school_id', sa.Uuid(), sa.ForeignKey('schools.id'), nullable=False, index=True),
        sa.Column('student_number', sa.String(32), nullable=False),
        sa.Column('first_name', sa.String(64), nullable=False),
        sa.Column('last_name', sa.String(64), nullable=False),
        sa.Column('class_id', sa.Uuid(), sa.ForeignKey('classes.id'), index=True),
        sa.Column('status', sa.String(16), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("status IN ('ACTIVE','ARCHIVED')", name='ck_student_status'),
        sa.UniqueConstraint('school_id', 'student_number', name='uix_student_number'),
    )

    op.create_table(
        'fee_types',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('school_id', sa.Uuid(), sa.ForeignKey('schools.id'), nullable=False, index=True),
        sa.Column('name', sa.String(128), nullable=False),
        sa.Column('description', sa.String(255)),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('is_mandatory', sa.Boolean(), nullable=False),
        sa.Column('billing_frequency', sa.String(16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('superseded_by_id', sa.Uuid(), sa.ForeignKey('fee_types.id', ondelete='SET NULL')),
        *_timestamps(),
        sa.CheckConstraint(
            "billing_frequency IN ('one_time','monthly','quarterly','annual')",
            name='ck_fee_types_billing_frequency',
        ),
        sa.CheckConstraint('amount >= 0', name='ck_fee_types_amount_positive'),
    )
    op.create_index('ix_fee_types_school_active', 'fee_types', ['school_id', 'is_active'])

    op.create_table(
        'billing_rules',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('school_id', sa.Uuid(), sa.ForeignKey('schools.id'), nullable=False, index=True),
        sa.Column('fee_type_id', sa.Uuid(), sa.ForeignKey('fee_types.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('target_type', sa.String(16), nullable=False),
        sa.Column('target_id', sa.Uuid(), index=True),
        sa.Column('amount_override', MONEY),
        *_timestamps(updated=False),
        sa.CheckConstraint("target_type IN ('school','section','class')", name='ck_billing_rules_target_type'),
        sa.CheckConstraint(
            'amount_override IS NULL OR amount_override >= 0',
            name='ck_billing_rules_override_positive',
        ),
        sa.UniqueConstraint('fee_type_id', 'target_type', 'target_id', name='uix_billing_rule_target'),
    )

    op.create_table(
        'invoices',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('school_id', sa.Uuid(), sa.ForeignKey('schools.id'), nullable=False, index=True),
        sa.Column('invoice_number', sa.String(48), nullable=False),
        sa.Column('student_id', sa.Uuid(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date()),
        sa.Column('notes', sa.String(255)),
        sa.Column('total_amount', MONEY, nullable=False),
        sa.Column('paid_amount', MONEY, nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('created_by', sa.String(64)),
        sa.Column('cancelled_at', sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("status IN ('draft','pending','paid','cancelled')", name='ck_invoice_status'),
        sa.CheckConstraint('total_amount >= 0', name='ck_invoice_total_positive'),
        sa.CheckConstraint(
            'paid_amount >= 0 AND paid_amount <= total_amount',
            name='ck_invoice_paid_within_total',
        ),
        sa.UniqueConstraint('school_id', 'invoice_number', name='uix_invoice_number'),
    )
    op.create_index('ix_invoices_school_student', 'invoices', ['school_id', 'student_id'])

    op.create_table(
        'invoice_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('school_id', sa.Uuid(), sa.ForeignKey('schools.id'), nullable=False, index=True),
        sa.Column('invoice_id', sa.Uuid(), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('fee_type_id', sa.Uuid(), sa.ForeignKey('fee_types.id'), nullable=False, index=True),
        sa.Column('description', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', MONEY, nullable=False),
        sa.Column('total_price', MONEY, nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity >= 1', name='ck_invoice_item_quantity'),
        sa.CheckConstraint('unit_price >= 0', name='ck_invoice_item_unit_price'),
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('school_id', sa.Uuid(), sa.ForeignKey('schools.id'), nullable=False, index=True),
        sa.Column('payment_number', sa.String(48), nullable=False),
        sa.Column('student_id', sa.Uuid(), sa.ForeignKey('students.id'), nullable=False, index=True),
        sa.Column('fee_type_id', sa.Uuid(), sa.ForeignKey('fee_types.id')),
        sa.Column('invoice_id', sa.Uuid(), sa.ForeignKey('invoices.id'), index=True),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('method', sa.String(16), nullable=False),
        sa.Column('reference', sa.String(64)),
        sa.Column('notes', sa.String(255)),
        sa.Column('created_by', sa.String(64)),
        sa.Column('reversed_at', sa.DateTime()),
        *_timestamps(updated=False),
        sa.CheckConstraint(
            "method IN ('cash','bank_transfer','check','mobile_money')",
            name='ck_payment_method',
        ),
        sa.CheckConstraint('amount > 0', name='ck_payment_amount_positive'),
        sa.UniqueConstraint('school_id', 'payment_number', name='uix_payment_number'),
    )
    op.create_index('ix_payments_school_invoice', 'payments', ['school_id', 'invoice_id'])

    op.create_table(
        'expenses',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('school_id', sa.Uuid(), sa.ForeignKey('schools.id'), nullable=False, index=True),
        sa.Column('expense_number', sa.String(48), nullable=False),
        sa.Column('description', sa.String(255), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('expense_date', sa.Date(), nullable=False),
        sa.Column('category', sa.String(16), nullable=False),
        sa.Column('supplier', sa.String(128)),
        sa.Column('receipt_url', sa.String(512)),
        sa.Column('created_by', sa.String(64)),
        sa.Column('reversed_at', sa.DateTime()),
        *_timestamps(updated=False),
        sa.CheckConstraint(
            "category IN ('salaries','utilities','supplies','maintenance','other')",
            name='ck_expense_category',
        ),
        sa.CheckConstraint('amount > 0', name='ck_expense_amount_positive'),
        sa.UniqueConstraint('school_id', 'expense_number', name='uix_expense_number'),
    )
    op.create_index('ix_expenses_school_date', 'expenses', ['school_id', 'expense_date'])

    op.create_table(
        'accounting_entries',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('school_id', sa.Uuid(), sa.ForeignKey('schools.id'), nullable=False, index=True),
        sa.Column('entry_number', sa.String(56), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('description', sa.String(255), nullable=False),
        sa.Column('reference_type', sa.String(16), nullable=False),
        sa.Column('reference_id', sa.Uuid(), nullable=False),
        sa.Column('debit_amount', MONEY, nullable=False),
        sa.Column('credit_amount', MONEY, nullable=False),
        sa.Column('account_code', sa.String(8), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('is_reversal', sa.Boolean(), nullable=False),
        sa.Column('reverses_entry_id', sa.Uuid(), sa.ForeignKey('accounting_entries.id')),
        sa.Column('created_by', sa.String(64)),
        *_timestamps(updated=False),
        sa.CheckConstraint(
            "reference_type IN ('payment','invoice','expense')",
            name='ck_entry_reference_type',
        ),
        sa.CheckConstraint('debit_amount >= 0 AND credit_amount >= 0', name='ck_entry_amounts_positive'),
        sa.CheckConstraint(
            '(debit_amount > 0 AND credit_amount = 0) OR (credit_amount > 0 AND debit_amount = 0)',
            name='ck_entry_one_side',
        ),
        sa.UniqueConstraint('school_id', 'entry_number', name='uix_entry_number'),
    )
    op.create_index('ix_entries_school_reference', 'accounting_entries', ['school_id', 'reference_type', 'reference_id'])
    op.create_index('ix_entries_school_date', 'accounting_entries', ['school_id', 'entry_date'])

    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('school_id', sa.Uuid(), sa.ForeignKey('schools.id'), nullable=False),
        sa.Column('prefix', sa.String(8), nullable=False),
        sa.Column('last_value', sa.Integer(), nullable=False),
        sa.UniqueConstraint('school_id', 'prefix', name='uix_document_sequence'),
    )


def downgrade():
    op.drop_table('document_sequences')
    op.drop_index('ix_entries_school_date', table_name='accounting_entries')
    op.drop_index('ix_entries_school_reference', table_name='accounting_entries')
    op.drop_table('accounting_entries')
    op.drop_index('ix_expenses_school_date', table_name='expenses')
    op.drop_table('expenses')
    op.drop_index('ix_payments_school_invoice', table_name='payments')
    op.drop_table('payments')
    op.drop_table('invoice_items')
    op.drop_index('ix_invoices_school_student', table_name='invoices')
    op.drop_table('invoices')
    op.drop_table('billing_rules')
    op.drop_index('ix_fee_types_school_active', table_name='fee_types')
    op.drop_table('fee_types')
    op.drop_table('students')
    op.drop_table('classes')
    op.drop_table('sections')
    op.drop_table('schools')
