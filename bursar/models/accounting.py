# bursar/models/accounting.py - Append-only ledger lines and document counters
from __future__ import annotations
import uuid
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import (
    String, Integer, Boolean, Date, DateTime, Numeric, ForeignKey, Uuid,
    CheckConstraint, Index, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from bursar.models.base import Base


class AccountingEntry(Base):
    """One posting line: exactly one of debit_amount / credit_amount is non-zero"""

    __tablename__ = "accounting_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("schools.id"), index=True, nullable=False)
    entry_number: Mapped[str] = mapped_column(String(56), nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    reference_type: Mapped[str] = mapped_column(String(16), nullable=False)  # payment|invoice|expense
    reference_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    debit_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal('0.00'), nullable=False)
    credit_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal('0.00'), nullable=False)
    account_code: Mapped[str] = mapped_column(String(8), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    is_reversal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reverses_entry_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("accounting_entries.id"))
    created_by: Mapped[str | None] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("reference_type IN ('payment','invoice','expense')", name="ck_entry_reference_type"),
        CheckConstraint("debit_amount >= 0 AND credit_amount >= 0", name="ck_entry_amounts_positive"),
        CheckConstraint(
            "(debit_amount > 0 AND credit_amount = 0) OR (credit_amount > 0 AND debit_amount = 0)",
            name="ck_entry_one_side",
        ),
        UniqueConstraint("school_id", "entry_number", name="uix_entry_number"),
        Index("ix_entries_school_reference", "school_id", "reference_type", "reference_id"),
        Index("ix_entries_school_date", "school_id", "entry_date"),
    )


class DocumentSequence(Base):
    """Last number handed out per school and document prefix (FAC, PAY, DEP, ECR)"""

    __tablename__ = "document_sequences"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("schools.id"), nullable=False)
    prefix: Mapped[str] = mapped_column(String(8), nullable=False)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("school_id", "prefix", name="uix_document_sequence"),
    )
