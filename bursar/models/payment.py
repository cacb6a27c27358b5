# bursar/models/payment.py - Invoices, their items, and the payments settling them
from __future__ import annotations
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import (
    String, Integer, Numeric, Date, DateTime, ForeignKey, Uuid,
    CheckConstraint, Index, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from bursar.models.base import Base

ZERO = Decimal('0.00')


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("schools.id"), nullable=False, index=True)
    invoice_number: Mapped[str] = mapped_column(String(48), nullable=False)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id"), nullable=False)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date)
    notes: Mapped[str | None] = mapped_column(String(255))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # draft|pending|paid|cancelled
    created_by: Mapped[str | None] = mapped_column(String(64))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    items: Mapped[list["InvoiceItem"]] = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
    )
    payments: Mapped[list["Payment"]] = relationship("Payment", back_populates="invoice")

    __table_args__ = (
        CheckConstraint("status IN ('draft','pending','paid','cancelled')", name="ck_invoice_status"),
        CheckConstraint("total_amount >= 0", name="ck_invoice_total_positive"),
        CheckConstraint("paid_amount >= 0 AND paid_amount <= total_amount", name="ck_invoice_paid_within_total"),
        UniqueConstraint("school_id", "invoice_number", name="uix_invoice_number"),
        Index("ix_invoices_school_student", "school_id", "student_id"),
    )

    def recalculate_total(self) -> Decimal:
        """Recompute item totals and the invoice total from the items"""
        for item in self.items:
            item.recalculate()
        self.total_amount = sum((item.total_price for item in self.items), ZERO)
        return self.total_amount

    @property
    def balance(self) -> Decimal:
        if self.status == "cancelled":
            return ZERO
        return self.total_amount - self.paid_amount

    def effective_status(self, today: Optional[date] = None) -> str:
        """Stored status, or 'overdue' for a pending invoice past its due date"""
        today = today or date.today()
        if self.status == "pending" and self.due_date is not None and self.due_date < today:
            return "overdue"
        return self.status


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("schools.id"), nullable=False, index=True)
    invoice_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    fee_type_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("fee_types.id"), nullable=False, index=True)
    # Copied from the fee type when the item is created
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_invoice_item_quantity"),
        CheckConstraint("unit_price >= 0", name="ck_invoice_item_unit_price"),
    )

    def recalculate(self) -> Decimal:
        self.total_price = Decimal(self.quantity) * Decimal(self.unit_price)
        return self.total_price


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("schools.id"), nullable=False, index=True)
    payment_number: Mapped[str] = mapped_column(String(48), nullable=False)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id"), nullable=False, index=True)
    fee_type_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("fee_types.id"))
    # Ad-hoc collections carry no invoice
    invoice_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("invoices.id"), index=True)
    # Cash register session the money was taken in, if any
    session_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("cash_sessions.id"), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    method: Mapped[str] = mapped_column(String(16), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(64))
    notes: Mapped[str | None] = mapped_column(String(255))
    created_by: Mapped[str | None] = mapped_column(String(64))
    reversed_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    invoice: Mapped[Optional["Invoice"]] = relationship("Invoice", back_populates="payments")

    __table_args__ = (
        CheckConstraint(
            "method IN ('cash','bank_transfer','check','mobile_money')",
            name="ck_payment_method",
        ),
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        UniqueConstraint("school_id", "payment_number", name="uix_payment_number"),
        Index("ix_payments_school_invoice", "school_id", "invoice_id"),
    )

    @property
    def is_reversed(self) -> bool:
        return self.reversed_at is not None
