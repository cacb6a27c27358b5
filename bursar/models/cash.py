# bursar/models/cash.py - Cash register sessions and the drawer movements recorded in them
from __future__ import annotations
import uuid
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import (
    String, Numeric, Date, DateTime, ForeignKey, Uuid,
    CheckConstraint, Index, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from bursar.models.base import Base


class CashSession(Base):
    __tablename__ = "cash_sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("schools.id"), nullable=False, index=True)
    session_number: Mapped[str] = mapped_column(String(48), nullable=False)
    cashier_id: Mapped[str] = mapped_column(String(64), nullable=False)
    session_date: Mapped[date] = mapped_column(Date, nullable=False)
    opening_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    # Frozen when the session closes
    expected_closing_balance: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    actual_closing_balance: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    cash_difference: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="in_progress")  # in_progress|closed
    notes: Mapped[str | None] = mapped_column(String(255))
    opened_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime)

    movements: Mapped[list["CashMovement"]] = relationship(
        "CashMovement",
        back_populates="session",
        order_by="CashMovement.movement_number",
    )

    __table_args__ = (
        CheckConstraint("status IN ('in_progress','closed')", name="ck_cash_session_status"),
        CheckConstraint("opening_balance >= 0", name="ck_cash_session_opening_positive"),
        CheckConstraint(
            "actual_closing_balance IS NULL OR actual_closing_balance >= 0",
            name="ck_cash_session_actual_positive",
        ),
        UniqueConstraint("school_id", "session_number", name="uix_cash_session_number"),
        Index("ix_cash_sessions_school_cashier", "school_id", "cashier_id", "status"),
    )

    @property
    def is_open(self) -> bool:
        return self.status == "in_progress"


class CashMovement(Base):
    __tablename__ = "cash_movements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("schools.id"), nullable=False, index=True)
    session_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("cash_sessions.id"), nullable=False, index=True)
    movement_number: Mapped[str] = mapped_column(String(48), nullable=False)
    movement_type: Mapped[str] = mapped_column(String(8), nullable=False)  # in|out
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    movement_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255))
    created_by: Mapped[str | None] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    session: Mapped["CashSession"] = relationship("CashSession", back_populates="movements")

    __table_args__ = (
        CheckConstraint("movement_type IN ('in','out')", name="ck_cash_movement_type"),
        CheckConstraint("amount > 0", name="ck_cash_movement_amount_positive"),
        UniqueConstraint("school_id", "movement_number", name="uix_cash_movement_number"),
    )
