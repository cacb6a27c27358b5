# bursar/models/fee.py - Fee types and the billing rules that price them
from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Optional
from datetime import datetime

from sqlalchemy import (
    String, Boolean, Numeric, ForeignKey, DateTime, Uuid,
    CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bursar.models.base import Base


class FeeType(Base):
    __tablename__ = "fee_types"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("schools.id"), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255))
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0.00'))
    is_mandatory: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    billing_frequency: Mapped[str] = mapped_column(String(16), default="one_time", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Set when an amendment replaces this fee type
    superseded_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("fee_types.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    rules: Mapped[list["BillingRule"]] = relationship(
        "BillingRule",
        back_populates="fee_type",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(
            "billing_frequency IN ('one_time','monthly','quarterly','annual')",
            name="ck_fee_types_billing_frequency",
        ),
        CheckConstraint("amount >= 0", name="ck_fee_types_amount_positive"),
        Index("ix_fee_types_school_active", "school_id", "is_active"),
    )

    @property
    def base_amount(self) -> Decimal:
        return self.amount


class BillingRule(Base):
    __tablename__ = "billing_rules"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("schools.id"), index=True, nullable=False)

    fee_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("fee_types.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    target_type: Mapped[str] = mapped_column(String(16), nullable=False)
    # NULL for school-wide rules, a section or class id otherwise
    target_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)
    amount_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    fee_type: Mapped["FeeType"] = relationship("FeeType", back_populates="rules")

    __table_args__ = (
        CheckConstraint("target_type IN ('school','section','class')", name="ck_billing_rules_target_type"),
        CheckConstraint(
            "amount_override IS NULL OR amount_override >= 0",
            name="ck_billing_rules_override_positive",
        ),
        # NULL target ids are not deduplicated by the database; the service checks school-wide rules
        UniqueConstraint("fee_type_id", "target_type", "target_id", name="uix_billing_rule_target"),
    )
