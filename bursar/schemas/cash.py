# bursar/schemas/cash.py - Cash register sessions, drawer movements and their reports
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal, Dict
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

MovementType = Literal["in", "out"]
SessionStatus = Literal["in_progress", "closed"]


class CashSessionOpen(BaseModel):
    opening_balance: Decimal = Field(..., ge=0, decimal_places=2)
    session_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=255)


class CashSessionClose(BaseModel):
    actual_closing_balance: Decimal = Field(..., ge=0, decimal_places=2)
    notes: Optional[str] = Field(None, max_length=255)


class CashMovementCreate(BaseModel):
    movement_type: MovementType
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    reason: str = Field(..., min_length=1, max_length=128)
    description: Optional[str] = Field(None, max_length=255)
    movement_date: Optional[date] = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Movement reason cannot be empty or whitespace')
        return v.strip()


class CashMovementOut(BaseModel):
    id: UUID
    session_id: UUID
    movement_number: str
    movement_type: MovementType
    amount: Decimal
    movement_date: date
    reason: str
    description: Optional[str]
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CashSessionOut(BaseModel):
    id: UUID
    session_number: str
    cashier_id: str
    session_date: date
    opening_balance: Decimal
    expected_closing_balance: Optional[Decimal] = None
    actual_closing_balance: Optional[Decimal] = None
    cash_difference: Optional[Decimal] = None
    status: SessionStatus
    notes: Optional[str]
    opened_at: datetime
    closed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CashSessionReportOut(BaseModel):
    session_id: UUID
    session_number: str
    cashier_id: str
    session_date: date
    status: SessionStatus
    opened_at: datetime
    closed_at: Optional[datetime]
    opening_balance: Decimal
    total_payments: Decimal
    total_movements_in: Decimal
    total_movements_out: Decimal
    expected_closing_balance: Decimal
    actual_closing_balance: Optional[Decimal]
    cash_difference: Optional[Decimal]
    payments_by_method: Dict[str, Decimal]
    payments_count: int
    movements_count: int

    class Config:
        from_attributes = True


class DailyCashReportOut(BaseModel):
    day: date
    sessions_count: int
    total_payments: Decimal
    total_movements_in: Decimal
    total_movements_out: Decimal
    total_difference: Decimal
    payments_by_method: Dict[str, Decimal]
    sessions: List[CashSessionReportOut]

    class Config:
        from_attributes = True
