# bursar/schemas/payment.py
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from bursar.schemas.accounting import AccountingEntryOut
from bursar.schemas.invoice import InvoiceOut

PaymentMethod = Literal["cash", "bank_transfer", "check", "mobile_money"]


class PaymentCreate(BaseModel):
    student_id: UUID
    invoice_id: Optional[UUID] = None  # None for ad-hoc collections
    fee_type_id: Optional[UUID] = None
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    session_id: Optional[UUID] = None  # open cash register session taking the money
    payment_date: Optional[date] = None
    method: PaymentMethod = "cash"
    reference: Optional[str] = Field(None, max_length=64)
    notes: Optional[str] = Field(None, max_length=255)

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Ensure payment amount has at most 2 decimal places"""
        if v <= 0:
            raise ValueError('Payment amount must be greater than zero')
        return v.quantize(Decimal('0.01'))


class ReversalRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class PaymentOut(BaseModel):
    id: UUID
    payment_number: str
    student_id: UUID
    invoice_id: Optional[UUID]
    fee_type_id: Optional[UUID]
    session_id: Optional[UUID] = None
    amount: Decimal
    payment_date: date
    method: PaymentMethod
    reference: Optional[str]
    created_by: Optional[str] = None
    reversed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentApplicationOut(BaseModel):
    """Result of recording a payment: the payment, the settled invoice and its postings"""
    payment: PaymentOut
    invoice: Optional[InvoiceOut] = None
    entries: List[AccountingEntryOut]
