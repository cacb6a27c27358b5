# bursar/schemas/invoice.py
from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

InvoiceStatus = Literal["draft", "pending", "paid", "overdue", "cancelled"]


class InvoiceItemIn(BaseModel):
    """One line to bill; unit_price defaults to the amount resolved from billing rules"""
    fee_type_id: UUID
    quantity: int = Field(1, ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    description: Optional[str] = Field(None, max_length=255)


class InvoiceCreate(BaseModel):
    student_id: UUID
    items: List[InvoiceItemIn]
    due_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=255)


class InvoiceItemsReplace(BaseModel):
    items: List[InvoiceItemIn]


class BulkBillingRequest(BaseModel):
    """Bill every active student of the school, a section or a class"""
    target_type: Literal["school", "section", "class"] = "school"
    target_id: Optional[UUID] = None
    fee_type_ids: List[UUID] = Field(..., min_length=1)
    due_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=255)


class InvoiceItemOut(BaseModel):
    id: UUID
    fee_type_id: UUID
    description: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal

    class Config:
        from_attributes = True


class InvoiceOut(BaseModel):
    id: UUID
    invoice_number: str
    student_id: UUID
    issue_date: date
    due_date: Optional[date]
    total_amount: Decimal
    paid_amount: Decimal
    balance: Decimal
    status: InvoiceStatus
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

    @classmethod
    def from_invoice(cls, invoice, today: Optional[date] = None) -> "InvoiceOut":
        out = cls.model_validate(invoice)
        out.status = invoice.effective_status(today)
        return out


class InvoiceDetail(InvoiceOut):
    """Invoice with its line items"""
    items: List[InvoiceItemOut] = []


class BulkBillingResponse(BaseModel):
    created: int
    failed: int
    total_amount: Decimal
    errors: List[str] = []
    invoice_numbers: List[str] = []
