# bursar/api/routers/payments.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from bursar.core.db import get_db
from bursar.api.deps.tenancy import require_school
from bursar.services.payment_service import PaymentService
from bursar.schemas.accounting import AccountingEntryOut
from bursar.schemas.invoice import InvoiceOut
from bursar.schemas.payment import (
    PaymentCreate, PaymentOut, PaymentApplicationOut, ReversalRequest,
)

router = APIRouter()


def _application_out(result) -> PaymentApplicationOut:
    return PaymentApplicationOut(
        payment=PaymentOut.model_validate(result.payment),
        invoice=InvoiceOut.from_invoice(result.invoice) if result.invoice is not None else None,
        entries=[AccountingEntryOut.model_validate(e) for e in result.entries],
    )


@router.post("/", response_model=PaymentApplicationOut, status_code=status.HTTP_201_CREATED)
def record_payment(
    data: PaymentCreate,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    """Record a payment against an invoice (or ad hoc) and post it to the ledger"""
    service = PaymentService(db, ctx["school"], ctx["user_id"])
    return _application_out(service.apply_payment(data))


@router.get("/", response_model=List[PaymentOut])
def list_payments(
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db),
    student_id: Optional[UUID] = None,
    invoice_id: Optional[UUID] = None,
    session_id: Optional[UUID] = None,
    include_reversed: bool = True
):
    return PaymentService(db, ctx["school"]).list_payments(student_id, invoice_id, session_id, include_reversed)


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(
    payment_id: UUID,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    return PaymentService(db, ctx["school"]).get_payment(payment_id)


@router.post("/{payment_id}/reverse", response_model=PaymentApplicationOut)
def reverse_payment(
    payment_id: UUID,
    data: Optional[ReversalRequest] = None,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    """Reverse a payment: mirror ledger entries and reopen its invoice"""
    service = PaymentService(db, ctx["school"], ctx["user_id"])
    reason = data.reason if data is not None else None
    return _application_out(service.reverse_payment(payment_id, reason))
