# bursar/api/routers/invoices.py
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import date

from bursar.core.db import get_db
from bursar.api.deps.tenancy import require_school
from bursar.services.invoice_service import InvoiceService
from bursar.schemas.invoice import (
    InvoiceCreate, InvoiceItemsReplace, BulkBillingRequest,
    InvoiceOut, InvoiceDetail, BulkBillingResponse,
)

router = APIRouter()


def _detail(invoice) -> InvoiceDetail:
    out = InvoiceDetail.model_validate(invoice)
    out.status = invoice.effective_status()
    return out


@router.post("/", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
def create_invoice(
    data: InvoiceCreate,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    """Issue an invoice; items without a unit price are priced from billing rules"""
    service = InvoiceService(db, ctx["school"], ctx["user_id"])
    invoice = service.compose_invoice(data.student_id, data.items, data.due_date, data.notes)
    return _detail(invoice)


@router.post("/bulk", response_model=BulkBillingResponse, status_code=status.HTTP_201_CREATED)
def bulk_billing(
    data: BulkBillingRequest,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    """Invoice every active student of the school, a section or a class"""
    service = InvoiceService(db, ctx["school"], ctx["user_id"])
    result = service.bulk_compose(
        data.target_type, data.target_id, data.fee_type_ids, data.due_date, data.notes
    )
    return BulkBillingResponse(
        created=result.created,
        failed=result.failed,
        total_amount=result.total_amount,
        errors=result.errors,
        invoice_numbers=[inv.invoice_number for inv in result.invoices],
    )


@router.get("/", response_model=List[InvoiceOut])
def list_invoices(
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db),
    student_id: Optional[UUID] = None,
    status_filter: Optional[str] = Query(
        None, alias="status", pattern="^(draft|pending|paid|overdue|cancelled)$"
    )
):
    today = date.today()
    invoices = InvoiceService(db, ctx["school"]).list_invoices(student_id, status_filter, today)
    return [InvoiceOut.from_invoice(inv, today) for inv in invoices]


@router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(
    invoice_id: UUID,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    """Invoice with its items"""
    return _detail(InvoiceService(db, ctx["school"]).get_invoice(invoice_id))


@router.put("/{invoice_id}/items", response_model=InvoiceDetail)
def replace_items(
    invoice_id: UUID,
    data: InvoiceItemsReplace,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    """Replace the items of an invoice nothing has been paid on"""
    service = InvoiceService(db, ctx["school"], ctx["user_id"])
    return _detail(service.replace_items(invoice_id, data.items))


@router.post("/{invoice_id}/cancel", response_model=InvoiceOut)
def cancel_invoice(
    invoice_id: UUID,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    service = InvoiceService(db, ctx["school"], ctx["user_id"])
    return InvoiceOut.from_invoice(service.cancel_invoice(invoice_id))
