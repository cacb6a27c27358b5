# bursar/api/routers/expenses.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import date

from bursar.core.db import get_db
from bursar.api.deps.tenancy import require_school
from bursar.services.expense_service import ExpenseService
from bursar.schemas.accounting import (
    AccountingEntryOut, ExpenseCreate, ExpenseOut, ExpenseRecordedOut, ExpenseCategory,
)
from bursar.schemas.payment import ReversalRequest

router = APIRouter()


def _recorded_out(result) -> ExpenseRecordedOut:
    return ExpenseRecordedOut(
        expense=ExpenseOut.model_validate(result.expense),
        entries=[AccountingEntryOut.model_validate(e) for e in result.entries],
    )


@router.post("/", response_model=ExpenseRecordedOut, status_code=status.HTTP_201_CREATED)
def record_expense(
    data: ExpenseCreate,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    service = ExpenseService(db, ctx["school"], ctx["user_id"])
    return _recorded_out(service.record_expense(data))


@router.get("/", response_model=List[ExpenseOut])
def list_expenses(
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db),
    start: Optional[date] = None,
    end: Optional[date] = None,
    category: Optional[ExpenseCategory] = None
):
    return ExpenseService(db, ctx["school"]).list_expenses(start, end, category)


@router.get("/{expense_id}", response_model=ExpenseOut)
def get_expense(
    expense_id: UUID,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    return ExpenseService(db, ctx["school"]).get_expense(expense_id)


@router.post("/{expense_id}/reverse", response_model=ExpenseRecordedOut)
def reverse_expense(
    expense_id: UUID,
    data: Optional[ReversalRequest] = None,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    service = ExpenseService(db, ctx["school"], ctx["user_id"])
    reason = data.reason if data is not None else None
    return _recorded_out(service.reverse_expense(expense_id, reason))
