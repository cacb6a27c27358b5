# bursar/api/routers/reports.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date
from uuid import UUID
from decimal import Decimal

from bursar.core.db import get_db
from bursar.api.deps.tenancy import require_school
from bursar.services.reporting_service import ReportingService
from bursar.schemas.accounting import (
    TrialBalanceOut, IncomeStatementOut, BalanceSheetOut, ClassPaymentReportOut,
)

router = APIRouter()


@router.get("/trial-balance", response_model=TrialBalanceOut)
def trial_balance(
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db),
    start: Optional[date] = None,
    end: Optional[date] = None
):
    return ReportingService(db, ctx["school"]).trial_balance(start, end)


@router.get("/income-statement", response_model=IncomeStatementOut)
def income_statement(
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db),
    start: Optional[date] = None,
    end: Optional[date] = None
):
    return ReportingService(db, ctx["school"]).income_statement(start, end)


@router.get("/balance-sheet", response_model=BalanceSheetOut)
def balance_sheet(
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db),
    start: Optional[date] = None,
    end: Optional[date] = None,
    opening_capital: Optional[Decimal] = None
):
    """Opening capital defaults to LEDGER_OPENING_CAPITAL"""
    return ReportingService(db, ctx["school"]).balance_sheet(start, end, opening_capital)


@router.get("/class-payments", response_model=ClassPaymentReportOut)
def class_payments(
    class_id: UUID,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db),
    start: Optional[date] = None,
    end: Optional[date] = None
):
    """Who in a class has paid, partly paid or not paid"""
    return ReportingService(db, ctx["school"]).class_payment_report(class_id, start, end)
