# bursar/api/routers/ledger.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from bursar.core.db import get_db
from bursar.api.deps.tenancy import require_school
from bursar.services.ledger_service import LedgerService
from bursar.schemas.accounting import AccountingEntryOut

router = APIRouter()


@router.get("/entries", response_model=List[AccountingEntryOut])
def list_entries(
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db),
    start: Optional[date] = None,
    end: Optional[date] = None,
    account_code: Optional[str] = Query(None, max_length=8),
    reference_type: Optional[str] = Query(None, pattern="^(payment|invoice|expense)$")
):
    """Ledger lines in date order, optionally for one account or document type"""
    return LedgerService(db, ctx["school"]).list_entries(start, end, account_code, reference_type)
