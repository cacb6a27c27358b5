# bursar/api/routers/cash.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
from uuid import UUID

from bursar.core.db import get_db
from bursar.api.deps.tenancy import require_school
from bursar.services.cash_service import CashSessionService
from bursar.schemas.cash import (
    CashSessionOpen, CashSessionClose, CashSessionOut,
    CashMovementCreate, CashMovementOut,
    CashSessionReportOut, DailyCashReportOut,
)
from bursar.schemas.payment import PaymentOut

router = APIRouter()


@router.post("/sessions", response_model=CashSessionOut, status_code=status.HTTP_201_CREATED)
def open_session(
    data: CashSessionOpen,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    """Open a register for the caller; X-User-ID names the cashier"""
    if not ctx["user_id"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID header is required to open a cash session",
        )
    return CashSessionService(db, ctx["school"], ctx["user_id"]).open_session(data)


@router.get("/sessions", response_model=List[CashSessionOut])
def list_sessions(
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db),
    cashier_id: Optional[str] = None,
    status: Optional[str] = None,
    day: Optional[date] = None
):
    return CashSessionService(db, ctx["school"]).list_sessions(cashier_id, status, day)


@router.get("/sessions/current", response_model=CashSessionOut)
def current_session(
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    session = CashSessionService(db, ctx["school"], ctx["user_id"]).current_session()
    if session is None:
        raise HTTPException(status_code=404, detail="No open cash session for this cashier")
    return session


@router.get("/sessions/{session_id}", response_model=CashSessionOut)
def get_session(
    session_id: UUID,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    return CashSessionService(db, ctx["school"]).get_session(session_id)


@router.post("/sessions/{session_id}/close", response_model=CashSessionOut)
def close_session(
    session_id: UUID,
    data: CashSessionClose,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    """Count the drawer; expected balance and difference are frozen on the session"""
    return CashSessionService(db, ctx["school"], ctx["user_id"]).close_session(session_id, data)


@router.post("/sessions/{session_id}/movements", response_model=CashMovementOut, status_code=status.HTTP_201_CREATED)
def record_movement(
    session_id: UUID,
    data: CashMovementCreate,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    return CashSessionService(db, ctx["school"], ctx["user_id"]).record_movement(session_id, data)


@router.get("/sessions/{session_id}/movements", response_model=List[CashMovementOut])
def list_movements(
    session_id: UUID,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    return CashSessionService(db, ctx["school"]).list_movements(session_id)


@router.get("/sessions/{session_id}/payments", response_model=List[PaymentOut])
def session_payments(
    session_id: UUID,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    return CashSessionService(db, ctx["school"]).session_payments(session_id)


@router.get("/sessions/{session_id}/report", response_model=CashSessionReportOut)
def session_report(
    session_id: UUID,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    return CashSessionService(db, ctx["school"]).session_report(session_id)


@router.get("/daily-report", response_model=DailyCashReportOut)
def daily_report(
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db),
    day: Optional[date] = None
):
    """All sessions of one day (today by default) with school-wide totals"""
    return CashSessionService(db, ctx["school"]).daily_report(day)
