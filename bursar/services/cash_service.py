# bursar/services/cash_service.py - Cash register sessions: open, move cash, close and reconcile
"""
A cashier works in one open session at a time. Payments taken in the session
plus drawer movements in, minus movements out, give the expected closing
balance; the amount counted at close gives the cash difference.

Drawer movements (float top-ups, transfers to the safe) stay out of the
ledger: the chart has no counterpart account for them, and payments and
expenses already post their own cash lines.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from bursar.core.exceptions import (
    BursarError, InvalidAmount, InvalidSessionState, NotFound, SessionAlreadyOpen,
)
from bursar.core.locks import write_lock
from bursar.core.money import ZERO, money_sum, to_money
from bursar.models.cash import CashMovement, CashSession
from bursar.models.payment import Payment
from bursar.models.school import School
from bursar.schemas.cash import CashMovementCreate, CashSessionClose, CashSessionOpen
from bursar.services.numbering import CASH_SESSION_PREFIX, MOVEMENT_PREFIX, next_number

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("cash", "mobile_money", "bank_transfer", "check")


def _by_method() -> Dict[str, Decimal]:
    return {method: ZERO for method in PAYMENT_METHODS}


@dataclass
class SessionTotals:
    total_payments: Decimal = ZERO
    total_movements_in: Decimal = ZERO
    total_movements_out: Decimal = ZERO
    payments_by_method: Dict[str, Decimal] = field(default_factory=_by_method)
    payments_count: int = 0
    movements_count: int = 0


def session_totals(payments: List[Payment], movements: List[CashMovement]) -> SessionTotals:
    """Fold live payments and drawer movements; reversed payments are left out"""
    live = [p for p in payments if p.reversed_at is None]
    by_method = _by_method()
    for payment in live:
        by_method[payment.method] = to_money(by_method.get(payment.method, ZERO) + payment.amount)
    return SessionTotals(
        total_payments=money_sum(p.amount for p in live),
        total_movements_in=money_sum(m.amount for m in movements if m.movement_type == "in"),
        total_movements_out=money_sum(m.amount for m in movements if m.movement_type == "out"),
        payments_by_method=by_method,
        payments_count=len(live),
        movements_count=len(movements),
    )


def expected_balance(opening_balance: Decimal, totals: SessionTotals) -> Decimal:
    return to_money(
        opening_balance + totals.total_payments + totals.total_movements_in - totals.total_movements_out
    )


@dataclass
class CashSessionReport:
    session_id: UUID
    session_number: str
    cashier_id: str
    session_date: date
    status: str
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


@dataclass
class DailyCashReport:
    day: date
    sessions_count: int
    total_payments: Decimal
    total_movements_in: Decimal
    total_movements_out: Decimal
    total_difference: Decimal
    payments_by_method: Dict[str, Decimal]
    sessions: List[CashSessionReport]


class CashSessionService:
    """Service class for the cash registers of one school"""

    def __init__(self, db: Session, school: School, cashier_id: Optional[str] = None):
        self.db = db
        self.school = school
        self.cashier_id = cashier_id

    def get_session(self, session_id: UUID, for_update: bool = False) -> CashSession:
        query = select(CashSession).where(CashSession.id == session_id, CashSession.school_id == self.school.id)
        if for_update:
            query = query.with_for_update()
        session = self.db.execute(query).scalar_one_or_none()
        if session is None:
            raise NotFound("Cash session not found", session_id=session_id)
        return session

    def current_session(self, cashier_id: Optional[str] = None) -> Optional[CashSession]:
        """The cashier's open session, if any"""
        cashier_id = cashier_id or self.cashier_id
        if not cashier_id:
            return None
        return self.db.execute(
            select(CashSession)
            .where(
                CashSession.school_id == self.school.id,
                CashSession.cashier_id == cashier_id,
                CashSession.status == "in_progress",
            )
            .order_by(CashSession.opened_at.desc())
        ).scalars().first()

    def list_sessions(
        self,
        cashier_id: Optional[str] = None,
        status: Optional[str] = None,
        day: Optional[date] = None,
    ) -> List[CashSession]:
        query = select(CashSession).where(CashSession.school_id == self.school.id)
        if cashier_id:
            query = query.where(CashSession.cashier_id == cashier_id)
        if status:
            query = query.where(CashSession.status == status)
        if day:
            query = query.where(CashSession.session_date == day)
        return list(self.db.execute(query.order_by(CashSession.session_number)).scalars())

    def list_movements(self, session_id: UUID) -> List[CashMovement]:
        session = self.get_session(session_id)
        return list(self.db.execute(
            select(CashMovement)
            .where(CashMovement.session_id == session.id)
            .order_by(CashMovement.movement_number)
        ).scalars())

    def _payments(self, session: CashSession) -> List[Payment]:
        return list(self.db.execute(
            select(Payment)
            .where(Payment.school_id == self.school.id, Payment.session_id == session.id)
            .order_by(Payment.payment_number)
        ).scalars())

    def _totals(self, session: CashSession) -> SessionTotals:
        return session_totals(self._payments(session), self.list_movements(session.id))

    def _lock_open_session(self, session_id: UUID) -> CashSession:
        session = self.get_session(session_id, for_update=True)
        if not session.is_open:
            raise InvalidSessionState(
                f"Cash session {session.session_number} is closed",
                session_number=session.session_number,
                status=session.status,
            )
        return session

    def open_session(self, data: CashSessionOpen) -> CashSession:
        """
        Open a register for the current cashier.

        Raises:
            InvalidSessionState: no cashier is known for this service
            SessionAlreadyOpen: the cashier still has a session in progress
        """
        session_date = data.session_date or date.today()

        with write_lock(self.db, self.school.id):
            try:
                if not self.cashier_id:
                    raise InvalidSessionState("Opening a cash session requires a cashier")
                current = self.current_session()
                if current is not None:
                    raise SessionAlreadyOpen(
                        f"Cashier {self.cashier_id} already has session {current.session_number} open",
                        session_number=current.session_number,
                        cashier_id=self.cashier_id,
                    )
                session = CashSession(
                    school_id=self.school.id,
                    session_number=next_number(self.db, self.school, CASH_SESSION_PREFIX, session_date),
                    cashier_id=self.cashier_id,
                    session_date=session_date,
                    opening_balance=to_money(data.opening_balance),
                    status="in_progress",
                    notes=data.notes,
                )
                self.db.add(session)
                self.db.commit()
            except BursarError as e:
                self.db.rollback()
                logger.warning(f"Cash session rejected: {e.message}")
                raise
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(session)
        logger.info(f"Cash session {session.session_number} opened by {session.cashier_id}: {session.opening_balance}")
        return session

    def record_movement(self, session_id: UUID, data: CashMovementCreate) -> CashMovement:
        """
        Put cash into or take cash out of an open drawer.

        Raises:
            InvalidSessionState: the session is closed
            InvalidAmount: a cash out exceeds what the drawer should hold
        """
        amount = to_money(data.amount)
        movement_date = data.movement_date or date.today()

        with write_lock(self.db, self.school.id):
            try:
                session = self._lock_open_session(session_id)
                if data.movement_type == "out":
                    available = expected_balance(session.opening_balance, self._totals(session))
                    if amount > available:
                        raise InvalidAmount(
                            f"Cash out of {amount} exceeds the {available} expected in session {session.session_number}",
                            amount=amount,
                            available=available,
                            session_number=session.session_number,
                        )
                movement = CashMovement(
                    school_id=self.school.id,
                    session_id=session.id,
                    movement_number=next_number(self.db, self.school, MOVEMENT_PREFIX, movement_date),
                    movement_type=data.movement_type,
                    amount=amount,
                    movement_date=movement_date,
                    reason=data.reason,
                    description=data.description,
                    created_by=self.cashier_id,
                )
                self.db.add(movement)
                self.db.commit()
            except BursarError as e:
                self.db.rollback()
                logger.warning(f"Cash movement rejected: {e.message}")
                raise
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(movement)
        logger.info(f"Cash {movement.movement_type} {movement.movement_number}: {movement.amount} ({movement.reason})")
        return movement

    def close_session(self, session_id: UUID, data: CashSessionClose) -> CashSession:
        """
        Count the drawer and close the session.

        The expected balance, the counted balance and their difference are
        stored on the session and never recomputed afterwards.
        """
        actual = to_money(data.actual_closing_balance)

        with write_lock(self.db, self.school.id):
            try:
                session = self._lock_open_session(session_id)
                expected = expected_balance(session.opening_balance, self._totals(session))
                session.expected_closing_balance = expected
                session.actual_closing_balance = actual
                session.cash_difference = to_money(actual - expected)
                session.status = "closed"
                session.closed_at = datetime.utcnow()
                if data.notes:
                    session.notes = data.notes
                self.db.commit()
            except BursarError as e:
                self.db.rollback()
                logger.warning(f"Cash session close rejected: {e.message}")
                raise
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(session)
        logger.info(
            f"Cash session {session.session_number} closed: "
            f"expected {session.expected_closing_balance}, counted {session.actual_closing_balance}"
        )
        if session.cash_difference != ZERO:
            logger.warning(f"Cash session {session.session_number} closed with a difference of {session.cash_difference}")
        return session

    def session_payments(self, session_id: UUID) -> List[Payment]:
        return self._payments(self.get_session(session_id))

    def _report(self, session: CashSession) -> CashSessionReport:
        totals = self._totals(session)
        if session.is_open:
            expected = expected_balance(session.opening_balance, totals)
        else:
            expected = session.expected_closing_balance
        return CashSessionReport(
            session_id=session.id,
            session_number=session.session_number,
            cashier_id=session.cashier_id,
            session_date=session.session_date,
            status=session.status,
            opened_at=session.opened_at,
            closed_at=session.closed_at,
            opening_balance=session.opening_balance,
            total_payments=totals.total_payments,
            total_movements_in=totals.total_movements_in,
            total_movements_out=totals.total_movements_out,
            expected_closing_balance=expected,
            actual_closing_balance=session.actual_closing_balance,
            cash_difference=session.cash_difference,
            payments_by_method=totals.payments_by_method,
            payments_count=totals.payments_count,
            movements_count=totals.movements_count,
        )

    def session_report(self, session_id: UUID) -> CashSessionReport:
        return self._report(self.get_session(session_id))

    def daily_report(self, day: Optional[date] = None) -> DailyCashReport:
        """Every session of the day, open ones included, with school-wide totals"""
        day = day or date.today()
        reports = [self._report(s) for s in self.list_sessions(day=day)]
        by_method = _by_method()
        for report in reports:
            for method, amount in report.payments_by_method.items():
                by_method[method] = to_money(by_method.get(method, ZERO) + amount)
        return DailyCashReport(
            day=day,
            sessions_count=len(reports),
            total_payments=money_sum(r.total_payments for r in reports),
            total_movements_in=money_sum(r.total_movements_in for r in reports),
            total_movements_out=money_sum(r.total_movements_out for r in reports),
            total_difference=money_sum(r.cash_difference or ZERO for r in reports),
            payments_by_method=by_method,
            sessions=reports,
        )
