# bursar/services/expense_service.py - Record school expenses against charge accounts
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from bursar.core.accounts import charge_account_for
from bursar.core.exceptions import AlreadyReversed, BursarError, NotFound, UnknownAccount
from bursar.core.locks import write_lock
from bursar.core.money import to_money
from bursar.models.accounting import AccountingEntry
from bursar.models.expense import Expense
from bursar.models.school import School
from bursar.schemas.accounting import ExpenseCreate
from bursar.services.ledger_service import ExpenseIncurred, LedgerService
from bursar.services.numbering import EXPENSE_PREFIX, next_number

logger = logging.getLogger(__name__)


@dataclass
class ExpenseRecord:
    expense: Expense
    entries: List[AccountingEntry]


class ExpenseService:
    """Service class for the expenses of one school"""

    def __init__(self, db: Session, school: School, created_by: Optional[str] = None):
        self.db = db
        self.school = school
        self.created_by = created_by
        self.ledger = LedgerService(db, school, created_by)

    def get_expense(self, expense_id: UUID) -> Expense:
        expense = self.db.execute(
            select(Expense).where(Expense.id == expense_id, Expense.school_id == self.school.id)
        ).scalar_one_or_none()
        if expense is None:
            raise NotFound("Expense not found", expense_id=expense_id)
        return expense

    def list_expenses(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        category: Optional[str] = None,
    ) -> List[Expense]:
        query = select(Expense).where(Expense.school_id == self.school.id)
        if start:
            query = query.where(Expense.expense_date >= start)
        if end:
            query = query.where(Expense.expense_date <= end)
        if category:
            query = query.where(Expense.category == category)
        return list(
            self.db.execute(query.order_by(Expense.expense_date.desc(), Expense.expense_number.desc())).scalars()
        )

    def record_expense(self, data: ExpenseCreate) -> ExpenseRecord:
        """Persist an expense and post Dr <charge account> / Cr Cash in one transaction"""
        amount = to_money(data.amount)
        expense_date = data.expense_date or date.today()
        # Unknown categories fail before anything is numbered
        try:
            charge_account_for(data.category)
        except UnknownAccount as e:
            logger.warning(f"Expense rejected: {e.message}")
            raise

        with write_lock(self.db, self.school.id):
            try:
                expense = Expense(
                    school_id=self.school.id,
                    expense_number=next_number(self.db, self.school, EXPENSE_PREFIX, expense_date),
                    description=data.description,
                    amount=amount,
                    expense_date=expense_date,
                    category=data.category,
                    supplier=data.supplier,
                    receipt_url=data.receipt_url,
                    created_by=self.created_by,
                )
                self.db.add(expense)
                self.db.flush()

                entries = self.ledger.post(ExpenseIncurred(
                    amount=amount,
                    date=expense_date,
                    category=data.category,
                    reference_id=expense.id,
                    description=f"Expense {expense.expense_number}: {data.description}"[:255],
                ))
                self.db.commit()
            except BursarError as e:
                self.db.rollback()
                logger.warning(f"Expense rejected: {e.message}")
                raise
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(expense)
        logger.info(f"Expense {expense.expense_number} recorded ({expense.category}): {expense.amount}")
        return ExpenseRecord(expense=expense, entries=entries)

    def reverse_expense(self, expense_id: UUID, reason: Optional[str] = None) -> ExpenseRecord:
        with write_lock(self.db, self.school.id):
            try:
                expense = self.get_expense(expense_id)
                if expense.is_reversed:
                    raise AlreadyReversed(
                        f"Expense {expense.expense_number} has already been reversed",
                        expense_number=expense.expense_number,
                    )
                entries = self.ledger.reverse("expense", expense.id, reason=reason)
                expense.reversed_at = datetime.utcnow()
                self.db.commit()
            except BursarError as e:
                self.db.rollback()
                logger.warning(f"Expense reversal rejected: {e.message}")
                raise
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(expense)
        logger.info(f"Expense {expense.expense_number} reversed: {expense.amount}")
        return ExpenseRecord(expense=expense, entries=entries)
