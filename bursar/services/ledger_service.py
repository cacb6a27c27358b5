# bursar/services/ledger_service.py - Balanced debit/credit postings for financial events
"""
Every financial event becomes exactly two AccountingEntry rows of equal
amount. Entries are append-only: corrections post a mirror pair flagged as a
reversal and never touch the originals.

The ledger never commits; it flushes inside the caller's transaction so the
event (payment, expense) and its postings land together or not at all.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from bursar.core.accounts import CASH, TUITION_REVENUE, charge_account_for, get_account
from bursar.core.exceptions import AlreadyReversed, NotFound, UnbalancedPosting
from bursar.core.money import ZERO, money_sum, to_money
from bursar.models.accounting import AccountingEntry
from bursar.models.school import School
from bursar.services.numbering import ENTRY_PREFIX, next_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentReceived:
    amount: Decimal
    date: date
    reference_id: uuid.UUID
    description: str = "Tuition payment received"

    reference_type = "payment"


@dataclass(frozen=True)
class ExpenseIncurred:
    amount: Decimal
    date: date
    category: str
    reference_id: uuid.UUID
    description: str = "Expense paid"

    reference_type = "expense"


LedgerEvent = Union[PaymentReceived, ExpenseIncurred]


@dataclass(frozen=True)
class PostingLine:
    account_code: str
    debit: Decimal
    credit: Decimal
    description: str


def lines_for(event: LedgerEvent) -> List[PostingLine]:
    """The debit/credit pair an event produces"""
    amount = to_money(event.amount)
    if isinstance(event, PaymentReceived):
        return [
            PostingLine(CASH, amount, ZERO, event.description),
            PostingLine(TUITION_REVENUE, ZERO, amount, event.description),
        ]
    if isinstance(event, ExpenseIncurred):
        return [
            PostingLine(charge_account_for(event.category), amount, ZERO, event.description),
            PostingLine(CASH, ZERO, amount, event.description),
        ]
    raise TypeError(f"Unsupported ledger event: {type(event).__name__}")


def ensure_balanced(lines: Sequence[PostingLine]) -> None:
    """
    Refuse a set of lines that cannot be persisted as one balanced event.

    Raises:
        UnbalancedPosting: no lines, a line with both or neither side set, a
            negative amount, or debit total != credit total
        UnknownAccount: a line references an account outside the chart
    """
    if not lines:
        raise UnbalancedPosting("An event must produce at least one debit and one credit line")

    for line in lines:
        get_account(line.account_code)
        if line.debit < 0 or line.credit < 0:
            raise UnbalancedPosting(
                f"Negative amount on account {line.account_code}",
                account_code=line.account_code,
                debit=line.debit,
                credit=line.credit,
            )
        if (line.debit > 0) == (line.credit > 0):
            raise UnbalancedPosting(
                f"Line on account {line.account_code} must carry exactly one non-zero side",
                account_code=line.account_code,
                debit=line.debit,
                credit=line.credit,
            )

    total_debit = money_sum(line.debit for line in lines)
    total_credit = money_sum(line.credit for line in lines)
    if total_debit != total_credit:
        raise UnbalancedPosting(
            f"Debits ({total_debit}) do not equal credits ({total_credit}); difference {total_debit - total_credit}",
            total_debit=total_debit,
            total_credit=total_credit,
        )


class LedgerService:
    """Service class for posting and reversing ledger entries of one school"""

    def __init__(self, db: Session, school: School, created_by: Optional[str] = None):
        self.db = db
        self.school = school
        self.created_by = created_by

    def _persist(
        self,
        lines: Sequence[PostingLine],
        entry_date: date,
        reference_type: str,
        reference_id: uuid.UUID,
        reverses: Optional[Sequence[AccountingEntry]] = None,
    ) -> List[AccountingEntry]:
        ensure_balanced(lines)

        base_number = next_number(self.db, self.school, ENTRY_PREFIX, entry_date)
        entries = []
        for index, line in enumerate(lines):
            entries.append(AccountingEntry(
                school_id=self.school.id,
                entry_number=base_number if index == 0 else f"{base_number}-{index + 1}",
                entry_date=entry_date,
                description=line.description,
                reference_type=reference_type,
                reference_id=reference_id,
                debit_amount=line.debit,
                credit_amount=line.credit,
                account_code=line.account_code,
                currency=self.school.currency,
                is_reversal=reverses is not None,
                reverses_entry_id=reverses[index].id if reverses is not None else None,
                created_by=self.created_by,
            ))
        self.db.add_all(entries)
        self.db.flush()
        return entries

    def post(self, event: LedgerEvent) -> List[AccountingEntry]:
        """Persist the balanced pair for an event and return it (debit line first)"""
        lines = lines_for(event)
        entries = self._persist(lines, event.date, event.reference_type, event.reference_id)
        logger.info(
            f"Posted {entries[0].entry_number}: {event.reference_type} {event.reference_id} "
            f"amount {to_money(event.amount)}"
        )
        return entries

    def entries_for(self, reference_type: str, reference_id: uuid.UUID) -> List[AccountingEntry]:
        return list(
            self.db.execute(
                select(AccountingEntry)
                .where(
                    AccountingEntry.school_id == self.school.id,
                    AccountingEntry.reference_type == reference_type,
                    AccountingEntry.reference_id == reference_id,
                )
                .order_by(AccountingEntry.created_at, AccountingEntry.entry_number)
            ).scalars()
        )

    def reverse(
        self,
        reference_type: str,
        reference_id: uuid.UUID,
        reversal_date: Optional[date] = None,
        reason: Optional[str] = None,
    ) -> List[AccountingEntry]:
        """
        Post the mirror image of an event's entries, dated at reversal time.

        Raises:
            NotFound: the event has no postings
            AlreadyReversed: the event was reversed before
        """
        existing = self.entries_for(reference_type, reference_id)
        originals = [e for e in existing if not e.is_reversal]
        if not originals:
            raise NotFound(
                f"No ledger postings for {reference_type} {reference_id}",
                reference_type=reference_type,
                reference_id=reference_id,
            )
        if any(e.is_reversal for e in existing):
            raise AlreadyReversed(
                f"Postings for {reference_type} {reference_id} have already been reversed",
                reference_type=reference_type,
                reference_id=reference_id,
            )

        suffix = f" ({reason})" if reason else ""
        lines = [
            PostingLine(
                account_code=entry.account_code,
                debit=entry.credit_amount,
                credit=entry.debit_amount,
                description=f"Reversal of {entry.entry_number}{suffix}"[:255],
            )
            for entry in originals
        ]
        entries = self._persist(
            lines,
            reversal_date or date.today(),
            reference_type,
            reference_id,
            reverses=originals,
        )
        logger.info(f"Reversed {reference_type} {reference_id} with {entries[0].entry_number}")
        return entries

    def list_entries(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        account_code: Optional[str] = None,
        reference_type: Optional[str] = None,
    ) -> List[AccountingEntry]:
        if account_code is not None:
            get_account(account_code)
        query = select(AccountingEntry).where(AccountingEntry.school_id == self.school.id)
        if start:
            query = query.where(AccountingEntry.entry_date >= start)
        if end:
            query = query.where(AccountingEntry.entry_date <= end)
        if account_code:
            query = query.where(AccountingEntry.account_code == account_code)
        if reference_type:
            query = query.where(AccountingEntry.reference_type == reference_type)
        return list(
            self.db.execute(
                query.order_by(AccountingEntry.entry_date, AccountingEntry.entry_number)
            ).scalars()
        )


__all__ = [
    "ExpenseIncurred",
    "LedgerService",
    "PaymentReceived",
    "PostingLine",
    "ensure_balanced",
    "lines_for",
]
