# bursar/services/reporting_service.py - Financial statements and class collection reports
"""
Reports are folds over a school's accounting entries for an optional date
range. The folds are pure functions over anything carrying ``account_code``,
``debit_amount`` and ``credit_amount``; ReportingService only loads the rows.

This is the only module that interprets account kinds. The class payment
report reads invoices and payments directly instead of the ledger.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from bursar.core.accounts import (
    ACCOUNTS_RECEIVABLE, CASH, AccountKind, NormalSide, get_account,
)
from bursar.core.config import settings
from bursar.core.exceptions import InvariantViolation, NotFound, UnknownAccount
from bursar.core.logging import get_alert_logger
from bursar.core.money import ZERO, to_money
from bursar.models.accounting import AccountingEntry
from bursar.models.class_model import SchoolClass
from bursar.models.payment import Invoice, Payment
from bursar.models.school import School
from bursar.models.student import Student

logger = logging.getLogger(__name__)
alert_logger = get_alert_logger()


@dataclass
class TrialBalanceLine:
    account_code: str
    account_name: str
    debit: Decimal
    credit: Decimal
    balance: Decimal


@dataclass
class TrialBalance:
    lines: List[TrialBalanceLine]
    total_debit: Decimal
    total_credit: Decimal
    start: Optional[date] = None
    end: Optional[date] = None


@dataclass
class StatementLine:
    account_code: str
    account_name: str
    amount: Decimal


@dataclass
class IncomeStatement:
    revenue_lines: List[StatementLine] = field(default_factory=list)
    charge_lines: List[StatementLine] = field(default_factory=list)
    revenue: Decimal = ZERO
    charges: Decimal = ZERO
    net_result: Decimal = ZERO
    start: Optional[date] = None
    end: Optional[date] = None


@dataclass
class BalanceSheet:
    cash: Decimal
    accounts_receivable: Decimal
    total_assets: Decimal
    opening_capital: Decimal
    net_result: Decimal
    total_liabilities_and_equity: Decimal
    start: Optional[date] = None
    end: Optional[date] = None


def _totals_by_account(entries: Iterable) -> Dict[str, Tuple[Decimal, Decimal]]:
    totals: Dict[str, Tuple[Decimal, Decimal]] = {}
    for entry in entries:
        try:
            get_account(entry.account_code)
        except UnknownAccount:
            raise InvariantViolation(
                f"Ledger holds an entry on account {entry.account_code!r}, which is not in the chart",
                account_code=entry.account_code,
                entry_number=getattr(entry, "entry_number", None),
            ) from None
        debit, credit = totals.get(entry.account_code, (ZERO, ZERO))
        totals[entry.account_code] = (debit + entry.debit_amount, credit + entry.credit_amount)
    return {code: (to_money(d), to_money(c)) for code, (d, c) in totals.items()}


def _normal_balance(code: str, debit: Decimal, credit: Decimal) -> Decimal:
    if get_account(code).normal_side == NormalSide.DEBIT:
        return debit - credit
    return credit - debit


def fold_trial_balance(entries: Iterable) -> TrialBalance:
    """
    Per-account debit/credit sums and balances plus grand totals.

    Raises:
        InvariantViolation: total debits differ from total credits, or an
            entry references an account outside the chart
    """
    totals = _totals_by_account(entries)
    lines = [
        TrialBalanceLine(
            account_code=code,
            account_name=get_account(code).name,
            debit=debit,
            credit=credit,
            balance=_normal_balance(code, debit, credit),
        )
        for code, (debit, credit) in sorted(totals.items())
    ]
    total_debit = to_money(sum((line.debit for line in lines), ZERO))
    total_credit = to_money(sum((line.credit for line in lines), ZERO))
    if total_debit != total_credit:
        raise InvariantViolation(
            f"Trial balance does not balance: debits {total_debit}, credits {total_credit}, "
            f"difference {total_debit - total_credit}",
            total_debit=total_debit,
            total_credit=total_credit,
        )
    return TrialBalance(lines=lines, total_debit=total_debit, total_credit=total_credit)


def fold_income_statement(entries: Iterable) -> IncomeStatement:
    """Revenue and charges per account; reversal lines net against their originals"""
    statement = IncomeStatement()
    for code, (debit, credit) in sorted(_totals_by_account(entries).items()):
        account = get_account(code)
        if account.kind == AccountKind.REVENUE:
            amount = credit - debit
            statement.revenue_lines.append(StatementLine(code, account.name, amount))
            statement.revenue += amount
        elif account.kind == AccountKind.CHARGE:
            amount = debit - credit
            statement.charge_lines.append(StatementLine(code, account.name, amount))
            statement.charges += amount
    statement.net_result = statement.revenue - statement.charges
    return statement


def fold_balance_sheet(entries: Iterable, opening_capital: Decimal) -> BalanceSheet:
    """
    Assets (cash and receivables) against opening capital plus the period's
    net result. Opening capital is not booked in the ledger, so the two sides
    only agree when the opening cash matches it.
    """
    entries = list(entries)
    totals = _totals_by_account(entries)
    cash_debit, cash_credit = totals.get(CASH, (ZERO, ZERO))
    ar_debit, ar_credit = totals.get(ACCOUNTS_RECEIVABLE, (ZERO, ZERO))
    cash = cash_debit - cash_credit
    receivable = ar_debit - ar_credit
    net_result = fold_income_statement(entries).net_result
    opening_capital = to_money(opening_capital)
    return BalanceSheet(
        cash=cash,
        accounts_receivable=receivable,
        total_assets=cash + receivable,
        opening_capital=opening_capital,
        net_result=net_result,
        total_liabilities_and_equity=opening_capital + net_result,
    )


@dataclass
class StudentPaymentLine:
    student_id: UUID
    student_number: str
    student_name: str
    total_due: Decimal = ZERO
    total_paid: Decimal = ZERO
    balance: Decimal = ZERO
    invoices_count: int = 0
    payments_count: int = 0
    last_payment_date: Optional[date] = None
    status: str = "paid"  # paid|partial|unpaid


@dataclass
class ClassPaymentReport:
    students: List[StudentPaymentLine]
    students_count: int
    paid_count: int
    partial_count: int
    unpaid_count: int
    total_due: Decimal
    total_paid: Decimal
    total_balance: Decimal
    class_id: Optional[UUID] = None
    class_name: Optional[str] = None
    start: Optional[date] = None
    end: Optional[date] = None


def _collection_status(line: StudentPaymentLine) -> str:
    if line.balance <= ZERO:
        return "paid"
    if line.total_paid > ZERO:
        return "partial"
    return "unpaid"


def fold_class_payments(students: Iterable, invoices: Iterable, payments: Iterable) -> ClassPaymentReport:
    """Per-student due/paid/balance lines, sorted by name, with class totals"""
    lines: Dict[UUID, StudentPaymentLine] = {
        s.id: StudentPaymentLine(s.id, s.student_number, s.full_name) for s in students
    }
    for invoice in invoices:
        line = lines[invoice.student_id]
        line.total_due += invoice.total_amount
        line.invoices_count += 1
    for payment in payments:
        line = lines[payment.student_id]
        line.total_paid += payment.amount
        line.payments_count += 1
        if line.last_payment_date is None or payment.payment_date > line.last_payment_date:
            line.last_payment_date = payment.payment_date

    ordered = sorted(lines.values(), key=lambda l: (l.student_name.lower(), l.student_number))
    for line in ordered:
        line.total_due = to_money(line.total_due)
        line.total_paid = to_money(line.total_paid)
        line.balance = line.total_due - line.total_paid
        line.status = _collection_status(line)

    statuses = [line.status for line in ordered]
    return ClassPaymentReport(
        students=ordered,
        students_count=len(ordered),
        paid_count=statuses.count("paid"),
        partial_count=statuses.count("partial"),
        unpaid_count=statuses.count("unpaid"),
        total_due=to_money(sum((l.total_due for l in ordered), ZERO)),
        total_paid=to_money(sum((l.total_paid for l in ordered), ZERO)),
        total_balance=to_money(sum((l.balance for l in ordered), ZERO)),
    )


class ReportingService:
    """Service class for the financial statements of one school"""

    def __init__(self, db: Session, school: School):
        self.db = db
        self.school = school

    def _entries(self, start: Optional[date], end: Optional[date]) -> List[AccountingEntry]:
        query = select(AccountingEntry).where(AccountingEntry.school_id == self.school.id)
        if start:
            query = query.where(AccountingEntry.entry_date >= start)
        if end:
            query = query.where(AccountingEntry.entry_date <= end)
        return list(self.db.execute(query).scalars())

    def _alert(self, error: InvariantViolation, report: str) -> None:
        alert_logger.critical(
            f"{report} for school {self.school.code}: {error.message}",
            extra={"school_id": self.school.id},
        )

    def trial_balance(self, start: Optional[date] = None, end: Optional[date] = None) -> TrialBalance:
        try:
            report = fold_trial_balance(self._entries(start, end))
        except InvariantViolation as e:
            self._alert(e, "Trial balance")
            raise
        report.start, report.end = start, end
        logger.debug(f"Trial balance {self.school.code}: {report.total_debit} / {report.total_credit}")
        return report

    def income_statement(self, start: Optional[date] = None, end: Optional[date] = None) -> IncomeStatement:
        try:
            report = fold_income_statement(self._entries(start, end))
        except InvariantViolation as e:
            self._alert(e, "Income statement")
            raise
        report.start, report.end = start, end
        return report

    def balance_sheet(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        opening_capital: Optional[Decimal] = None,
    ) -> BalanceSheet:
        if opening_capital is None:
            opening_capital = settings.LEDGER_OPENING_CAPITAL
        try:
            report = fold_balance_sheet(self._entries(start, end), opening_capital)
        except InvariantViolation as e:
            self._alert(e, "Balance sheet")
            raise
        report.start, report.end = start, end
        return report

    def class_payment_report(
        self,
        class_id: UUID,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> ClassPaymentReport:
        """
        Collection status of every active student in a class.

        Invoices are filtered on issue date and payments on payment date.
        Drafts and cancelled invoices are not due; reversed payments are not paid.

        Raises:
            NotFound: the class does not belong to this school
        """
        school_class = self.db.execute(
            select(SchoolClass).where(SchoolClass.id == class_id, SchoolClass.school_id == self.school.id)
        ).scalar_one_or_none()
        if school_class is None:
            raise NotFound("Class not found", class_id=class_id)

        students = list(self.db.execute(
            select(Student).where(
                Student.school_id == self.school.id,
                Student.class_id == class_id,
                Student.status == "ACTIVE",
            )
        ).scalars())
        student_ids = [s.id for s in students]

        invoice_query = select(Invoice).where(
            Invoice.school_id == self.school.id,
            Invoice.student_id.in_(student_ids),
            Invoice.status.not_in(("draft", "cancelled")),
        )
        payment_query = select(Payment).where(
            Payment.school_id == self.school.id,
            Payment.student_id.in_(student_ids),
            Payment.reversed_at.is_(None),
        )
        if start:
            invoice_query = invoice_query.where(Invoice.issue_date >= start)
            payment_query = payment_query.where(Payment.payment_date >= start)
        if end:
            invoice_query = invoice_query.where(Invoice.issue_date <= end)
            payment_query = payment_query.where(Payment.payment_date <= end)

        report = fold_class_payments(
            students,
            self.db.execute(invoice_query).scalars(),
            self.db.execute(payment_query).scalars(),
        )
        report.class_id, report.class_name = school_class.id, school_class.name
        report.start, report.end = start, end
        logger.debug(
            f"Class payment report {self.school.code}/{school_class.name}: "
            f"{report.total_paid} of {report.total_due}"
        )
        return report
