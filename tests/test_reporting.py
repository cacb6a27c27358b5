import logging
import random
import uuid
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from bursar.core.exceptions import InvariantViolation, NotFound
from bursar.models import AccountingEntry
from bursar.schemas.accounting import ExpenseCreate
from bursar.schemas.invoice import InvoiceItemIn
from bursar.schemas.payment import PaymentCreate
from bursar.services.expense_service import ExpenseService
from bursar.services.invoice_service import InvoiceService
from bursar.services.payment_service import PaymentService
from bursar.services.reporting_service import (
    ReportingService, fold_balance_sheet, fold_class_payments, fold_income_statement, fold_trial_balance,
)

D = Decimal
CATEGORIES = ["salaries", "utilities", "supplies", "maintenance", "other"]


def line(code, debit="0", credit="0"):
    return SimpleNamespace(account_code=code, debit_amount=D(debit), credit_amount=D(credit), entry_number="ECR-T")


class TestFolds:
    def test_trial_balance_per_account(self):
        report = fold_trial_balance([
            line("5111", debit="100"), line("7011", credit="100"),
            line("6011", debit="40"), line("5111", credit="40"),
        ])
        by_code = {l.account_code: l for l in report.lines}
        assert by_code["5111"].balance == D("60.00")
        assert by_code["7011"].balance == D("100.00")
        assert by_code["7011"].account_name == "Tuition Revenue"
        assert report.total_debit == report.total_credit == D("140.00")

    def test_unbalanced_ledger_is_an_invariant_violation(self):
        with pytest.raises(InvariantViolation):
            fold_trial_balance([line("5111", debit="100"), line("7011", credit="99")])

    def test_unknown_account_is_an_invariant_violation(self):
        with pytest.raises(InvariantViolation):
            fold_income_statement([line("9999", debit="1")])

    def test_income_statement_nets_reversals(self):
        statement = fold_income_statement([
            line("5111", debit="500"), line("7011", credit="500"),
            line("6411", debit="200"), line("5111", credit="200"),
            line("6411", credit="200"), line("5111", debit="200"),
        ])
        assert statement.revenue == D("500.00")
        assert statement.charges == D("0.00")
        assert statement.net_result == D("500.00")

    def test_balance_sheet(self):
        sheet = fold_balance_sheet(
            [line("5111", debit="500"), line("7011", credit="500"), line("6061", debit="50"), line("5111", credit="50")],
            opening_capital=D("1000"),
        )
        assert sheet.cash == D("450.00")
        assert sheet.accounts_receivable == D("0.00")
        assert sheet.total_assets == D("450.00")
        assert sheet.net_result == D("450.00")
        assert sheet.total_liabilities_and_equity == D("1450.00")


def test_trial_balance_holds_over_random_events(db, seeded):
    rng = random.Random(20240101)
    payments = PaymentService(db, seeded.school)
    expenses = ExpenseService(db, seeded.school)
    students = [seeded.alice, seeded.bob, seeded.carol]
    start = date(2024, 1, 1)
    cash = D("0.00")

    for _ in range(40):
        amount = D(rng.randint(100, 500000)) / 100
        when = start + timedelta(days=rng.randint(0, 180))
        if rng.random() < 0.6:
            result = payments.apply_payment(PaymentCreate(
                student_id=rng.choice(students).id, amount=amount, payment_date=when,
            ))
            cash += amount
            if rng.random() < 0.1:
                payments.reverse_payment(result.payment.id)
                cash -= amount
        else:
            result = expenses.record_expense(ExpenseCreate(
                description="Random expense", amount=amount, expense_date=when, category=rng.choice(CATEGORIES),
            ))
            cash -= amount
            if rng.random() < 0.1:
                expenses.reverse_expense(result.expense.id)
                cash += amount

    reports = ReportingService(db, seeded.school)
    trial = reports.trial_balance()
    assert trial.total_debit == trial.total_credit
    assert reports.balance_sheet().cash == cash
    statement = reports.income_statement()
    assert statement.net_result == cash


def test_statements_for_a_term(db, seeded):
    payments = PaymentService(db, seeded.school)
    expenses = ExpenseService(db, seeded.school)
    payments.apply_payment(PaymentCreate(student_id=seeded.alice.id, amount="80000.00", payment_date=date(2024, 2, 1)))
    expenses.record_expense(ExpenseCreate(
        description="Notebooks", amount="25000.00", expense_date=date(2024, 2, 5), category="supplies",
    ))
    salaries = expenses.record_expense(ExpenseCreate(
        description="February salaries", amount="10000.00", expense_date=date(2024, 2, 28), category="salaries",
    ))
    # Outside the range
    expenses.record_expense(ExpenseCreate(
        description="April repairs", amount="999.00", expense_date=date(2024, 4, 2), category="maintenance",
    ))

    reports = ReportingService(db, seeded.school)
    statement = reports.income_statement(date(2024, 2, 1), date(2024, 2, 29))
    assert statement.revenue == D("80000.00")
    assert statement.charges == D("35000.00")
    assert statement.net_result == D("45000.00")
    assert {l.account_code: l.amount for l in statement.charge_lines} == {"6011": D("25000.00"), "6411": D("10000.00")}

    sheet = reports.balance_sheet(date(2024, 2, 1), date(2024, 2, 29))
    assert sheet.cash == D("45000.00")
    assert sheet.total_assets == D("45000.00")
    assert sheet.opening_capital == D("100000.00")
    assert sheet.total_liabilities_and_equity == D("145000.00")
    assert reports.balance_sheet(opening_capital=D("0")).opening_capital == D("0.00")

    expenses.reverse_expense(salaries.expense.id)
    assert reports.income_statement().charges == D("25999.00")


def test_corrupt_ledger_raises_and_alerts(db, seeded, caplog):
    db.add(AccountingEntry(
        school_id=seeded.school.id,
        entry_number="ECR-PAL-202401-9999",
        entry_date=date(2024, 1, 1),
        description="Orphan debit",
        reference_type="payment",
        reference_id=uuid.uuid4(),
        debit_amount=D("10.00"),
        credit_amount=D("0.00"),
        account_code="5111",
        currency="CDF",
    ))
    db.commit()

    with caplog.at_level(logging.CRITICAL, logger="bursar.alerts"):
        with pytest.raises(InvariantViolation) as exc:
            ReportingService(db, seeded.school).trial_balance()

    assert exc.value.context["total_debit"] == D("10.00")
    assert any(r.name == "bursar.alerts" and r.levelno == logging.CRITICAL for r in caplog.records)


def test_class_payment_statuses():
    students = [
        SimpleNamespace(id=1, student_number="S1", full_name="Zoe Kabila"),
        SimpleNamespace(id=2, student_number="S2", full_name="Ann Mbuyi"),
        SimpleNamespace(id=3, student_number="S3", full_name="Ben Ilunga"),
    ]
    invoices = [
        SimpleNamespace(student_id=1, total_amount=D("100")),
        SimpleNamespace(student_id=3, total_amount=D("100")),
    ]
    payments = [SimpleNamespace(student_id=1, amount=D("100"), payment_date=date(2024, 1, 5))]

    report = fold_class_payments(students, invoices, payments)

    assert [(l.student_name, l.status) for l in report.students] == [
        ("Ann Mbuyi", "paid"), ("Ben Ilunga", "unpaid"), ("Zoe Kabila", "paid"),
    ]
    assert (report.paid_count, report.partial_count, report.unpaid_count) == (2, 0, 1)
    assert report.total_balance == D("100.00")


def test_class_payment_report(db, seeded, make_fee_type, make_school):
    tuition = make_fee_type("Tuition", "80000.00")
    items = [InvoiceItemIn(fee_type_id=tuition.id)]
    invoices = InvoiceService(db, seeded.school)
    payments = PaymentService(db, seeded.school)

    alice_invoice = invoices.compose_invoice(seeded.alice.id, items, today=date(2024, 2, 1))
    invoices.compose_invoice(seeded.bob.id, items, today=date(2024, 2, 1))
    dropped = invoices.compose_invoice(seeded.bob.id, items, today=date(2024, 2, 2))
    invoices.cancel_invoice(dropped.id)
    invoices.compose_invoice(seeded.bob.id, items, today=date(2024, 4, 1))

    for amount, day in (("30000.00", 10), ("20000.00", 20)):
        payments.apply_payment(PaymentCreate(
            student_id=seeded.alice.id, invoice_id=alice_invoice.id, amount=amount, payment_date=date(2024, 2, day),
        ))
    mistake = payments.apply_payment(PaymentCreate(
        student_id=seeded.alice.id, invoice_id=alice_invoice.id, amount="5000.00", payment_date=date(2024, 2, 25),
    ))
    payments.reverse_payment(mistake.payment.id)

    reports = ReportingService(db, seeded.school)
    report = reports.class_payment_report(seeded.p1.id, date(2024, 2, 1), date(2024, 3, 31))
    assert report.class_name == "P1"
    assert [l.student_name for l in report.students] == ["Alice Test", "Bob Test"]

    alice, bob = report.students
    assert (alice.total_due, alice.total_paid, alice.balance) == (D("80000.00"), D("50000.00"), D("30000.00"))
    assert alice.payments_count == 2
    assert alice.last_payment_date == date(2024, 2, 20)
    assert alice.status == "partial"
    assert (bob.total_due, bob.invoices_count, bob.status) == (D("80000.00"), 1, "unpaid")
    assert bob.last_payment_date is None

    assert (report.paid_count, report.partial_count, report.unpaid_count) == (0, 1, 1)
    assert report.total_due == D("160000.00")
    assert report.total_paid == D("50000.00")
    assert report.total_balance == D("110000.00")

    assert reports.class_payment_report(seeded.p1.id).students[1].total_due == D("160000.00")
    # dave is archived
    assert reports.class_payment_report(seeded.p2.id).students_count == 0

    other = make_school("OTH")
    with pytest.raises(NotFound):
        reports.class_payment_report(other.p1.id)
