import threading
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from bursar.models import AccountingEntry, FeeType, Invoice, Payment, School
from bursar.schemas.invoice import InvoiceItemIn
from bursar.schemas.payment import PaymentCreate
from bursar.services.invoice_service import InvoiceService
from bursar.services.payment_service import PaymentService
from bursar.services.reporting_service import ReportingService

MAY = date(2024, 5, 6)
WORKERS = 6


def run_concurrently(engine, school_ids, jobs):
    """
    Run every job in its own thread and session, all released at once.

    Each worker reads its school first, as ``require_school`` does for a
    request, so it enters the service already holding a read transaction.
    Returns the exceptions raised by the jobs.
    """
    errors = []
    barrier = threading.Barrier(len(jobs))

    def worker(school_id, job):
        with Session(bind=engine, expire_on_commit=False) as session:
            school = session.get(School, school_id)
            barrier.wait()
            try:
                job(session, school)
            except Exception as e:
                errors.append(e)

    threads = [
        threading.Thread(target=worker, args=(school_id, job))
        for school_id, job in zip(school_ids, jobs)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=120)
    assert not any(thread.is_alive() for thread in threads)
    return errors


@pytest.fixture
def billed(file_engine, file_seeded):
    """A 60,000 tuition fee and one invoice for carol"""
    with Session(bind=file_engine, expire_on_commit=False) as session:
        school = session.get(School, file_seeded.school.id)
        tuition = FeeType(school_id=school.id, name="Tuition", amount=Decimal("60000.00"))
        session.add(tuition)
        session.commit()
        invoice = InvoiceService(session, school).compose_invoice(
            file_seeded.carol.id, [InvoiceItemIn(fee_type_id=tuition.id)], today=MAY,
        )
    return tuition, invoice


def test_concurrent_billing_and_payments_are_serialised(file_engine, file_seeded, billed):
    tuition, invoice = billed

    def compose(session, school):
        InvoiceService(session, school).compose_invoice(
            file_seeded.alice.id, [InvoiceItemIn(fee_type_id=tuition.id)], today=MAY,
        )

    def pay(session, school):
        PaymentService(session, school).apply_payment(PaymentCreate(
            student_id=file_seeded.carol.id, invoice_id=invoice.id, amount="10000.00", payment_date=MAY,
        ))

    jobs = [compose, pay] * WORKERS
    errors = run_concurrently(file_engine, [file_seeded.school.id] * len(jobs), jobs)
    assert errors == []

    with Session(bind=file_engine) as session:
        numbers = sorted(n for (n,) in session.query(Invoice.invoice_number))
        assert numbers == [f"FAC-PAL-202405-{i:04d}" for i in range(1, WORKERS + 2)]

        payment_numbers = sorted(n for (n,) in session.query(Payment.payment_number))
        assert payment_numbers == [f"PAY-PAL-202405-{i:04d}" for i in range(1, WORKERS + 1)]

        carol_invoice = session.get(Invoice, invoice.id)
        assert carol_invoice.paid_amount == Decimal("60000.00")
        assert carol_invoice.status == "paid"

        entry_numbers = [n for (n,) in session.query(AccountingEntry.entry_number)]
        assert len(entry_numbers) == len(set(entry_numbers)) == 2 * WORKERS

        trial = ReportingService(session, session.get(School, file_seeded.school.id)).trial_balance()
        assert trial.total_debit == trial.total_credit == Decimal("60000.00")


def test_overpayments_under_contention_are_rejected_not_lost(file_engine, file_seeded, billed):
    _, invoice = billed

    def pay(session, school):
        PaymentService(session, school).apply_payment(PaymentCreate(
            student_id=file_seeded.carol.id, invoice_id=invoice.id, amount="25000.00", payment_date=MAY,
        ))

    errors = run_concurrently(file_engine, [file_seeded.school.id] * 4, [pay] * 4)

    # Two payments fit in 60,000; the others see the updated balance
    assert [type(e).__name__ for e in errors] == ["OverpaymentRejected", "OverpaymentRejected"]
    with Session(bind=file_engine) as session:
        assert session.get(Invoice, invoice.id).paid_amount == Decimal("50000.00")
        assert session.query(Payment).count() == 2
        assert session.query(AccountingEntry).count() == 4
