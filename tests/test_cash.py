import logging
from datetime import date
from decimal import Decimal

import pytest

from bursar.core.exceptions import InvalidAmount, InvalidSessionState, NotFound, SessionAlreadyOpen
from bursar.models import CashMovement, CashSession, Payment
from bursar.schemas.cash import CashMovementCreate, CashSessionClose, CashSessionOpen
from bursar.schemas.invoice import InvoiceItemIn
from bursar.schemas.payment import PaymentCreate
from bursar.services.cash_service import CashSessionService
from bursar.services.invoice_service import InvoiceService
from bursar.services.payment_service import PaymentService

MARCH = date(2024, 3, 11)


@pytest.fixture
def invoice(db, seeded, make_fee_type):
    tuition = make_fee_type("Tuition", "80000.00")
    return InvoiceService(db, seeded.school).compose_invoice(
        seeded.alice.id, [InvoiceItemIn(fee_type_id=tuition.id)], today=MARCH,
    )


@pytest.fixture
def register(db, seeded):
    return CashSessionService(db, seeded.school, cashier_id="cashier-1")


@pytest.fixture
def session(register):
    return register.open_session(CashSessionOpen(opening_balance="10000.00", session_date=MARCH))


def pay(db, seeded, invoice, amount, session=None, method="cash"):
    return PaymentService(db, seeded.school, created_by="cashier-1").apply_payment(PaymentCreate(
        student_id=invoice.student_id,
        invoice_id=invoice.id,
        amount=amount,
        payment_date=MARCH,
        method=method,
        session_id=session.id if session is not None else None,
    ))


def move(register, session, movement_type, amount, reason="Float"):
    return register.record_movement(session.id, CashMovementCreate(
        movement_type=movement_type, amount=amount, reason=reason, movement_date=MARCH,
    ))


def test_open_session(register, session):
    assert session.session_number == "CASH-PAL-202403-0001"
    assert session.cashier_id == "cashier-1"
    assert session.status == "in_progress"
    assert session.opening_balance == Decimal("10000.00")
    assert session.expected_closing_balance is None
    assert register.current_session() == session


def test_one_open_session_per_cashier(db, seeded, register, session):
    with pytest.raises(SessionAlreadyOpen):
        register.open_session(CashSessionOpen(opening_balance="0.00", session_date=MARCH))

    other = CashSessionService(db, seeded.school, cashier_id="cashier-2").open_session(
        CashSessionOpen(opening_balance="0.00", session_date=MARCH)
    )
    assert other.session_number == "CASH-PAL-202403-0002"
    assert db.query(CashSession).count() == 2


def test_opening_requires_a_cashier(db, seeded):
    with pytest.raises(InvalidSessionState):
        CashSessionService(db, seeded.school).open_session(CashSessionOpen(opening_balance="0.00"))
    assert db.query(CashSession).count() == 0


def test_close_reconciles_payments_and_movements(db, seeded, invoice, register, session, caplog):
    pay(db, seeded, invoice, "50000.00", session)
    pay(db, seeded, invoice, "20000.00", session, method="mobile_money")
    topup = move(register, session, "in", "5000.00")
    move(register, session, "out", "15000.00", reason="Transfer to safe")
    assert topup.movement_number == "MVT-PAL-202403-0001"

    report = register.session_report(session.id)
    assert report.total_payments == Decimal("70000.00")
    assert report.payments_by_method == {
        "cash": Decimal("50000.00"),
        "mobile_money": Decimal("20000.00"),
        "bank_transfer": Decimal("0.00"),
        "check": Decimal("0.00"),
    }
    assert report.expected_closing_balance == Decimal("70000.00")
    assert report.cash_difference is None

    with caplog.at_level(logging.WARNING, logger="bursar.services.cash_service"):
        closed = register.close_session(session.id, CashSessionClose(actual_closing_balance="69500.00"))

    assert closed.status == "closed"
    assert closed.closed_at is not None
    assert closed.expected_closing_balance == Decimal("70000.00")
    assert closed.cash_difference == Decimal("-500.00")
    assert "difference of -500.00" in caplog.text
    assert register.current_session() is None


def test_cash_out_cannot_exceed_the_drawer(db, register, session):
    with pytest.raises(InvalidAmount) as exc:
        move(register, session, "out", "10000.01")
    assert exc.value.context["available"] == Decimal("10000.00")
    assert db.query(CashMovement).count() == 0

    move(register, session, "out", "10000.00")
    assert register.session_report(session.id).expected_closing_balance == Decimal("0.00")


def test_closed_session_refuses_movements_and_payments(db, seeded, invoice, register, session):
    register.close_session(session.id, CashSessionClose(actual_closing_balance="10000.00"))

    with pytest.raises(InvalidSessionState):
        move(register, session, "in", "100.00")
    with pytest.raises(InvalidSessionState):
        register.close_session(session.id, CashSessionClose(actual_closing_balance="10000.00"))
    with pytest.raises(InvalidSessionState):
        pay(db, seeded, invoice, "100.00", session)

    db.refresh(invoice)
    assert invoice.paid_amount == Decimal("0.00")
    assert db.query(Payment).count() == 0


def test_payment_cannot_use_another_schools_session(db, seeded, invoice, make_school):
    other = make_school("OTH")
    foreign = CashSessionService(db, other.school, cashier_id="cashier-9").open_session(
        CashSessionOpen(opening_balance="0.00", session_date=MARCH)
    )
    with pytest.raises(NotFound):
        pay(db, seeded, invoice, "100.00", foreign)
    assert db.query(Payment).count() == 0


def test_reversed_payments_leave_the_session_totals(db, seeded, invoice, register, session):
    first = pay(db, seeded, invoice, "30000.00", session)
    pay(db, seeded, invoice, "10000.00", session)
    PaymentService(db, seeded.school).reverse_payment(first.payment.id, reason="Wrong student")

    report = register.session_report(session.id)
    assert report.total_payments == Decimal("10000.00")
    assert report.payments_count == 1
    assert report.expected_closing_balance == Decimal("20000.00")
    assert len(register.session_payments(session.id)) == 2


def test_closing_figures_are_frozen(db, seeded, invoice, register, session):
    payment = pay(db, seeded, invoice, "30000.00", session).payment
    register.close_session(session.id, CashSessionClose(actual_closing_balance="40000.00"))

    PaymentService(db, seeded.school).reverse_payment(payment.id)

    report = register.session_report(session.id)
    assert report.expected_closing_balance == Decimal("40000.00")
    assert report.cash_difference == Decimal("0.00")
    assert report.total_payments == Decimal("0.00")


def test_daily_report(db, seeded, invoice, register, session):
    pay(db, seeded, invoice, "30000.00", session)
    register.close_session(session.id, CashSessionClose(actual_closing_balance="39000.00"))

    second = CashSessionService(db, seeded.school, cashier_id="cashier-2")
    other = second.open_session(CashSessionOpen(opening_balance="5000.00", session_date=MARCH))
    pay(db, seeded, invoice, "2000.00", other, method="check")
    second.record_movement(other.id, CashMovementCreate(
        movement_type="in", amount="500.00", reason="Change", movement_date=MARCH,
    ))

    report = register.daily_report(MARCH)
    assert report.sessions_count == 2
    assert report.total_payments == Decimal("32000.00")
    assert report.total_movements_in == Decimal("500.00")
    assert report.total_difference == Decimal("-1000.00")
    assert report.payments_by_method["cash"] == Decimal("30000.00")
    assert report.payments_by_method["check"] == Decimal("2000.00")
    assert [s.status for s in report.sessions] == ["closed", "in_progress"]

    assert register.daily_report(date(2024, 3, 12)).sessions_count == 0
    assert register.list_sessions(status="in_progress") == [other]
