from datetime import date, timedelta
from decimal import Decimal

import pytest

from bursar.core.exceptions import EmptyInvoice, InvalidInvoiceItem, InvalidInvoiceState
from bursar.models import AccountingEntry, Invoice
from bursar.schemas.fee_schema import BillingRuleCreate
from bursar.schemas.invoice import InvoiceItemIn
from bursar.schemas.payment import PaymentCreate
from bursar.services.fee_service import FeeService
from bursar.services.invoice_service import InvoiceService
from bursar.services.numbering import format_number
from bursar.services.payment_service import PaymentService

JAN = date(2024, 1, 15)


@pytest.fixture
def invoices(db, seeded):
    return InvoiceService(db, seeded.school, created_by="bursar-1")


def test_compose_resolves_prices_and_totals(db, seeded, make_fee_type, invoices):
    tuition = make_fee_type("Tuition", "50000.00")
    uniform = make_fee_type("Uniform", "12000.00")
    FeeService(db, seeded.school).create_billing_rule(BillingRuleCreate(
        fee_type_id=tuition.id, target_type="class", target_id=seeded.p1.id, amount_override="45000.00",
    ))

    invoice = invoices.compose_invoice(
        seeded.alice.id,
        [
            InvoiceItemIn(fee_type_id=tuition.id),
            InvoiceItemIn(fee_type_id=uniform.id, quantity=2, unit_price="10000.00", description="Uniform set"),
        ],
        today=JAN,
    )

    assert invoice.invoice_number == "FAC-PAL-202401-0001"
    assert invoice.status == "pending"
    assert invoice.paid_amount == Decimal("0.00")
    assert invoice.issue_date == JAN
    assert invoice.due_date == JAN + timedelta(days=30)
    assert invoice.created_by == "bursar-1"
    assert [item.unit_price for item in invoice.items] == [Decimal("45000.00"), Decimal("10000.00")]
    assert [item.description for item in invoice.items] == ["Tuition", "Uniform set"]
    assert invoice.total_amount == sum(item.total_price for item in invoice.items) == Decimal("65000.00")


def test_issuing_posts_nothing_to_the_ledger(db, seeded, make_fee_type, invoices):
    tuition = make_fee_type()
    invoices.compose_invoice(seeded.alice.id, [InvoiceItemIn(fee_type_id=tuition.id)], today=JAN)
    assert db.query(AccountingEntry).count() == 0


def test_numbers_are_sequential_across_months(seeded, make_fee_type, invoices):
    tuition = make_fee_type()
    item = [InvoiceItemIn(fee_type_id=tuition.id)]
    first = invoices.compose_invoice(seeded.alice.id, item, today=JAN)
    second = invoices.compose_invoice(seeded.bob.id, item, today=JAN)
    third = invoices.compose_invoice(seeded.carol.id, item, today=date(2024, 2, 1))

    assert first.invoice_number == "FAC-PAL-202401-0001"
    assert second.invoice_number == "FAC-PAL-202401-0002"
    assert third.invoice_number == "FAC-PAL-202402-0003"


def test_format_number():
    assert format_number("PAY", "PAL", date(2025, 11, 3), 42) == "PAY-PAL-202511-0042"


def test_empty_invoice_is_rejected_without_consuming_a_number(db, seeded, make_fee_type, invoices):
    free = make_fee_type("Welcome pack", "0.00")
    tuition = make_fee_type()

    with pytest.raises(EmptyInvoice):
        invoices.compose_invoice(seeded.alice.id, [], today=JAN)
    with pytest.raises(EmptyInvoice):
        invoices.compose_invoice(seeded.alice.id, [InvoiceItemIn(fee_type_id=free.id)], today=JAN)

    assert db.query(Invoice).count() == 0
    invoice = invoices.compose_invoice(seeded.alice.id, [InvoiceItemIn(fee_type_id=tuition.id)], today=JAN)
    assert invoice.invoice_number.endswith("-0001")


def test_inactive_fee_type_cannot_be_billed(seeded, make_fee_type, invoices):
    retired = make_fee_type("Old fee", "1000.00", is_active=False)
    with pytest.raises(InvalidInvoiceItem):
        invoices.compose_invoice(seeded.alice.id, [InvoiceItemIn(fee_type_id=retired.id)], today=JAN)


def test_overdue_is_derived_from_due_date(seeded, make_fee_type, invoices):
    tuition = make_fee_type()
    invoice = invoices.compose_invoice(
        seeded.alice.id, [InvoiceItemIn(fee_type_id=tuition.id)], due_date=date(2024, 2, 1), today=JAN,
    )

    assert invoice.effective_status(date(2024, 2, 1)) == "pending"
    assert invoice.effective_status(date(2024, 2, 2)) == "overdue"
    assert invoice.status == "pending"
    assert invoices.list_invoices(status="overdue", today=date(2024, 3, 1)) == [invoice]
    assert invoices.list_invoices(status="overdue", today=JAN) == []


def test_replace_items_recomputes_total(db, seeded, make_fee_type, invoices):
    tuition = make_fee_type("Tuition", "50000.00")
    transport = make_fee_type("Transport", "8000.00")
    invoice = invoices.compose_invoice(seeded.alice.id, [InvoiceItemIn(fee_type_id=tuition.id)], today=JAN)

    invoice = invoices.replace_items(invoice.id, [
        InvoiceItemIn(fee_type_id=tuition.id),
        InvoiceItemIn(fee_type_id=transport.id, quantity=3),
    ])

    assert len(invoice.items) == 2
    assert invoice.total_amount == sum(item.total_price for item in invoice.items) == Decimal("74000.00")


def test_replace_items_refused_once_money_arrived(db, seeded, make_fee_type, invoices):
    tuition = make_fee_type()
    invoice = invoices.compose_invoice(seeded.alice.id, [InvoiceItemIn(fee_type_id=tuition.id)], today=JAN)
    PaymentService(db, seeded.school).apply_payment(PaymentCreate(
        student_id=seeded.alice.id, invoice_id=invoice.id, amount="1000.00", payment_date=JAN,
    ))

    with pytest.raises(InvalidInvoiceState):
        invoices.replace_items(invoice.id, [InvoiceItemIn(fee_type_id=tuition.id, quantity=2)])
    db.refresh(invoice)
    assert invoice.total_amount == Decimal("50000.00")


def test_cancel_invoice(db, seeded, make_fee_type, invoices):
    tuition = make_fee_type()
    invoice = invoices.compose_invoice(seeded.alice.id, [InvoiceItemIn(fee_type_id=tuition.id)], today=JAN)

    cancelled = invoices.cancel_invoice(invoice.id)

    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_at is not None
    assert cancelled.balance == Decimal("0.00")
    with pytest.raises(InvalidInvoiceState):
        invoices.cancel_invoice(invoice.id)
    with pytest.raises(InvalidInvoiceState):
        PaymentService(db, seeded.school).apply_payment(PaymentCreate(
            student_id=seeded.alice.id, invoice_id=invoice.id, amount="100.00",
        ))


def test_paid_invoice_cannot_be_cancelled(db, seeded, make_fee_type, invoices):
    tuition = make_fee_type("Tuition", "5000.00")
    invoice = invoices.compose_invoice(seeded.alice.id, [InvoiceItemIn(fee_type_id=tuition.id)], today=JAN)
    PaymentService(db, seeded.school).apply_payment(PaymentCreate(
        student_id=seeded.alice.id, invoice_id=invoice.id, amount="5000.00", payment_date=JAN,
    ))

    with pytest.raises(InvalidInvoiceState):
        invoices.cancel_invoice(invoice.id)


class TestBulkBilling:
    def test_bills_every_active_student_of_a_section(self, seeded, make_fee_type, invoices):
        tuition = make_fee_type()
        result = invoices.bulk_compose("section", seeded.primary.id, [tuition.id], today=JAN)

        # dave is archived
        assert result.created == 2
        assert result.failed == 0
        assert result.total_amount == Decimal("100000.00")
        assert sorted(inv.student_id for inv in result.invoices) == sorted([seeded.alice.id, seeded.bob.id])

    def test_failures_are_collected_not_raised(self, db, seeded, make_fee_type, invoices):
        tuition = make_fee_type()
        FeeService(db, seeded.school).create_billing_rule(BillingRuleCreate(
            fee_type_id=tuition.id, target_type="class", target_id=seeded.p1.id, amount_override="45000.00",
        ))

        result = invoices.bulk_compose("school", None, [tuition.id], today=JAN)

        # eve has no class, so the class-scoped rule cannot be evaluated for her
        assert result.created == 3
        assert result.failed == 1
        assert result.errors[0].startswith("S005")
        assert result.total_amount == Decimal("140000.00")
        assert db.query(Invoice).count() == 3
        assert sorted(inv.invoice_number for inv in result.invoices) == [
            "FAC-PAL-202401-0001", "FAC-PAL-202401-0002", "FAC-PAL-202401-0003",
        ]
