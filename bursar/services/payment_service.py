# bursar/services/payment_service.py - Apply payments to invoices and keep balances honest
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from bursar.core.exceptions import (
    AlreadyReversed, BursarError, InvalidInvoiceState, InvalidSessionState, NotFound, OverpaymentRejected,
)
from bursar.core.locks import write_lock
from bursar.core.money import ZERO, to_money
from bursar.models.accounting import AccountingEntry
from bursar.models.cash import CashSession
from bursar.models.fee import FeeType
from bursar.models.payment import Invoice, Payment
from bursar.models.school import School
from bursar.models.student import Student
from bursar.schemas.payment import PaymentCreate
from bursar.services.ledger_service import LedgerService, PaymentReceived
from bursar.services.numbering import PAYMENT_PREFIX, next_number

logger = logging.getLogger(__name__)


@dataclass
class PaymentApplication:
    payment: Payment
    invoice: Optional[Invoice]
    entries: List[AccountingEntry]


@dataclass
class PaymentReversal:
    payment: Payment
    invoice: Optional[Invoice]
    entries: List[AccountingEntry]


def status_for(invoice: Invoice) -> str:
    """Stored status implied by the paid amount of a live invoice"""
    if invoice.paid_amount == invoice.total_amount:
        return "paid"
    return "pending"


class PaymentService:
    """Service class for recording and reversing payments of one school"""

    def __init__(self, db: Session, school: School, created_by: Optional[str] = None):
        self.db = db
        self.school = school
        self.created_by = created_by
        self.ledger = LedgerService(db, school, created_by)

    def get_payment(self, payment_id: UUID) -> Payment:
        payment = self.db.execute(
            select(Payment).where(Payment.id == payment_id, Payment.school_id == self.school.id)
        ).scalar_one_or_none()
        if payment is None:
            raise NotFound("Payment not found", payment_id=payment_id)
        return payment

    def list_payments(
        self,
        student_id: Optional[UUID] = None,
        invoice_id: Optional[UUID] = None,
        session_id: Optional[UUID] = None,
        include_reversed: bool = True,
    ) -> List[Payment]:
        query = select(Payment).where(Payment.school_id == self.school.id)
        if student_id:
            query = query.where(Payment.student_id == student_id)
        if invoice_id:
            query = query.where(Payment.invoice_id == invoice_id)
        if session_id:
            query = query.where(Payment.session_id == session_id)
        if not include_reversed:
            query = query.where(Payment.reversed_at.is_(None))
        return list(
            self.db.execute(query.order_by(Payment.payment_date.desc(), Payment.payment_number.desc())).scalars()
        )

    def _lock_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self.db.execute(
            select(Invoice)
            .where(Invoice.id == invoice_id, Invoice.school_id == self.school.id)
            .with_for_update()
        ).scalar_one_or_none()
        if invoice is None:
            raise NotFound("Invoice not found", invoice_id=invoice_id)
        return invoice

    def _lock_open_session(self, session_id: UUID) -> CashSession:
        session = self.db.execute(
            select(CashSession)
            .where(CashSession.id == session_id, CashSession.school_id == self.school.id)
            .with_for_update()
        ).scalar_one_or_none()
        if session is None:
            raise NotFound("Cash session not found", session_id=session_id)
        if not session.is_open:
            raise InvalidSessionState(
                f"Cash session {session.session_number} is closed and cannot take payments",
                session_number=session.session_number,
            )
        return session

    def _check_references(self, data: PaymentCreate) -> Student:
        student = self.db.execute(
            select(Student).where(Student.id == data.student_id, Student.school_id == self.school.id)
        ).scalar_one_or_none()
        if student is None:
            raise NotFound("Student not found", student_id=data.student_id)
        if data.fee_type_id is not None:
            fee_type = self.db.execute(
                select(FeeType.id).where(FeeType.id == data.fee_type_id, FeeType.school_id == self.school.id)
            ).scalar_one_or_none()
            if fee_type is None:
                raise NotFound("Fee type not found", fee_type_id=data.fee_type_id)
        return student

    def apply_payment(self, data: PaymentCreate) -> PaymentApplication:
        """
        Record a payment, settle its invoice and post Dr Cash / Cr Tuition Revenue.

        Everything happens in one transaction under the school's lock: a
        rejected payment leaves no payment row, no invoice change and no
        ledger entry behind.

        Raises:
            OverpaymentRejected: the amount exceeds the invoice's remaining balance
            InvalidInvoiceState: the invoice is cancelled, a draft, or belongs
                to another student
            InvalidSessionState: the cash session named on the payment is closed
        """
        amount = to_money(data.amount)
        payment_date = data.payment_date or date.today()

        with write_lock(self.db, self.school.id):
            try:
                student = self._check_references(data)

                invoice = None
                if data.invoice_id is not None:
                    invoice = self._lock_invoice(data.invoice_id)
                    if invoice.student_id != student.id:
                        raise InvalidInvoiceState(
                            f"Invoice {invoice.invoice_number} does not belong to student {student.student_number}",
                            invoice_number=invoice.invoice_number,
                            student_id=student.id,
                        )
                    if invoice.status in ("cancelled", "draft"):
                        raise InvalidInvoiceState(
                            f"Invoice {invoice.invoice_number} is {invoice.status} and cannot receive payments",
                            invoice_number=invoice.invoice_number,
                            status=invoice.status,
                        )
                    remaining = invoice.total_amount - invoice.paid_amount
                    if amount > remaining:
                        raise OverpaymentRejected(amount, remaining, invoice.invoice_number)

                session = None
                if data.session_id is not None:
                    session = self._lock_open_session(data.session_id)

                payment = Payment(
                    school_id=self.school.id,
                    payment_number=next_number(self.db, self.school, PAYMENT_PREFIX, payment_date),
                    student_id=student.id,
                    session_id=session.id if session is not None else None,
                    fee_type_id=data.fee_type_id,
                    invoice_id=invoice.id if invoice is not None else None,
                    amount=amount,
                    payment_date=payment_date,
                    method=data.method,
                    reference=data.reference,
                    notes=data.notes,
                    created_by=self.created_by,
                )
                self.db.add(payment)
                self.db.flush()

                if invoice is not None:
                    invoice.paid_amount = invoice.paid_amount + amount
                    invoice.status = status_for(invoice)

                entries = self.ledger.post(PaymentReceived(
                    amount=amount,
                    date=payment_date,
                    reference_id=payment.id,
                    description=f"Payment {payment.payment_number} from {student.full_name}"[:255],
                ))
                self.db.commit()
            except BursarError as e:
                self.db.rollback()
                logger.warning(f"Payment rejected: {e.message}")
                raise
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(payment)
        if invoice is not None:
            self.db.refresh(invoice)
        target = f"invoice {invoice.invoice_number}" if invoice is not None else "ad-hoc"
        logger.info(f"Payment {payment.payment_number} applied ({target}): {payment.amount}")
        return PaymentApplication(payment=payment, invoice=invoice, entries=entries)

    def reverse_payment(self, payment_id: UUID, reason: Optional[str] = None) -> PaymentReversal:
        """
        Undo a payment: post the mirror ledger pair, mark the payment reversed
        and take the amount back off its invoice (a paid invoice reopens).

        Raises:
            AlreadyReversed: the payment was reversed before
            InvalidInvoiceState: the payment's invoice has been cancelled
        """
        with write_lock(self.db, self.school.id):
            try:
                payment = self.get_payment(payment_id)
                if payment.is_reversed:
                    raise AlreadyReversed(
                        f"Payment {payment.payment_number} has already been reversed",
                        payment_number=payment.payment_number,
                    )

                invoice = None
                if payment.invoice_id is not None:
                    invoice = self._lock_invoice(payment.invoice_id)
                    if invoice.status == "cancelled":
                        raise InvalidInvoiceState(
                            f"Invoice {invoice.invoice_number} is cancelled; its payments cannot be reversed",
                            invoice_number=invoice.invoice_number,
                            payment_number=payment.payment_number,
                        )
                    invoice.paid_amount = max(ZERO, invoice.paid_amount - payment.amount)
                    invoice.status = status_for(invoice)

                entries = self.ledger.reverse("payment", payment.id, reason=reason)
                payment.reversed_at = datetime.utcnow()
                self.db.commit()
            except BursarError as e:
                self.db.rollback()
                logger.warning(f"Payment reversal rejected: {e.message}")
                raise
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(payment)
        if invoice is not None:
            self.db.refresh(invoice)
        logger.info(f"Payment {payment.payment_number} reversed: {payment.amount}")
        return PaymentReversal(payment=payment, invoice=invoice, entries=entries)
