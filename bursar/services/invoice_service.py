# bursar/services/invoice_service.py - Compose, mutate and cancel invoices
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bursar.core.config import settings
from bursar.core.exceptions import (
    BursarError, DuplicateInvoiceNumber, EmptyInvoice, InvalidInvoiceItem,
    InvalidInvoiceState, NotFound,
)
from bursar.core.locks import write_lock
from bursar.core.money import ZERO, to_money
from bursar.models.class_model import SchoolClass
from bursar.models.fee import FeeType
from bursar.models.payment import Invoice, InvoiceItem
from bursar.models.school import School
from bursar.models.student import Student
from bursar.schemas.invoice import InvoiceItemIn
from bursar.services.fee_resolver import FeeRuleResolver
from bursar.services.numbering import INVOICE_PREFIX, next_number

logger = logging.getLogger(__name__)

MUTABLE_STATUSES = ("draft", "pending")


@dataclass
class BulkBillingResult:
    created: int = 0
    failed: int = 0
    total_amount: Decimal = ZERO
    errors: List[str] = field(default_factory=list)
    invoices: List[Invoice] = field(default_factory=list)


class InvoiceService:
    """Service class for the invoices of one school"""

    def __init__(self, db: Session, school: School, created_by: Optional[str] = None):
        self.db = db
        self.school = school
        self.created_by = created_by
        self.resolver = FeeRuleResolver(db)

    def get_student(self, student_id: UUID) -> Student:
        student = self.db.execute(
            select(Student).where(Student.id == student_id, Student.school_id == self.school.id)
        ).scalar_one_or_none()
        if student is None:
            raise NotFound("Student not found", student_id=student_id)
        return student

    def get_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice:
        query = select(Invoice).where(Invoice.id == invoice_id, Invoice.school_id == self.school.id)
        if for_update:
            query = query.with_for_update()
        invoice = self.db.execute(query).scalar_one_or_none()
        if invoice is None:
            raise NotFound("Invoice not found", invoice_id=invoice_id)
        return invoice

    def list_invoices(
        self,
        student_id: Optional[UUID] = None,
        status: Optional[str] = None,
        today: Optional[date] = None,
    ) -> List[Invoice]:
        """List invoices, newest first; status 'overdue' filters on the derived status"""
        query = select(Invoice).where(Invoice.school_id == self.school.id)
        if student_id:
            query = query.where(Invoice.student_id == student_id)
        if status and status != "overdue":
            query = query.where(Invoice.status == status)
        invoices = list(
            self.db.execute(query.order_by(Invoice.issue_date.desc(), Invoice.invoice_number.desc())).scalars()
        )
        if status == "overdue":
            invoices = [inv for inv in invoices if inv.effective_status(today) == "overdue"]
        return invoices

    def _fee_types(self, fee_type_ids: Sequence[UUID]) -> Dict[UUID, FeeType]:
        found = {
            ft.id: ft for ft in self.db.execute(
                select(FeeType).where(FeeType.id.in_(set(fee_type_ids)), FeeType.school_id == self.school.id)
            ).scalars()
        }
        for fee_type_id in fee_type_ids:
            if fee_type_id not in found:
                raise NotFound("Fee type not found", fee_type_id=fee_type_id)
        return found

    def _build_items(self, student: Student, items: Sequence[InvoiceItemIn]) -> List[InvoiceItem]:
        fee_types = self._fee_types([item.fee_type_id for item in items])
        built = []
        for position, item in enumerate(items):
            fee_type = fee_types[item.fee_type_id]
            if not fee_type.is_active:
                raise InvalidInvoiceItem(
                    f"Fee type '{fee_type.name}' is inactive and cannot be billed",
                    fee_type_id=fee_type.id,
                )
            if item.quantity < 1:
                raise InvalidInvoiceItem(
                    f"Quantity for '{fee_type.name}' must be at least 1",
                    quantity=item.quantity,
                )
            if item.unit_price is not None:
                unit_price = to_money(item.unit_price)
            else:
                unit_price = self.resolver.resolve_for_student(fee_type, student)
            if unit_price < 0:
                raise InvalidInvoiceItem(
                    f"Unit price for '{fee_type.name}' cannot be negative",
                    unit_price=unit_price,
                )
            line = InvoiceItem(
                school_id=self.school.id,
                fee_type_id=fee_type.id,
                description=item.description or fee_type.name,
                quantity=item.quantity,
                unit_price=unit_price,
                position=position,
            )
            line.recalculate()
            built.append(line)
        return built

    def _compose(
        self,
        student: Student,
        items: Sequence[InvoiceItemIn],
        due_date: Optional[date],
        notes: Optional[str],
        today: date,
    ) -> Invoice:
        """Build and flush one invoice; the caller commits"""
        lines = self._build_items(student, items)
        total = to_money(sum((line.total_price for line in lines), ZERO))
        if not lines or total <= 0:
            raise EmptyInvoice(
                f"Invoice for student {student.student_number} has no billable amount",
                student_id=student.id,
                items=len(lines),
                total=total,
            )

        invoice_number = next_number(self.db, self.school, INVOICE_PREFIX, today)
        invoice = Invoice(
            school_id=self.school.id,
            invoice_number=invoice_number,
            student_id=student.id,
            issue_date=today,
            due_date=due_date or today + timedelta(days=settings.BILLING_DEFAULT_DUE_DAYS),
            notes=notes,
            total_amount=total,
            paid_amount=ZERO,
            status="pending",
            created_by=self.created_by,
            items=lines,
        )
        self.db.add(invoice)
        try:
            self.db.flush()
        except IntegrityError:
            raise DuplicateInvoiceNumber(
                f"Invoice number {invoice_number} already exists",
                invoice_number=invoice_number,
            )
        return invoice

    def compose_invoice(
        self,
        student_id: UUID,
        items: Sequence[InvoiceItemIn],
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Invoice:
        """
        Create a pending invoice for one student.

        Unit prices left empty are resolved from the student's class and
        section. No ledger entries are posted at issue time: revenue is
        recognised when cash arrives.

        Raises:
            EmptyInvoice: no items or a zero total
            InvalidInvoiceItem: an item bills an inactive fee type
            DuplicateInvoiceNumber: the allocated number already exists
        """
        today = today or date.today()
        student = self.get_student(student_id)
        if not items:
            logger.warning(f"Invoice rejected: no items for student {student.student_number}")
            raise EmptyInvoice(
                f"Invoice for student {student.student_number} has no items",
                student_id=student.id,
                items=0,
            )

        with write_lock(self.db, self.school.id):
            try:
                invoice = self._compose(student, items, due_date, notes, today)
                self.db.commit()
            except BursarError as e:
                self.db.rollback()
                logger.warning(f"Invoice rejected: {e.message}")
                raise
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.invoice_number} issued to {student.student_number}: {invoice.total_amount}")
        return invoice

    def _students_for(self, target_type: str, target_id: Optional[UUID]) -> List[Student]:
        query = select(Student).where(Student.school_id == self.school.id, Student.status == "ACTIVE")
        if target_type == "class":
            if target_id is None:
                raise InvalidInvoiceItem("Bulk billing a class requires target_id", target_type=target_type)
            query = query.where(Student.class_id == target_id)
        elif target_type == "section":
            if target_id is None:
                raise InvalidInvoiceItem("Bulk billing a section requires target_id", target_type=target_type)
            query = query.join(SchoolClass, Student.class_id == SchoolClass.id).where(
                SchoolClass.section_id == target_id
            )
        return list(self.db.execute(query.order_by(Student.student_number)).scalars())

    def bulk_compose(
        self,
        target_type: str,
        target_id: Optional[UUID],
        fee_type_ids: Sequence[UUID],
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
        today: Optional[date] = None,
    ) -> BulkBillingResult:
        """
        Invoice every active student of the school, a section or a class.

        Each student is billed in its own savepoint so one failure (for
        example an ambiguous billing rule) does not stop the batch; failures
        are collected in the result.
        """
        today = today or date.today()
        self._fee_types(fee_type_ids)
        students = self._students_for(target_type, target_id)
        items = [InvoiceItemIn(fee_type_id=fee_type_id) for fee_type_id in fee_type_ids]
        result = BulkBillingResult()

        with write_lock(self.db, self.school.id):
            try:
                for student in students:
                    savepoint = self.db.begin_nested()
                    try:
                        invoice = self._compose(student, items, due_date, notes, today)
                        savepoint.commit()
                    except BursarError as e:
                        savepoint.rollback()
                        result.failed += 1
                        result.errors.append(f"{student.student_number}: {e.message}")
                        logger.warning(f"Bulk billing skipped {student.student_number}: {e.message}")
                        continue
                    result.created += 1
                    result.total_amount += invoice.total_amount
                    result.invoices.append(invoice)
                self.db.commit()
            except BursarError as e:
                self.db.rollback()
                logger.warning(f"Bulk billing rejected: {e.message}")
                raise
            except Exception:
                self.db.rollback()
                raise

        logger.info(
            f"Bulk billing {target_type} {target_id or ''}: "
            f"{result.created} created, {result.failed} failed, total {result.total_amount}"
        )
        return result

    def replace_items(self, invoice_id: UUID, items: Sequence[InvoiceItemIn]) -> Invoice:
        """
        Replace the items of an unpaid invoice and recompute its total.

        Raises:
            InvalidInvoiceState: the invoice is paid, cancelled or partly paid
            EmptyInvoice: the new items bill nothing
        """
        with write_lock(self.db, self.school.id):
            try:
                invoice = self.get_invoice(invoice_id, for_update=True)
                if invoice.status not in MUTABLE_STATUSES or invoice.paid_amount > 0:
                    raise InvalidInvoiceState(
                        f"Items of invoice {invoice.invoice_number} can only change while nothing is paid",
                        invoice_number=invoice.invoice_number,
                        status=invoice.status,
                        paid_amount=invoice.paid_amount,
                    )
                student = self.get_student(invoice.student_id)
                lines = self._build_items(student, items) if items else []
                total = to_money(sum((line.total_price for line in lines), ZERO))
                if not lines or total <= 0:
                    raise EmptyInvoice(
                        f"Invoice {invoice.invoice_number} would have no billable amount",
                        invoice_number=invoice.invoice_number,
                        items=len(lines),
                        total=total,
                    )

                invoice.items.clear()
                self.db.flush()
                invoice.items.extend(lines)
                invoice.recalculate_total()
                self.db.commit()
            except BursarError as e:
                self.db.rollback()
                logger.warning(f"Item replacement rejected: {e.message}")
                raise
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.invoice_number} items replaced: new total {invoice.total_amount}")
        return invoice

    def cancel_invoice(self, invoice_id: UUID) -> Invoice:
        """Cancel an invoice; cancelled is terminal and a paid invoice cannot be cancelled"""
        with write_lock(self.db, self.school.id):
            try:
                invoice = self.get_invoice(invoice_id, for_update=True)
                if invoice.status in ("paid", "cancelled"):
                    raise InvalidInvoiceState(
                        f"Invoice {invoice.invoice_number} is {invoice.status} and cannot be cancelled",
                        invoice_number=invoice.invoice_number,
                        status=invoice.status,
                    )
                invoice.status = "cancelled"
                invoice.cancelled_at = datetime.utcnow()
                self.db.commit()
            except BursarError as e:
                self.db.rollback()
                logger.warning(f"Cancellation rejected: {e.message}")
                raise
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.invoice_number} cancelled (paid {invoice.paid_amount} of {invoice.total_amount})")
        return invoice
