import pytest
from sqlalchemy.exc import IntegrityError

from bursar.models import Student
from bursar.schemas.invoice import InvoiceItemIn
from bursar.services.invoice_service import InvoiceService


def test_student_numbers_are_scoped_to_a_school(db, seeded, make_school):
    other = make_school("OAK")

    assert other.alice.student_number == seeded.alice.student_number
    assert db.query(Student).filter_by(student_number="S001").count() == 2


def test_student_number_is_unique_within_a_school(db, seeded):
    db.add(Student(school_id=seeded.school.id, student_number="S001", first_name="Twin", last_name="Test"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_same_student_number_bills_the_right_school(db, seeded, make_school, make_fee_type):
    other = make_school("OAK")
    tuition = make_fee_type()

    invoice = InvoiceService(db, seeded.school).compose_invoice(
        seeded.alice.id, [InvoiceItemIn(fee_type_id=tuition.id)],
    )

    assert invoice.student_id == seeded.alice.id
    assert invoice.student_id != other.alice.id
    assert invoice.invoice_number.startswith("FAC-PAL-")
