# bursar/services/numbering.py - Race-free per-school document numbers
import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from bursar.core.config import settings
from bursar.models.accounting import DocumentSequence
from bursar.models.school import School

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "FAC"
PAYMENT_PREFIX = "PAY"
EXPENSE_PREFIX = "DEP"
ENTRY_PREFIX = "ECR"
CASH_SESSION_PREFIX = "CASH"
MOVEMENT_PREFIX = "MVT"


def format_number(prefix: str, school_code: str, when: date, value: int) -> str:
    """FAC-PAL-202401-0001"""
    width = settings.DOCUMENT_SEQUENCE_WIDTH
    return f"{prefix}-{school_code}-{when:%Y%m}-{value:0{width}d}"


def next_value(db: Session, school_id, prefix: str) -> int:
    """
    Increment and return the counter for (school, prefix).

    Must run inside the school's lock and the caller's transaction; the row is
    locked FOR UPDATE so concurrent writers on other processes queue up on
    PostgreSQL. The counter never resets, so numbers stay unique even when
    the month part changes.
    """
    sequence = db.execute(
        select(DocumentSequence)
        .where(DocumentSequence.school_id == school_id, DocumentSequence.prefix == prefix)
        .with_for_update()
    ).scalar_one_or_none()

    if sequence is None:
        sequence = DocumentSequence(school_id=school_id, prefix=prefix, last_value=0)
        db.add(sequence)

    sequence.last_value += 1
    db.flush()
    return sequence.last_value


def next_number(db: Session, school: School, prefix: str, when: date) -> str:
    value = next_value(db, school.id, prefix)
    number = format_number(prefix, school.code, when, value)
    logger.debug(f"Allocated {number}")
    return number
