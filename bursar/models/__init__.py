# bursar/models/__init__.py - Import all models so SQLAlchemy can discover them

from bursar.models.base import Base

from bursar.models.school import School
from bursar.models.class_model import Section, SchoolClass
from bursar.models.student import Student
from bursar.models.fee import FeeType, BillingRule
from bursar.models.payment import Invoice, InvoiceItem, Payment
from bursar.models.expense import Expense
from bursar.models.cash import CashSession, CashMovement
from bursar.models.accounting import AccountingEntry, DocumentSequence

__all__ = [
    "Base",
    "School",
    "Section",
    "SchoolClass",
    "Student",
    "FeeType",
    "BillingRule",
    "Invoice",
    "InvoiceItem",
    "Payment",
    "Expense",
    "CashSession",
    "CashMovement",
    "AccountingEntry",
    "DocumentSequence",
]
