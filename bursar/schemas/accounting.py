# bursar/schemas/accounting.py - Ledger lines, expenses and financial statements
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

ExpenseCategory = Literal["salaries", "utilities", "supplies", "maintenance", "other"]


class AccountingEntryOut(BaseModel):
    id: UUID
    entry_number: str
    entry_date: date
    description: str
    reference_type: Literal["payment", "invoice", "expense"]
    reference_id: UUID
    account_code: str
    debit_amount: Decimal
    credit_amount: Decimal
    currency: str
    is_reversal: bool
    reverses_entry_id: Optional[UUID] = None

    class Config:
        from_attributes = True


# Expense Schemas
class ExpenseCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    expense_date: Optional[date] = None
    category: ExpenseCategory
    supplier: Optional[str] = Field(None, max_length=128)
    receipt_url: Optional[str] = Field(None, max_length=512)

    @field_validator('description')
    @classmethod
    def validate_description(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Expense description cannot be empty or whitespace')
        return v.strip()


class ExpenseOut(BaseModel):
    id: UUID
    expense_number: str
    description: str
    amount: Decimal
    expense_date: date
    category: ExpenseCategory
    supplier: Optional[str]
    receipt_url: Optional[str]
    reversed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ExpenseRecordedOut(BaseModel):
    expense: ExpenseOut
    entries: List[AccountingEntryOut]


class ReversalOut(BaseModel):
    reference_type: str
    reference_id: UUID
    entries: List[AccountingEntryOut]


# Report Schemas
class TrialBalanceLineOut(BaseModel):
    account_code: str
    account_name: str
    debit: Decimal
    credit: Decimal
    balance: Decimal

    class Config:
        from_attributes = True


class TrialBalanceOut(BaseModel):
    start: Optional[date]
    end: Optional[date]
    lines: List[TrialBalanceLineOut]
    total_debit: Decimal
    total_credit: Decimal

    class Config:
        from_attributes = True


class StatementLineOut(BaseModel):
    account_code: str
    account_name: str
    amount: Decimal

    class Config:
        from_attributes = True


class IncomeStatementOut(BaseModel):
    start: Optional[date]
    end: Optional[date]
    revenue_lines: List[StatementLineOut]
    charge_lines: List[StatementLineOut]
    revenue: Decimal
    charges: Decimal
    net_result: Decimal

    class Config:
        from_attributes = True


class BalanceSheetOut(BaseModel):
    start: Optional[date]
    end: Optional[date]
    cash: Decimal
    accounts_receivable: Decimal
    total_assets: Decimal
    opening_capital: Decimal
    net_result: Decimal
    total_liabilities_and_equity: Decimal

    class Config:
        from_attributes = True


class StudentPaymentLineOut(BaseModel):
    student_id: UUID
    student_number: str
    student_name: str
    total_due: Decimal
    total_paid: Decimal
    balance: Decimal
    invoices_count: int
    payments_count: int
    last_payment_date: Optional[date]
    status: Literal["paid", "partial", "unpaid"]

    class Config:
        from_attributes = True


class ClassPaymentReportOut(BaseModel):
    class_id: UUID
    class_name: str
    start: Optional[date]
    end: Optional[date]
    students: List[StudentPaymentLineOut]
    students_count: int
    paid_count: int
    partial_count: int
    unpaid_count: int
    total_due: Decimal
    total_paid: Decimal
    total_balance: Decimal

    class Config:
        from_attributes = True
