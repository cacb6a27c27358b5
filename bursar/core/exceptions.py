# bursar/core/exceptions.py - Typed failures raised by the billing and ledger engine
from decimal import Decimal
from typing import Any, Dict, Optional


class BursarError(Exception):
    """
    Base class for every rejected billing or ledger operation.

    ``code`` is a stable machine name, ``message`` says which rule would have
    been broken and ``context`` carries the amounts/ids involved.
    """

    code = "bursar_error"
    status_code = 422

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "detail": self.message,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


class NotFound(BursarError):
    code = "not_found"
    status_code = 404


class UnknownAccount(BursarError):
    code = "unknown_account"

    def __init__(self, account_code: str):
        super().__init__(f"Account {account_code!r} is not in the chart of accounts", account_code=account_code)


class AmbiguousTarget(BursarError):
    code = "ambiguous_target"


class DuplicateBillingRule(BursarError):
    code = "duplicate_billing_rule"
    status_code = 409


class FeeTypeInUse(BursarError):
    code = "fee_type_in_use"
    status_code = 409


class EmptyInvoice(BursarError):
    code = "empty_invoice"


class DuplicateInvoiceNumber(BursarError):
    code = "duplicate_invoice_number"
    status_code = 409


class InvalidInvoiceState(BursarError):
    code = "invalid_invoice_state"
    status_code = 409


class OverpaymentRejected(BursarError):
    code = "overpayment_rejected"

    def __init__(self, amount: Decimal, remaining: Decimal, invoice_number: str):
        excess = amount - remaining
        super().__init__(
            f"Payment of {amount} exceeds the remaining balance of invoice {invoice_number} "
            f"({remaining}) by {excess}",
            amount=amount,
            remaining=remaining,
            excess=excess,
            invoice_number=invoice_number,
        )


class UnbalancedPosting(BursarError):
    code = "unbalanced_posting"


class AlreadyReversed(BursarError):
    code = "already_reversed"
    status_code = 409


class InvariantViolation(BursarError):
    """Ledger data is inconsistent; this is corruption, not a bad request"""

    code = "invariant_violation"
    status_code = 500


class InvalidInvoiceItem(BursarError):
    code = "invalid_invoice_item"


class InvalidAmount(BursarError):
    code = "invalid_amount"


class InvalidSessionState(BursarError):
    code = "invalid_session_state"
    status_code = 409


class SessionAlreadyOpen(BursarError):
    code = "session_already_open"
    status_code = 409
