# bursar/core/accounts.py - Fixed chart of accounts used by every posting
"""
The chart is closed on purpose: a posting may only reference an account the
reporting layer knows how to classify, so adding an account or an expense
category is a code change.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict

from bursar.core.exceptions import UnknownAccount


class AccountKind(str, Enum):
    ASSET = "asset"
    REVENUE = "revenue"
    CHARGE = "charge"


class NormalSide(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


@dataclass(frozen=True)
class Account:
    code: str
    name: str
    kind: AccountKind
    normal_side: NormalSide


CASH = "5111"
ACCOUNTS_RECEIVABLE = "4111"
TUITION_REVENUE = "7011"
SALARIES = "6411"
UTILITIES = "6061"
SUPPLIES = "6011"
MAINTENANCE = "6151"
OTHER_CHARGES = "6281"

CHART_OF_ACCOUNTS: Dict[str, Account] = {
    account.code: account
    for account in (
        Account(CASH, "Cash", AccountKind.ASSET, NormalSide.DEBIT),
        Account(ACCOUNTS_RECEIVABLE, "Accounts Receivable", AccountKind.ASSET, NormalSide.DEBIT),
        Account(TUITION_REVENUE, "Tuition Revenue", AccountKind.REVENUE, NormalSide.CREDIT),
        Account(SALARIES, "Salaries and Staff Costs", AccountKind.CHARGE, NormalSide.DEBIT),
        Account(UTILITIES, "Utilities", AccountKind.CHARGE, NormalSide.DEBIT),
        Account(SUPPLIES, "Supplies and Materials", AccountKind.CHARGE, NormalSide.DEBIT),
        Account(MAINTENANCE, "Maintenance and Repairs", AccountKind.CHARGE, NormalSide.DEBIT),
        Account(OTHER_CHARGES, "Other Charges", AccountKind.CHARGE, NormalSide.DEBIT),
    )
}

# Expense category -> charge account
EXPENSE_CHARGE_ACCOUNTS: Dict[str, str] = {
    "salaries": SALARIES,
    "utilities": UTILITIES,
    "supplies": SUPPLIES,
    "maintenance": MAINTENANCE,
    "other": OTHER_CHARGES,
}


def get_account(code: str) -> Account:
    try:
        return CHART_OF_ACCOUNTS[code]
    except KeyError:
        raise UnknownAccount(code) from None


def name_of(code: str) -> str:
    """Human name of an account code; raises UnknownAccount for codes outside the chart"""
    return get_account(code).name


def charge_account_for(category: str) -> str:
    try:
        return EXPENSE_CHARGE_ACCOUNTS[category]
    except KeyError:
        raise UnknownAccount(f"expense:{category}") from None
