#!/usr/bin/env python3
# scripts/check_ledger.py - Check that every school's ledger balances
import sys
import os
import logging
from datetime import date

from sqlalchemy import select

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bursar.core.db import db_manager
from bursar.core.exceptions import InvariantViolation
from bursar.core.logging import setup_logging
from bursar.models.school import School
from bursar.services.reporting_service import ReportingService

logger = logging.getLogger("bursar.scripts.check_ledger")


def check_ledgers(as_of: date = None) -> bool:
    """Run the trial balance for every school; False if any ledger is corrupt"""
    ok = True
    with db_manager.transaction() as session:
        schools = session.execute(select(School).order_by(School.code)).scalars().all()
        if not schools:
            print("No schools found")
            return True

        print("Ledger Check")
        print("=" * 40)
        for school in schools:
            try:
                report = ReportingService(session, school).trial_balance(end=as_of)
            except InvariantViolation as e:
                # Already alert-logged by the reporting service
                print(f"FAIL {school.code}: {e.message}")
                ok = False
                continue
            print(f"OK   {school.code}: debits {report.total_debit} = credits {report.total_credit}")
    return ok


if __name__ == "__main__":
    setup_logging()
    if check_ledgers():
        sys.exit(0)
    else:
        sys.exit(1)
