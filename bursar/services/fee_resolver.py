# bursar/services/fee_resolver.py - Which amount applies to a student for a fee type
"""
Billing rules are evaluated against an explicit priority list: a class rule
beats a section rule, which beats the school-wide rule. Only the first match
is applied; rules are never summed. With no matching rule the fee type's base
amount applies.
"""
import logging
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from bursar.core.exceptions import AmbiguousTarget
from bursar.core.money import to_money
from bursar.models.fee import BillingRule, FeeType
from bursar.models.student import Student

logger = logging.getLogger(__name__)

SPECIFICITY_ORDER: Tuple[str, ...] = ("class", "section", "school")


def _candidates(class_id: Optional[UUID], section_id: Optional[UUID]) -> List[Tuple[str, Optional[UUID]]]:
    return [("class", class_id), ("section", section_id), ("school", None)]


def select_rule(rules: Iterable, class_id: Optional[UUID], section_id: Optional[UUID]):
    """
    Return the rule that applies to a class/section, or None.

    ``rules`` are the rules of a single fee type (anything with ``target_type``,
    ``target_id`` and ``amount_override``). Raises AmbiguousTarget when a scope
    that has stored rules cannot be matched because its id is missing, or when
    a stored rule is malformed or duplicated.
    """
    rules = list(rules)

    for target_type, target_id in _candidates(class_id, section_id):
        scoped = [r for r in rules if r.target_type == target_type]
        if not scoped:
            continue

        if target_type == "school":
            if len(scoped) > 1:
                raise AmbiguousTarget(
                    f"{len(scoped)} school-wide rules exist for one fee type; only one is allowed",
                    target_type=target_type,
                )
            return scoped[0]

        if any(r.target_id is None for r in scoped):
            raise AmbiguousTarget(
                f"A stored {target_type} rule has no {target_type} id",
                target_type=target_type,
            )
        if target_id is None:
            raise AmbiguousTarget(
                f"Fee type has {target_type}-scoped rules but no {target_type} id was supplied",
                target_type=target_type,
            )

        matches = [r for r in scoped if r.target_id == target_id]
        if len(matches) > 1:
            raise AmbiguousTarget(
                f"{len(matches)} rules target the same {target_type}",
                target_type=target_type,
                target_id=target_id,
            )
        if matches:
            return matches[0]

    return None


def resolve_from_rules(
    fee_type: FeeType,
    rules: Sequence,
    class_id: Optional[UUID],
    section_id: Optional[UUID],
) -> Decimal:
    rule = select_rule(rules, class_id, section_id)
    if rule is not None and rule.amount_override is not None:
        return to_money(rule.amount_override)
    return to_money(fee_type.amount)


class FeeRuleResolver:
    """Loads a fee type's rules and applies the specificity order"""

    def __init__(self, db: Session):
        self.db = db

    def rules_for(self, fee_type: FeeType) -> List[BillingRule]:
        return list(
            self.db.execute(
                select(BillingRule).where(BillingRule.fee_type_id == fee_type.id)
            ).scalars()
        )

    def resolve_amount(
        self,
        fee_type: FeeType,
        class_id: Optional[UUID] = None,
        section_id: Optional[UUID] = None,
    ) -> Decimal:
        amount = resolve_from_rules(fee_type, self.rules_for(fee_type), class_id, section_id)
        logger.debug(f"Resolved {fee_type.name} for class={class_id} section={section_id}: {amount}")
        return amount

    def resolve_for_student(self, fee_type: FeeType, student: Student) -> Decimal:
        return self.resolve_amount(fee_type, student.class_id, student.section_id)
