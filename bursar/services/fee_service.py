# bursar/services/fee_service.py - Fee types and billing rules
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bursar.core.exceptions import DuplicateBillingRule, FeeTypeInUse, NotFound
from bursar.core.money import to_money
from bursar.models.class_model import SchoolClass, Section
from bursar.models.fee import BillingRule, FeeType
from bursar.models.payment import InvoiceItem
from bursar.models.school import School
from bursar.schemas.fee_schema import BillingRuleCreate, FeeTypeCreate, FeeTypeUpdate

logger = logging.getLogger(__name__)

# Changing these on an invoiced fee type would rewrite history
LOCKED_FIELDS = ("name", "amount", "billing_frequency")


class FeeService:
    """Service class for the fee catalogue of one school"""

    def __init__(self, db: Session, school: School):
        self.db = db
        self.school = school

    def get_fee_type(self, fee_type_id: UUID) -> FeeType:
        fee_type = self.db.execute(
            select(FeeType).where(FeeType.id == fee_type_id, FeeType.school_id == self.school.id)
        ).scalar_one_or_none()
        if fee_type is None:
            raise NotFound("Fee type not found", fee_type_id=fee_type_id)
        return fee_type

    def list_fee_types(self, include_inactive: bool = False) -> List[FeeType]:
        query = select(FeeType).where(FeeType.school_id == self.school.id)
        if not include_inactive:
            query = query.where(FeeType.is_active.is_(True))
        return list(self.db.execute(query.order_by(FeeType.name)).scalars())

    def is_invoiced(self, fee_type_id: UUID) -> bool:
        count = self.db.execute(
            select(func.count(InvoiceItem.id)).where(InvoiceItem.fee_type_id == fee_type_id)
        ).scalar_one()
        return count > 0

    def create_fee_type(self, data: FeeTypeCreate) -> FeeType:
        fee_type = FeeType(
            school_id=self.school.id,
            name=data.name,
            description=data.description,
            amount=to_money(data.amount),
            is_mandatory=data.is_mandatory,
            billing_frequency=data.billing_frequency,
        )
        self.db.add(fee_type)
        self.db.commit()
        self.db.refresh(fee_type)
        logger.info(f"Fee type created: {fee_type.name} ({fee_type.amount})")
        return fee_type

    def update_fee_type(self, fee_type_id: UUID, data: FeeTypeUpdate) -> FeeType:
        """
        Update a fee type in place.

        Raises:
            FeeTypeInUse: if a locked field changes on a fee type that already
                appears on an invoice (use amend_fee_type instead)
        """
        fee_type = self.get_fee_type(fee_type_id)
        changes = data.model_dump(exclude_unset=True)
        if "amount" in changes and changes["amount"] is not None:
            changes["amount"] = to_money(changes["amount"])

        locked = [
            field for field in LOCKED_FIELDS
            if field in changes and changes[field] != getattr(fee_type, field)
        ]
        if locked and self.is_invoiced(fee_type.id):
            logger.warning(f"Fee type update rejected: {fee_type.name} is invoiced, locked fields {locked}")
            raise FeeTypeInUse(
                f"Fee type '{fee_type.name}' is referenced by invoices; "
                f"{', '.join(locked)} cannot change. Amend it to create a new fee type.",
                fee_type_id=fee_type.id,
                fields=",".join(locked),
            )

        for field, value in changes.items():
            setattr(fee_type, field, value)
        self.db.commit()
        self.db.refresh(fee_type)
        return fee_type

    def amend_fee_type(self, fee_type_id: UUID, data: FeeTypeUpdate) -> FeeType:
        """Create a successor fee type and retire the original (its rules move over)"""
        original = self.get_fee_type(fee_type_id)
        changes = data.model_dump(exclude_unset=True)

        successor = FeeType(
            school_id=self.school.id,
            name=changes.get("name") or original.name,
            description=changes.get("description", original.description),
            amount=to_money(changes["amount"]) if changes.get("amount") is not None else original.amount,
            is_mandatory=changes.get("is_mandatory", original.is_mandatory),
            billing_frequency=changes.get("billing_frequency") or original.billing_frequency,
        )
        self.db.add(successor)
        self.db.flush()

        for rule in list(original.rules):
            self.db.add(BillingRule(
                school_id=self.school.id,
                fee_type_id=successor.id,
                target_type=rule.target_type,
                target_id=rule.target_id,
                amount_override=rule.amount_override,
            ))

        original.is_active = False
        original.superseded_by_id = successor.id
        self.db.commit()
        self.db.refresh(successor)
        logger.info(f"Fee type amended: {original.name} -> {successor.name} ({successor.amount})")
        return successor

    def _check_target(self, target_type: str, target_id: Optional[UUID]):
        if target_type == "section":
            model = Section
        elif target_type == "class":
            model = SchoolClass
        else:
            return
        exists = self.db.execute(
            select(model.id).where(model.id == target_id, model.school_id == self.school.id)
        ).scalar_one_or_none()
        if exists is None:
            raise NotFound(f"{target_type.capitalize()} not found", target_id=target_id)

    def create_billing_rule(self, data: BillingRuleCreate) -> BillingRule:
        """
        Add a rule for a fee type; at most one rule per (fee type, target).

        Raises:
            DuplicateBillingRule: if the fee type already has a rule for that target
        """
        fee_type = self.get_fee_type(data.fee_type_id)
        self._check_target(data.target_type, data.target_id)

        query = select(BillingRule.id).where(
            BillingRule.fee_type_id == fee_type.id,
            BillingRule.target_type == data.target_type,
        )
        if data.target_id is None:
            query = query.where(BillingRule.target_id.is_(None))
        else:
            query = query.where(BillingRule.target_id == data.target_id)
        if self.db.execute(query).first() is not None:
            logger.warning(f"Billing rule rejected: duplicate {data.target_type} rule for {fee_type.name}")
            raise DuplicateBillingRule(
                f"Fee type '{fee_type.name}' already has a {data.target_type} rule for this target",
                fee_type_id=fee_type.id,
                target_type=data.target_type,
                target_id=data.target_id,
            )

        rule = BillingRule(
            school_id=self.school.id,
            fee_type_id=fee_type.id,
            target_type=data.target_type,
            target_id=data.target_id,
            amount_override=to_money(data.amount_override) if data.amount_override is not None else None,
        )
        try:
            self.db.add(rule)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Billing rule rejected: duplicate {data.target_type} rule for {fee_type.name}")
            raise DuplicateBillingRule(
                f"Fee type '{fee_type.name}' already has a {data.target_type} rule for this target",
                fee_type_id=fee_type.id,
                target_type=data.target_type,
                target_id=data.target_id,
            )
        self.db.refresh(rule)
        logger.info(f"Billing rule created: {fee_type.name} / {rule.target_type} {rule.target_id or ''}")
        return rule

    def list_billing_rules(self, fee_type_id: UUID) -> List[BillingRule]:
        fee_type = self.get_fee_type(fee_type_id)
        return list(fee_type.rules)

    def delete_billing_rule(self, rule_id: UUID) -> None:
        rule = self.db.execute(
            select(BillingRule).where(BillingRule.id == rule_id, BillingRule.school_id == self.school.id)
        ).scalar_one_or_none()
        if rule is None:
            raise NotFound("Billing rule not found", rule_id=rule_id)
        self.db.delete(rule)
        self.db.commit()
