import uuid
from decimal import Decimal
from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from bursar.core.exceptions import AmbiguousTarget, DuplicateBillingRule, FeeTypeInUse, NotFound
from bursar.schemas.fee_schema import BillingRuleCreate, FeeTypeUpdate
from bursar.schemas.invoice import InvoiceItemIn
from bursar.services.fee_resolver import FeeRuleResolver, resolve_from_rules, select_rule
from bursar.services.fee_service import FeeService
from bursar.services.invoice_service import InvoiceService

CLASS_ID = uuid.uuid4()
SECTION_ID = uuid.uuid4()


def rule(target_type, target_id=None, amount=None):
    return SimpleNamespace(
        target_type=target_type,
        target_id=target_id,
        amount_override=Decimal(amount) if amount is not None else None,
    )


FEE = SimpleNamespace(name="Tuition", amount=Decimal("50000.00"))


class TestSelectRule:
    def test_class_beats_section_beats_school(self):
        rules = [
            rule("school", amount="40000"),
            rule("section", SECTION_ID, "45000"),
            rule("class", CLASS_ID, "48000"),
        ]
        assert resolve_from_rules(FEE, rules, CLASS_ID, SECTION_ID) == Decimal("48000.00")
        assert resolve_from_rules(FEE, rules, uuid.uuid4(), SECTION_ID) == Decimal("45000.00")
        assert resolve_from_rules(FEE, rules, uuid.uuid4(), uuid.uuid4()) == Decimal("40000.00")

    def test_first_match_only_is_applied(self):
        rules = [rule("school", amount="1000"), rule("class", CLASS_ID, "2000")]
        assert resolve_from_rules(FEE, rules, CLASS_ID, SECTION_ID) == Decimal("2000.00")

    def test_falls_back_to_base_amount(self):
        assert select_rule([], CLASS_ID, SECTION_ID) is None
        assert resolve_from_rules(FEE, [], CLASS_ID, SECTION_ID) == Decimal("50000.00")

    def test_rule_without_override_uses_base_amount(self):
        rules = [rule("class", CLASS_ID)]
        assert resolve_from_rules(FEE, rules, CLASS_ID, SECTION_ID) == Decimal("50000.00")

    def test_scope_with_rules_but_no_id_is_ambiguous(self):
        rules = [rule("section", SECTION_ID, "45000")]
        with pytest.raises(AmbiguousTarget):
            select_rule(rules, CLASS_ID, None)

    def test_stored_rule_without_target_is_ambiguous(self):
        with pytest.raises(AmbiguousTarget):
            select_rule([rule("class", None, "1")], CLASS_ID, SECTION_ID)

    def test_duplicate_rules_are_ambiguous(self):
        rules = [rule("class", CLASS_ID, "1"), rule("class", CLASS_ID, "2")]
        with pytest.raises(AmbiguousTarget):
            select_rule(rules, CLASS_ID, SECTION_ID)
        with pytest.raises(AmbiguousTarget):
            select_rule([rule("school", amount="1"), rule("school", amount="2")], None, None)


def test_resolver_uses_student_class_and_section(db, seeded, make_fee_type):
    tuition = make_fee_type("Tuition", "50000.00")
    fees = FeeService(db, seeded.school)
    fees.create_billing_rule(BillingRuleCreate(
        fee_type_id=tuition.id, target_type="section", target_id=seeded.secondary.id, amount_override="65000.00",
    ))
    fees.create_billing_rule(BillingRuleCreate(
        fee_type_id=tuition.id, target_type="class", target_id=seeded.p1.id, amount_override="45000.00",
    ))

    resolver = FeeRuleResolver(db)
    assert resolver.resolve_for_student(tuition, seeded.alice) == Decimal("45000.00")
    assert resolver.resolve_for_student(tuition, seeded.carol) == Decimal("65000.00")
    assert resolver.resolve_amount(tuition, seeded.p2.id, seeded.primary.id) == Decimal("50000.00")


def test_duplicate_billing_rule_is_rejected(db, seeded, make_fee_type):
    tuition = make_fee_type()
    fees = FeeService(db, seeded.school)
    data = BillingRuleCreate(fee_type_id=tuition.id, target_type="school", amount_override="40000.00")
    fees.create_billing_rule(data)
    with pytest.raises(DuplicateBillingRule):
        fees.create_billing_rule(data)


def test_rule_target_must_belong_to_school(db, seeded, make_fee_type):
    tuition = make_fee_type()
    with pytest.raises(NotFound):
        FeeService(db, seeded.school).create_billing_rule(BillingRuleCreate(
            fee_type_id=tuition.id, target_type="class", target_id=uuid.uuid4(),
        ))


def test_invoiced_fee_type_cannot_change_price(db, seeded, make_fee_type):
    tuition = make_fee_type()
    fees = FeeService(db, seeded.school)

    # Not invoiced yet: free to edit
    fees.update_fee_type(tuition.id, FeeTypeUpdate(amount="52000.00"))

    InvoiceService(db, seeded.school).compose_invoice(
        seeded.alice.id, [InvoiceItemIn(fee_type_id=tuition.id)]
    )
    with pytest.raises(FeeTypeInUse):
        fees.update_fee_type(tuition.id, FeeTypeUpdate(amount="60000.00"))

    # Description is not locked
    updated = fees.update_fee_type(tuition.id, FeeTypeUpdate(description="Annual tuition"))
    assert updated.description == "Annual tuition"
    assert updated.amount == Decimal("52000.00")


def test_amend_creates_successor_with_rules(db, seeded, make_fee_type):
    tuition = make_fee_type()
    fees = FeeService(db, seeded.school)
    fees.create_billing_rule(BillingRuleCreate(
        fee_type_id=tuition.id, target_type="class", target_id=seeded.p1.id, amount_override="45000.00",
    ))

    successor = fees.amend_fee_type(tuition.id, FeeTypeUpdate(amount="55000.00"))

    db.refresh(tuition)
    assert tuition.is_active is False
    assert tuition.superseded_by_id == successor.id
    assert successor.amount == Decimal("55000.00")
    assert [r.target_id for r in fees.list_billing_rules(successor.id)] == [seeded.p1.id]
    assert [ft.id for ft in fees.list_fee_types()] == [successor.id]


@pytest.mark.parametrize("field", ["name", "amount", "is_mandatory", "billing_frequency"])
def test_required_fee_type_fields_cannot_be_nulled(field):
    with pytest.raises(ValidationError):
        FeeTypeUpdate(**{field: None})


def test_description_can_be_cleared(db, seeded, make_fee_type):
    tuition = make_fee_type()
    fees = FeeService(db, seeded.school)
    fees.update_fee_type(tuition.id, FeeTypeUpdate(description="Annual tuition"))

    updated = fees.update_fee_type(tuition.id, FeeTypeUpdate(description=None))

    assert updated.description is None
    assert updated.is_mandatory is True
