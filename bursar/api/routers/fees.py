# bursar/api/routers/fees.py
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from bursar.core.db import get_db
from bursar.api.deps.tenancy import require_school
from bursar.services.fee_resolver import FeeRuleResolver
from bursar.services.fee_service import FeeService
from bursar.schemas.fee_schema import (
    FeeTypeCreate, FeeTypeUpdate, FeeTypeOut, FeeTypeDetail,
    BillingRuleCreate, BillingRuleOut, ResolvedAmountOut,
)

router = APIRouter()


@router.post("/types/", response_model=FeeTypeOut, status_code=status.HTTP_201_CREATED)
def create_fee_type(
    data: FeeTypeCreate,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    """Create a fee type with its base amount"""
    return FeeService(db, ctx["school"]).create_fee_type(data)


@router.get("/types/", response_model=List[FeeTypeOut])
def list_fee_types(
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db),
    include_inactive: bool = Query(False, description="Include retired fee types")
):
    return FeeService(db, ctx["school"]).list_fee_types(include_inactive)


@router.get("/types/{fee_type_id}", response_model=FeeTypeDetail)
def get_fee_type(
    fee_type_id: UUID,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    """Fee type with its billing rules"""
    return FeeService(db, ctx["school"]).get_fee_type(fee_type_id)


@router.patch("/types/{fee_type_id}", response_model=FeeTypeOut)
def update_fee_type(
    fee_type_id: UUID,
    data: FeeTypeUpdate,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    """Update a fee type; name, amount and frequency are locked once invoiced"""
    return FeeService(db, ctx["school"]).update_fee_type(fee_type_id, data)


@router.post("/types/{fee_type_id}/amend", response_model=FeeTypeOut, status_code=status.HTTP_201_CREATED)
def amend_fee_type(
    fee_type_id: UUID,
    data: FeeTypeUpdate,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    """Retire a fee type and create its successor with the changes applied"""
    return FeeService(db, ctx["school"]).amend_fee_type(fee_type_id, data)


@router.get("/types/{fee_type_id}/resolve", response_model=ResolvedAmountOut)
def resolve_amount(
    fee_type_id: UUID,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db),
    class_id: Optional[UUID] = None,
    section_id: Optional[UUID] = None
):
    """Amount a student of the given class/section would be billed"""
    fee_type = FeeService(db, ctx["school"]).get_fee_type(fee_type_id)
    amount = FeeRuleResolver(db).resolve_amount(fee_type, class_id, section_id)
    return ResolvedAmountOut(
        fee_type_id=fee_type.id,
        class_id=class_id,
        section_id=section_id,
        amount=amount,
    )


@router.post("/rules/", response_model=BillingRuleOut, status_code=status.HTTP_201_CREATED)
def create_billing_rule(
    data: BillingRuleCreate,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    return FeeService(db, ctx["school"]).create_billing_rule(data)


@router.get("/types/{fee_type_id}/rules", response_model=List[BillingRuleOut])
def list_billing_rules(
    fee_type_id: UUID,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    return FeeService(db, ctx["school"]).list_billing_rules(fee_type_id)


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_billing_rule(
    rule_id: UUID,
    ctx: dict = Depends(require_school),
    db: Session = Depends(get_db)
):
    FeeService(db, ctx["school"]).delete_billing_rule(rule_id)
