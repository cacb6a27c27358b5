# bursar/schemas/fee_schema.py
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Literal
from datetime import datetime
from decimal import Decimal
from uuid import UUID

BillingFrequency = Literal["one_time", "monthly", "quarterly", "annual"]
TargetType = Literal["school", "section", "class"]


# Fee Type Schemas
class FeeTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    description: Optional[str] = Field(None, max_length=255)
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    is_mandatory: bool = True
    billing_frequency: BillingFrequency = "one_time"

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Ensure fee type name is not just whitespace"""
        if not v.strip():
            raise ValueError('Fee type name cannot be empty or whitespace')
        return v.strip()


class FeeTypeUpdate(BaseModel):
    """Partial update; pricing fields are locked once the fee type is invoiced"""
    name: Optional[str] = Field(None, min_length=1, max_length=128)
    description: Optional[str] = Field(None, max_length=255)
    amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    is_mandatory: Optional[bool] = None
    billing_frequency: Optional[BillingFrequency] = None

    @field_validator('name', 'amount', 'is_mandatory', 'billing_frequency', mode='before')
    @classmethod
    def reject_null(cls, v):
        """These columns cannot be cleared; omit a field to keep its value"""
        if v is None:
            raise ValueError('Field cannot be null; omit it to keep the current value')
        return v

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError('Fee type name cannot be empty or whitespace')
        return v.strip() if v else None


class FeeTypeOut(BaseModel):
    id: UUID
    school_id: UUID
    name: str
    description: Optional[str]
    amount: Decimal
    is_mandatory: bool
    billing_frequency: BillingFrequency
    is_active: bool
    superseded_by_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


# Billing Rule Schemas
class BillingRuleCreate(BaseModel):
    fee_type_id: UUID
    target_type: TargetType
    target_id: Optional[UUID] = None
    amount_override: Optional[Decimal] = Field(None, ge=0, decimal_places=2)

    @model_validator(mode='after')
    def check_target(self):
        """School-wide rules carry no target id; section/class rules must"""
        if self.target_type == "school" and self.target_id is not None:
            raise ValueError('School-wide rules must not carry a target_id')
        if self.target_type != "school" and self.target_id is None:
            raise ValueError(f'A {self.target_type} rule requires a target_id')
        return self


class BillingRuleOut(BaseModel):
    id: UUID
    fee_type_id: UUID
    target_type: TargetType
    target_id: Optional[UUID]
    amount_override: Optional[Decimal]
    created_at: datetime

    class Config:
        from_attributes = True


class FeeTypeDetail(FeeTypeOut):
    """Fee type with its billing rules"""
    rules: List[BillingRuleOut] = []


class ResolvedAmountOut(BaseModel):
    fee_type_id: UUID
    class_id: Optional[UUID]
    section_id: Optional[UUID]
    amount: Decimal
