"""Expense domain schemas"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...shared.validators import to_naive_utc, validate_hex_color

EXPENSE_STATUSES = ("pending", "approved", "rejected", "reimbursed")


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("color")
    @classmethod
    def validate_color(cls, v):
        return validate_hex_color(v)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("color")
    @classmethod
    def validate_color(cls, v):
        return validate_hex_color(v)


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None


class CategoryDeleteResponse(BaseModel):
    message: str
    deactivated: bool


class ExpenseCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    currency: str = Field("USD", min_length=3, max_length=3)
    vendor: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    expense_date: Optional[datetime] = None
    category_id: Optional[int] = None
    job_id: Optional[int] = None
    receipt_url: Optional[str] = Field(None, max_length=500)

    @field_validator("expense_date")
    @classmethod
    def naive_date(cls, v):
        return to_naive_utc(v)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v):
        return v.upper()


class ExpenseUpdate(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    vendor: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    expense_date: Optional[datetime] = None
    category_id: Optional[int] = None
    job_id: Optional[int] = None
    receipt_url: Optional[str] = Field(None, max_length=500)

    @field_validator("expense_date")
    @classmethod
    def naive_date(cls, v):
        return to_naive_utc(v)


class ReviewRequest(BaseModel):
    reason: Optional[str] = None


class ExpenseResponse(BaseModel):
    id: int
    organization_id: int
    user_id: int
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    job_id: Optional[int] = None
    amount: float
    currency: str
    vendor: Optional[str] = None
    description: Optional[str] = None
    expense_date: datetime
    receipt_url: Optional[str] = None
    status: str
    review_notes: Optional[str] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class CategoryTotal(BaseModel):
    category_id: Optional[int] = None
    category_name: str
    total: float
    count: int


class ExpenseSummary(BaseModel):
    total_amount: float
    expense_count: int
    by_category: list[CategoryTotal]
    by_status: dict[str, float]
