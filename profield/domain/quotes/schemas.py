"""Quote domain schemas"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import to_naive_utc, validate_email
from ..invoices.schemas import LineItemCreate, LineItemResponse

QUOTE_STATUSES = ("draft", "sent", "accepted", "rejected", "expired", "converted")


class QuoteCreate(BaseModel):
    customer_id: int
    quote_number: Optional[str] = Field(None, max_length=50)
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    currency: str = Field("USD", min_length=3, max_length=3)
    notes: Optional[str] = None
    quote_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    line_items: list[LineItemCreate] = Field(..., min_length=1)

    @field_validator("quote_date", "expiry_date")
    @classmethod
    def naive_dates(cls, v):
        return to_naive_utc(v)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v):
        return v.upper()


class QuoteUpdate(BaseModel):
    customer_id: Optional[int] = None
    quote_number: Optional[str] = Field(None, max_length=50)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    notes: Optional[str] = None
    quote_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    line_items: Optional[list[LineItemCreate]] = Field(None, min_length=1)

    @field_validator("quote_date", "expiry_date")
    @classmethod
    def naive_dates(cls, v):
        return to_naive_utc(v)


class QuoteResponse(BaseModel):
    id: int
    organization_id: int
    user_id: int
    customer_id: int
    customer_name: Optional[str] = None
    quote_number: str
    status: str
    subtotal: float
    tax_rate: float
    tax_amount: float
    total: float
    currency: str
    notes: Optional[str] = None
    quote_date: datetime
    expiry_date: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    converted_invoice_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    line_items: list[LineItemResponse] = []


class QuoteEmailRequest(BaseModel):
    to: str
    subject: Optional[str] = Field(None, max_length=255)
    message: Optional[str] = None

    @field_validator("to")
    @classmethod
    def validate_to(cls, v):
        return validate_email(v)


class QuoteEmailResponse(BaseModel):
    message: str
    to: str
    subject: str
    sent: bool
