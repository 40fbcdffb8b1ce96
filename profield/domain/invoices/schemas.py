"""Invoice domain schemas - invoices, line items, payments, dashboard stats"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...shared.validators import to_naive_utc

INVOICE_STATUSES = ("draft", "sent", "paid", "overdue", "cancelled")
PAYMENT_METHODS = ("manual", "cash", "check", "card", "bank_transfer", "other")


class LineItemCreate(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    rate: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Description is required")
        return v


class LineItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    quantity: float
    rate: float
    amount: float


class InvoiceCreate(BaseModel):
    customer_id: int
    invoice_number: Optional[str] = Field(None, max_length=50)
    status: str = "draft"
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    currency: str = Field("USD", min_length=3, max_length=3)
    notes: Optional[str] = None
    invoice_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    line_items: list[LineItemCreate] = Field(..., min_length=1)

    @field_validator("invoice_date", "due_date")
    @classmethod
    def naive_dates(cls, v):
        return to_naive_utc(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in ("draft", "sent"):
            raise ValueError("New invoices must be draft or sent")
        return v

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v):
        return v.upper()


class InvoiceUpdate(BaseModel):
    customer_id: Optional[int] = None
    invoice_number: Optional[str] = Field(None, max_length=50)
    status: Optional[str] = None
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    notes: Optional[str] = None
    invoice_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    line_items: Optional[list[LineItemCreate]] = Field(None, min_length=1)

    @field_validator("invoice_date", "due_date")
    @classmethod
    def naive_dates(cls, v):
        return to_naive_utc(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        # Payment goes through mark-paid so a Payment row is always recorded
        if v is not None and v not in ("draft", "sent", "cancelled"):
            raise ValueError("Status must be draft, sent or cancelled")
        return v


class InvoiceResponse(BaseModel):
    id: int
    organization_id: int
    user_id: int
    customer_id: int
    customer_name: Optional[str] = None
    quote_id: Optional[int] = None
    invoice_number: str
    status: str
    subtotal: float
    tax_rate: float
    tax_amount: float
    total: float
    currency: str
    notes: Optional[str] = None
    invoice_date: datetime
    due_date: datetime
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    line_items: list[LineItemResponse] = []


class InvoiceSendResponse(BaseModel):
    message: str
    email_sent: bool
    invoice: InvoiceResponse


class MarkPaidRequest(BaseModel):
    method: str = "manual"
    reference: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None

    @field_validator("method")
    @classmethod
    def validate_method(cls, v):
        if v not in PAYMENT_METHODS:
            raise ValueError(f"Method must be one of: {', '.join(PAYMENT_METHODS)}")
        return v


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_id: int
    amount: float
    currency: str
    method: str
    status: str
    external_id: Optional[str] = None
    created_at: Optional[datetime] = None


class DashboardStats(BaseModel):
    total_invoices: int
    paid_invoices: int
    pending_invoices: int
    overdue_invoices: int
    total_revenue: float
    outstanding_amount: float
