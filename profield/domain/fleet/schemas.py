"""Fleet domain schemas - gas cards, assignments, vehicles, GPS pings"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...shared.validators import to_naive_utc

CARD_STATUSES = ("active", "inactive", "lost")


def _clean_card_number(v: str) -> str:
    digits = re.sub(r"[\s\-]", "", v or "")
    if not digits.isdigit() or not 4 <= len(digits) <= 19:
        raise ValueError("Card number must be 4-19 digits")
    return digits


class ProviderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    website: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None


class ProviderUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    website: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None


class ProviderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    website: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class GasCardCreate(BaseModel):
    card_name: str = Field(..., min_length=1, max_length=255)
    card_number: str
    provider: Optional[str] = Field(None, max_length=255)
    spending_limit: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    status: str = "active"
    notes: Optional[str] = None

    @field_validator("card_number")
    @classmethod
    def validate_card_number(cls, v):
        return _clean_card_number(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in CARD_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(CARD_STATUSES)}")
        return v


class GasCardUpdate(BaseModel):
    card_name: Optional[str] = Field(None, min_length=1, max_length=255)
    card_number: Optional[str] = None
    provider: Optional[str] = Field(None, max_length=255)
    spending_limit: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    status: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("card_number")
    @classmethod
    def validate_card_number(cls, v):
        if v is None:
            return v
        return _clean_card_number(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in CARD_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(CARD_STATUSES)}")
        return v


class GasCardResponse(BaseModel):
    """Card numbers never leave the server in full"""

    id: int
    card_name: str
    card_last4: str
    masked_number: str
    provider: Optional[str] = None
    spending_limit: Optional[float] = None
    status: str
    notes: Optional[str] = None
    assigned_to_user_id: Optional[int] = None
    created_at: Optional[datetime] = None


class AssignmentCreate(BaseModel):
    gas_card_id: int
    assigned_to_user_id: int
    expected_return_date: Optional[datetime] = None
    purpose: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None

    @field_validator("expected_return_date")
    @classmethod
    def naive_date(cls, v):
        return to_naive_utc(v)


class CheckoutRequest(BaseModel):
    expected_return_date: Optional[datetime] = None
    purpose: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None

    @field_validator("expected_return_date")
    @classmethod
    def naive_date(cls, v):
        return to_naive_utc(v)


class ReturnRequest(BaseModel):
    notes: Optional[str] = None


class AssignmentResponse(BaseModel):
    id: int
    gas_card_id: int
    card_name: Optional[str] = None
    card_last4: Optional[str] = None
    assigned_to_user_id: int
    assigned_to_name: Optional[str] = None
    assigned_by_user_id: int
    assigned_date: datetime
    expected_return_date: Optional[datetime] = None
    returned_date: Optional[datetime] = None
    purpose: Optional[str] = None
    notes: Optional[str] = None
    status: str


class VehicleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    license_plate: Optional[str] = Field(None, max_length=20)
    vin: Optional[str] = Field(None, max_length=17)
    assigned_user_id: Optional[int] = None


class VehicleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    license_plate: Optional[str] = None
    vin: Optional[str] = None
    assigned_user_id: Optional[int] = None
    is_active: bool
    created_at: Optional[datetime] = None


class LocationCreate(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    speed_mph: Optional[float] = Field(None, ge=0)
    heading: Optional[float] = Field(None, ge=0, lt=360)
    recorded_at: Optional[datetime] = None

    @field_validator("recorded_at")
    @classmethod
    def naive_date(cls, v):
        return to_naive_utc(v)


class LocationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vehicle_id: int
    latitude: float
    longitude: float
    speed_mph: Optional[float] = None
    heading: Optional[float] = None
    distance_from_previous_miles: Optional[float] = None
    is_moving: bool
    recorded_at: datetime
