"""Dispatch domain schemas - jobs, status updates and route optimisation"""

from datetime import date as date_type
from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import to_naive_utc

JOB_STATUSES = ("scheduled", "in_progress", "completed", "cancelled")
JOB_PRIORITIES = ("low", "medium", "high", "urgent")


def _check_priority(v):
    if v is not None and v not in JOB_PRIORITIES:
        raise ValueError(f"Priority must be one of: {', '.join(JOB_PRIORITIES)}")
    return v


class JobCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    customer_id: Optional[int] = None
    assigned_user_id: Optional[int] = None
    address: Optional[str] = Field(None, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    scheduled_start: datetime
    estimated_duration: int = Field(60, ge=1, le=24 * 60)
    priority: str = "medium"

    @field_validator("scheduled_start")
    @classmethod
    def naive_start(cls, v):
        return to_naive_utc(v)

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v):
        return _check_priority(v)


class JobUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    customer_id: Optional[int] = None
    assigned_user_id: Optional[int] = None
    address: Optional[str] = Field(None, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    scheduled_start: Optional[datetime] = None
    estimated_duration: Optional[int] = Field(None, ge=1, le=24 * 60)
    priority: Optional[str] = None

    @field_validator("scheduled_start")
    @classmethod
    def naive_start(cls, v):
        return to_naive_utc(v)

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v):
        return _check_priority(v)


class JobResponse(BaseModel):
    id: int
    title: str
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    assigned_user_id: Optional[int] = None
    assigned_user_name: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    scheduled_start: datetime
    estimated_duration: int
    priority: str
    status: str
    status_notes: Optional[str] = None
    last_known_location: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class JobStatusUpdate(BaseModel):
    status: str
    location: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in JOB_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(JOB_STATUSES)}")
        return v


class JobStatusResponse(BaseModel):
    message: str
    job: JobResponse


# ============================================================================
# ROUTE OPTIMISATION
# ============================================================================


class JobStop(BaseModel):
    """One stop as sent by the dispatch board"""

    id: Optional[Union[int, str]] = None
    title: Optional[str] = None
    address: Optional[str] = None
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    scheduled_time: Optional[str] = None
    estimated_duration: int = Field(60, ge=0, le=24 * 60)
    priority: Optional[str] = "medium"

    @property
    def coordinates(self) -> Optional[tuple[float, float]]:
        if self.lat is None or self.lng is None:
            return None
        return self.lat, self.lng


class OptimizeRouteRequest(BaseModel):
    jobs: list[JobStop] = []
    start_location: str = ""
    date: Optional[date_type] = None


class RouteLeg(BaseModel):
    from_stop: int  # -1 is the start location
    to_stop: int
    distance: float  # miles
    duration: int  # minutes
    directions: str
    traffic_delay: int  # minutes
    traffic_condition: str
    source: str


class RouteStart(BaseModel):
    latitude: float
    longitude: float
    source: str  # coordinates, geocoded, first_stop
    address: Optional[str] = None


class RouteOptimization(BaseModel):
    optimized_order: list[int]
    total_distance: float
    total_duration: int
    route_legs: list[RouteLeg]
    start: RouteStart
