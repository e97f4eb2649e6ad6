"""
Pydantic Schemas

Data validation and serialization schemas for the HTTP API.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from scheduling.models.domain import (
    AppointmentStatus,
    TimeRange,
    TimeSlot,
    WaitlistStatus,
    as_utc,
)


class SlotIn(BaseModel):
    """Slot chosen by the client, as previously returned by the slots endpoint."""

    start_time: datetime
    end_time: Optional[datetime] = None
    is_available: bool = True
    label: str = ""

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Treat naive datetimes as UTC."""
        return as_utc(v) if v is not None else None

    def to_domain(self) -> TimeSlot:
        return TimeSlot(
            start_time=self.start_time,
            end_time=self.end_time or self.start_time,
            is_available=self.is_available,
            label=self.label,
        )


class SlotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start_time: datetime
    end_time: datetime
    is_available: bool
    label: str


class SlotsResponse(BaseModel):
    date: date
    fully_booked: bool
    slots: List[SlotOut]


class NextAvailableResponse(BaseModel):
    venue_id: str
    service_id: str
    date: date


class BookAppointmentRequest(BaseModel):
    venue_id: str = Field(..., min_length=1)
    service_id: str = Field(..., min_length=1)
    employee_id: Optional[str] = Field(
        default=None,
        description="Employee to book; omit for any professional",
    )
    slot: SlotIn
    notes: Optional[str] = Field(default=None, max_length=1000)


class RescheduleRequest(BaseModel):
    slot: SlotIn


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    venue_id: str
    venue_name: str
    service_id: str
    service_name: str
    employee_id: str
    employee_name: str
    scheduled_at: datetime
    duration_minutes: int
    price: Decimal
    status: AppointmentStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class JoinWaitlistRequest(BaseModel):
    venue_id: str = Field(..., min_length=1)
    service_id: str = Field(..., min_length=1)
    preferred_date: date
    preferred_time_range: TimeRange = TimeRange.ANY


class BookOpeningRequest(BaseModel):
    slot: SlotIn
    notes: Optional[str] = Field(default=None, max_length=1000)


class WaitlistRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    venue_id: str
    service_id: str
    preferred_date: date
    preferred_time_range: TimeRange
    status: WaitlistStatus
    created_at: Optional[datetime] = None
    notified_at: Optional[datetime] = None
    appointment_id: Optional[str] = None


class ErrorDetail(BaseModel):
    error: str = Field(..., description="Machine-readable error code")
    detail: str


class ErrorResponse(BaseModel):
    """Error body of 401, 404, 409 and 503 responses."""

    detail: ErrorDetail
