"""
Models Module Initialization

Exports domain types and operation results.
"""

from scheduling.models.domain import (
    Appointment,
    AppointmentStatus,
    Employee,
    OpeningHours,
    Service,
    TimeRange,
    TimeSlot,
    Venue,
    WaitlistRequest,
    WaitlistStatus,
)
from scheduling.models.results import (
    InvalidStateTransition,
    NoAvailabilityWithinHorizon,
    NotFound,
    Ok,
    SlotNoLongerAvailable,
    UpstreamUnavailable,
)

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "Employee",
    "OpeningHours",
    "Service",
    "TimeRange",
    "TimeSlot",
    "Venue",
    "WaitlistRequest",
    "WaitlistStatus",
    "InvalidStateTransition",
    "NoAvailabilityWithinHorizon",
    "NotFound",
    "Ok",
    "SlotNoLongerAvailable",
    "UpstreamUnavailable",
]
