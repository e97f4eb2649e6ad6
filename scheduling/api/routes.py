"""
Scheduling API Routes

HTTP endpoints over the scheduling facade. Every endpoint acts on behalf of
the user named in the X-User-Id header.
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from scheduling.api.dependencies import get_facade, get_user_id
from scheduling.api.errors import failure_to_http
from scheduling.models.results import Ok
from scheduling.models.schemas import (
    AppointmentOut,
    BookAppointmentRequest,
    BookOpeningRequest,
    ErrorResponse,
    JoinWaitlistRequest,
    NextAvailableResponse,
    RescheduleRequest,
    SlotOut,
    SlotsResponse,
    WaitlistRequestOut,
)
from scheduling.services.facade import SchedulingFacade

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["scheduling"],
    responses={
        401: {"model": ErrorResponse, "description": "Missing X-User-Id header"},
        503: {"model": ErrorResponse, "description": "Catalog or database unavailable"},
    },
)

NOT_FOUND = {404: {"model": ErrorResponse, "description": "Unknown or foreign entity"}}
CONFLICT = {409: {"model": ErrorResponse, "description": "Slot taken or invalid transition"}}


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


@router.get(
    "/venues/{venue_id}/services/{service_id}/slots",
    response_model=SlotsResponse,
    responses=NOT_FOUND,
)
async def list_slots(
    venue_id: str,
    service_id: str,
    day: date = Query(..., alias="date"),
    employee_id: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    facade: SchedulingFacade = Depends(get_facade),
) -> SlotsResponse:
    """
    List the slots of a service on a venue-local date.

    A day without any available slot is reported with ``fully_booked: true``.

    Example:
        GET /venues/v1/services/s1/slots?date=2030-01-07
    """
    result = await facade.list_slots(venue_id, service_id, day, employee_id)
    if not isinstance(result, Ok):
        raise failure_to_http(result)

    slots = result.value
    return SlotsResponse(
        date=day,
        fully_booked=not any(slot.is_available for slot in slots),
        slots=[SlotOut.model_validate(slot) for slot in slots],
    )


@router.get(
    "/venues/{venue_id}/services/{service_id}/next-available",
    response_model=NextAvailableResponse,
    responses=NOT_FOUND,
)
async def next_available(
    venue_id: str,
    service_id: str,
    from_date: date,
    employee_id: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    facade: SchedulingFacade = Depends(get_facade),
) -> NextAvailableResponse:
    result = await facade.next_available_date(venue_id, service_id, from_date, employee_id)
    if not isinstance(result, Ok):
        raise failure_to_http(result)
    return NextAvailableResponse(venue_id=venue_id, service_id=service_id, date=result.value)


# ---------------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------------


@router.post(
    "/appointments",
    response_model=AppointmentOut,
    status_code=201,
    responses={**NOT_FOUND, **CONFLICT},
)
async def book_appointment(
    body: BookAppointmentRequest,
    user_id: str = Depends(get_user_id),
    facade: SchedulingFacade = Depends(get_facade),
) -> AppointmentOut:
    """
    Book a slot.

    Returns 409 ``slot_no_longer_available`` when the slot was taken in the
    meantime; the client should reload the slots.
    """
    result = await facade.book(
        user_id,
        body.venue_id,
        body.service_id,
        body.employee_id,
        body.slot.to_domain(),
        body.notes,
    )
    if not isinstance(result, Ok):
        raise failure_to_http(result)
    return AppointmentOut.model_validate(result.value)


@router.get("/appointments/upcoming", response_model=List[AppointmentOut])
async def upcoming_appointments(
    user_id: str = Depends(get_user_id),
    facade: SchedulingFacade = Depends(get_facade),
) -> List[AppointmentOut]:
    return [AppointmentOut.model_validate(a) for a in await facade.upcoming_for(user_id)]


@router.get("/appointments/past", response_model=List[AppointmentOut])
async def past_appointments(
    user_id: str = Depends(get_user_id),
    facade: SchedulingFacade = Depends(get_facade),
) -> List[AppointmentOut]:
    return [AppointmentOut.model_validate(a) for a in await facade.past_for(user_id)]


@router.get(
    "/appointments/{appointment_id}", response_model=AppointmentOut, responses=NOT_FOUND
)
async def get_appointment(
    appointment_id: str,
    user_id: str = Depends(get_user_id),
    facade: SchedulingFacade = Depends(get_facade),
) -> AppointmentOut:
    result = await facade.get_appointment(appointment_id, user_id)
    if not isinstance(result, Ok):
        raise failure_to_http(result)
    return AppointmentOut.model_validate(result.value)


@router.post(
    "/appointments/{appointment_id}/cancel",
    response_model=AppointmentOut,
    responses={**NOT_FOUND, **CONFLICT},
)
async def cancel_appointment(
    appointment_id: str,
    user_id: str = Depends(get_user_id),
    facade: SchedulingFacade = Depends(get_facade),
) -> AppointmentOut:
    result = await facade.cancel(appointment_id, user_id)
    if not isinstance(result, Ok):
        raise failure_to_http(result)
    return AppointmentOut.model_validate(result.value)


@router.post(
    "/appointments/{appointment_id}/reschedule",
    response_model=AppointmentOut,
    responses={**NOT_FOUND, **CONFLICT},
)
async def reschedule_appointment(
    appointment_id: str,
    body: RescheduleRequest,
    user_id: str = Depends(get_user_id),
    facade: SchedulingFacade = Depends(get_facade),
) -> AppointmentOut:
    result = await facade.reschedule(appointment_id, body.slot.to_domain(), user_id)
    if not isinstance(result, Ok):
        raise failure_to_http(result)
    return AppointmentOut.model_validate(result.value)


# ---------------------------------------------------------------------------
# Waitlist
# ---------------------------------------------------------------------------


@router.post(
    "/waitlist", response_model=WaitlistRequestOut, status_code=201, responses=NOT_FOUND
)
async def join_waitlist(
    body: JoinWaitlistRequest,
    user_id: str = Depends(get_user_id),
    facade: SchedulingFacade = Depends(get_facade),
) -> WaitlistRequestOut:
    result = await facade.join_waitlist(
        user_id,
        body.venue_id,
        body.service_id,
        body.preferred_date,
        body.preferred_time_range,
    )
    if not isinstance(result, Ok):
        raise failure_to_http(result)
    return WaitlistRequestOut.model_validate(result.value)


@router.get("/waitlist", response_model=List[WaitlistRequestOut])
async def list_waitlist(
    user_id: str = Depends(get_user_id),
    facade: SchedulingFacade = Depends(get_facade),
) -> List[WaitlistRequestOut]:
    return [WaitlistRequestOut.model_validate(r) for r in await facade.waitlist_for(user_id)]


@router.get(
    "/waitlist/{request_id}/openings", response_model=List[SlotOut], responses=NOT_FOUND
)
async def waitlist_openings(
    request_id: str,
    user_id: str = Depends(get_user_id),
    facade: SchedulingFacade = Depends(get_facade),
) -> List[SlotOut]:
    result = await facade.check_waitlist_opening(request_id, user_id)
    if not isinstance(result, Ok):
        raise failure_to_http(result)
    return [SlotOut.model_validate(slot) for slot in result.value]


@router.post(
    "/waitlist/{request_id}/book",
    response_model=AppointmentOut,
    status_code=201,
    responses={**NOT_FOUND, **CONFLICT},
)
async def book_waitlist_opening(
    request_id: str,
    body: BookOpeningRequest,
    user_id: str = Depends(get_user_id),
    facade: SchedulingFacade = Depends(get_facade),
) -> AppointmentOut:
    result = await facade.book_from_waitlist(
        request_id, body.slot.to_domain(), body.notes, user_id
    )
    if not isinstance(result, Ok):
        raise failure_to_http(result)
    return AppointmentOut.model_validate(result.value)


@router.post(
    "/waitlist/{request_id}/cancel",
    response_model=WaitlistRequestOut,
    responses={**NOT_FOUND, **CONFLICT},
)
async def cancel_waitlist(
    request_id: str,
    user_id: str = Depends(get_user_id),
    facade: SchedulingFacade = Depends(get_facade),
) -> WaitlistRequestOut:
    result = await facade.cancel_waitlist(request_id, user_id)
    if not isinstance(result, Ok):
        raise failure_to_http(result)
    return WaitlistRequestOut.model_validate(result.value)
