"""
Centralized mapping of scheduling results to HTTP errors.

Routes return ``Ok`` values directly and hand every other result to
``failure_to_http``. New result types get a rule here instead of checks
scattered across routes.
"""

import logging
from typing import List, Tuple, Type

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from scheduling.models.results import (
    Failure,
    InvalidStateTransition,
    NoAvailabilityWithinHorizon,
    NotFound,
    SlotNoLongerAvailable,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_SERVICE_UNAVAILABLE = 503
STATUS_INTERNAL_ERROR = 500

# (result type, status code, error code). First match wins.
RESULT_ERROR_RULES: List[Tuple[Type, int, str]] = [
    (SlotNoLongerAvailable, STATUS_CONFLICT, "slot_no_longer_available"),
    (InvalidStateTransition, STATUS_CONFLICT, "invalid_state_transition"),
    (NotFound, STATUS_NOT_FOUND, "not_found"),
    (NoAvailabilityWithinHorizon, STATUS_NOT_FOUND, "no_availability_within_horizon"),
]


def failure_to_http(result: Failure) -> HTTPException:
    """
    Map a non-Ok scheduling result into an HTTPException.

    The exception detail is ``{"error": <code>, "detail": <reason>}``.
    """
    for result_type, status_code, error in RESULT_ERROR_RULES:
        if isinstance(result, result_type):
            return HTTPException(
                status_code=status_code,
                detail={"error": error, "detail": result.reason},
            )
    return HTTPException(
        status_code=STATUS_INTERNAL_ERROR,
        detail={"error": "internal_error", "detail": repr(result)},
    )


async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailable) -> JSONResponse:
    logger.error(f"Upstream unavailable during {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=STATUS_SERVICE_UNAVAILABLE,
        content={
            "detail": {
                "error": "upstream_unavailable",
                "detail": "A required service is temporarily unavailable. Please try again.",
            }
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(UpstreamUnavailable, upstream_unavailable_handler)
