"""
API Dependencies

Request-scoped dependencies: the shared scheduling facade and the caller's
identity. Authentication happens upstream; the gateway forwards the
authenticated user id in the ``X-User-Id`` header.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request

from scheduling.services.facade import SchedulingFacade


def get_facade(request: Request) -> SchedulingFacade:
    """Facade built during application startup."""
    return request.app.state.facade


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    Caller identity from the X-User-Id header.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=401,
            detail={"error": "unauthenticated", "detail": "X-User-Id header is required"},
        )
    return x_user_id.strip()
