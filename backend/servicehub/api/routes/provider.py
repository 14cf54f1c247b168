"""
Provider booking routes.

- GET /provider/bookings: bookings assigned to the current provider
- PUT /provider/bookings/{id}/status: move a booking through its lifecycle
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from servicehub.api.dependencies import get_booking_service, require_role
from servicehub.api.routes.bookings import BookingListResponse, BookingResponse, get_booking_query
from servicehub.lib.logging import get_logger
from servicehub.models.bookings import BookingStatus
from servicehub.models.users import User, UserRole
from servicehub.services.booking_query import BookingQuery
from servicehub.services.booking_service import BookingService


logger = get_logger(__name__)
router = APIRouter(prefix="/provider/bookings", tags=["provider", "bookings"])

require_provider = require_role(UserRole.PROVIDER)


class UpdateBookingStatusRequest(BaseModel):
    status: BookingStatus
    provider_notes: Optional[str] = Field(default=None, max_length=500)
    cancel_reason: Optional[str] = Field(default=None, max_length=200)


@router.get("", response_model=BookingListResponse)
def list_provider_bookings(
    query: BookingQuery = Depends(get_booking_query),
    current_user: User = Depends(require_provider),
    service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    return BookingListResponse.model_validate(
        service.list_provider_bookings(current_user.id, query), from_attributes=True
    )


@router.put("/{booking_id}/status", response_model=BookingResponse)
def update_booking_status(
    booking_id: UUID,
    request: UpdateBookingStatusRequest,
    current_user: User = Depends(require_provider),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Update a booking's status.

    Completed and cancelled bookings are final; refunds go through the
    admin refund endpoint.
    """
    booking = service.provider_update_booking_status(
        current_user.id,
        booking_id,
        request.status,
        provider_notes=request.provider_notes,
        cancel_reason=request.cancel_reason,
    )
    return BookingResponse.model_validate(booking)
