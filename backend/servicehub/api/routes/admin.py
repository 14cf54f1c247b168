"""
Admin booking routes.

- GET /admin/bookings: every booking, filtered and paged
- POST /admin/bookings/{id}/refund: refund a captured payment
"""
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from servicehub.api.dependencies import get_booking_service, get_payment_service, require_role
from servicehub.api.routes.bookings import BookingListResponse, PaymentResponse, get_booking_query
from servicehub.lib.logging import get_logger
from servicehub.models.users import User, UserRole
from servicehub.services.booking_query import BookingQuery
from servicehub.services.booking_service import BookingService
from servicehub.services.payment_service import PaymentService


logger = get_logger(__name__)
router = APIRouter(prefix="/admin/bookings", tags=["admin", "bookings"])

require_admin = require_role(UserRole.ADMIN)


class RefundRequest(BaseModel):
    """Refund details; refund_id is the gateway's refund reference when one exists."""
    refund_amount: Decimal = Field(..., gt=0, decimal_places=2)
    reason: str = Field(..., min_length=1, max_length=500)
    refund_id: Optional[str] = Field(default=None, max_length=100)


@router.get("", response_model=BookingListResponse)
def list_all_bookings(
    query: BookingQuery = Depends(get_booking_query),
    current_user: User = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    return BookingListResponse.model_validate(service.list_all_bookings(query), from_attributes=True)


@router.post("/{booking_id}/refund", response_model=PaymentResponse)
def refund_booking(
    booking_id: UUID,
    request: RefundRequest,
    current_user: User = Depends(require_admin),
    payments: PaymentService = Depends(get_payment_service),
) -> PaymentResponse:
    """Refund a booking's captured payment and reverse its booking counters."""
    logger.info(
        "Refund requested",
        extra={"booking_id": str(booking_id), "admin_id": str(current_user.id)},
    )
    payment = payments.process_refund(
        booking_id,
        request.refund_amount,
        request.reason,
        refund_id=request.refund_id,
    )
    return PaymentResponse.model_validate(payment)
