"""Booking routes for customers.

- POST /bookings: create a booking (and gateway order for online payment)
- POST /bookings/verify-payment: confirm a captured payment
- POST /bookings/payment-failure: record a failed payment
- GET /bookings: list the customer's bookings
- GET /bookings/{id}: booking detail (customer, provider or admin)
- PUT /bookings/{id}/cancel: customer cancellation
- POST /bookings/{id}/payment: retry payment initiation
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, ValidationError

from servicehub.api.dependencies import (
    get_booking_service,
    get_current_user,
    get_payment_service,
    require_role,
)
from servicehub.api.middleware.error_handler import ValidationException
from servicehub.models.bookings import BookingStatus, PaymentStatus
from servicehub.models.payments import PaymentGatewayStatus, PaymentMethod
from servicehub.models.users import User, UserRole
from servicehub.services.booking_query import BookingQuery, BookingSortField, SortOrder
from servicehub.services.booking_service import BookingResult, BookingService, CreateBookingData
from servicehub.services.payment_service import PaymentService


router = APIRouter(prefix="/bookings", tags=["bookings"])

require_customer = require_role(UserRole.CUSTOMER)


# Response models
class PartySummary(BaseModel):
    id: UUID
    name: str
    email: str
    phone: Optional[str] = None

    model_config = {"from_attributes": True}


class ServiceSummary(BaseModel):
    id: UUID
    name: str
    category: str
    duration_minutes: int
    price: float

    model_config = {"from_attributes": True}


class AddressResponse(BaseModel):
    street: str
    city: str
    state: str
    pincode: str
    landmark: Optional[str] = None


class BookingResponse(BaseModel):
    """Booking with customer, provider and service resolved for display."""
    id: UUID
    customer: PartySummary
    provider: PartySummary
    service: ServiceSummary
    booking_date: datetime
    time_slot: str
    status: BookingStatus
    payment_status: PaymentStatus
    total_amount: float
    service_fee: float
    platform_fee: float
    address: AddressResponse
    customer_notes: Optional[str] = None
    provider_notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    id: UUID
    booking_id: UUID
    amount: float
    currency: str
    method: PaymentMethod
    status: PaymentGatewayStatus
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    failure_reason: Optional[str] = None
    refund_id: Optional[str] = None
    refund_amount: Optional[float] = None
    refund_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingWithPaymentResponse(BaseModel):
    booking: BookingResponse
    payment: Optional[PaymentResponse] = None
    gateway_order: Optional[dict] = None

    @classmethod
    def from_result(cls, result: BookingResult) -> "BookingWithPaymentResponse":
        return cls(
            booking=BookingResponse.model_validate(result.booking),
            payment=PaymentResponse.model_validate(result.payment) if result.payment else None,
            gateway_order=result.gateway_order,
        )


class Pagination(BaseModel):
    current: int
    total: int
    count: int
    limit: int


class BookingListResponse(BaseModel):
    bookings: List[BookingResponse]
    pagination: Pagination


# Request models
class VerifyPaymentRequest(BaseModel):
    """Razorpay checkout success callback, forwarded by the client."""
    payment_id: UUID
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


class PaymentFailureRequest(BaseModel):
    payment_id: UUID
    reason: str = Field(default="Payment failed", max_length=500)


class CancelBookingRequest(BaseModel):
    cancel_reason: Optional[str] = Field(default=None, max_length=200)


def get_booking_query(
    status_filter: Optional[str] = Query(
        None, alias="status", description="Status or comma-separated statuses; 'all' for no filter"
    ),
    start_date: Optional[datetime] = Query(None, description="Earliest booking date (inclusive)"),
    end_date: Optional[datetime] = Query(None, description="Latest booking date (inclusive)"),
    search: Optional[str] = Query(None, description="Search time slot, city and notes"),
    sort_by: BookingSortField = Query(BookingSortField.CREATED_AT),
    sort_order: SortOrder = Query(SortOrder.DESC),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> BookingQuery:
    """Build a BookingQuery from query-string parameters."""
    try:
        return BookingQuery(
            statuses=status_filter,
            start_date=start_date,
            end_date=end_date,
            search=search,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            limit=limit,
        )
    except ValidationError as e:
        raise ValidationException(
            "Invalid booking query",
            errors={".".join(str(p) for p in err["loc"]) or "query": err["msg"] for err in e.errors()},
        )


@router.post(
    "",
    response_model=BookingWithPaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    request: CreateBookingData,
    current_user: User = Depends(require_customer),
    service: BookingService = Depends(get_booking_service),
) -> BookingWithPaymentResponse:
    """
    Create a booking.

    With payment_method=razorpay the response also carries the payment
    record and the gateway order the client hands to Razorpay checkout.
    """
    result = service.create_booking(current_user.id, request)
    return BookingWithPaymentResponse.from_result(result)


@router.post("/verify-payment", response_model=PaymentResponse)
def verify_payment(
    request: VerifyPaymentRequest,
    current_user: User = Depends(require_customer),
    payments: PaymentService = Depends(get_payment_service),
) -> PaymentResponse:
    """Confirm a payment using the signature returned by Razorpay checkout."""
    payment = payments.confirm_payment(
        request.payment_id,
        request.razorpay_order_id,
        request.razorpay_payment_id,
        request.razorpay_signature,
        customer_id=current_user.id,
    )
    return PaymentResponse.model_validate(payment)


@router.post("/payment-failure", response_model=PaymentResponse)
def payment_failure(
    request: PaymentFailureRequest,
    current_user: User = Depends(require_customer),
    payments: PaymentService = Depends(get_payment_service),
) -> PaymentResponse:
    """Record a failed checkout; the booking is cancelled."""
    payment = payments.fail_payment(request.payment_id, request.reason, customer_id=current_user.id)
    return PaymentResponse.model_validate(payment)


@router.get("", response_model=BookingListResponse)
def list_bookings(
    query: BookingQuery = Depends(get_booking_query),
    current_user: User = Depends(require_customer),
    service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    """List the current customer's bookings."""
    return BookingListResponse.model_validate(
        service.list_customer_bookings(current_user.id, query), from_attributes=True
    )


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return BookingResponse.model_validate(service.get_booking(booking_id, current_user))


@router.put("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: UUID,
    request: CancelBookingRequest,
    current_user: User = Depends(require_customer),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Cancel a pending or confirmed booking (not within 2 hours of the slot)."""
    booking = service.cancel_booking(current_user.id, booking_id, request.cancel_reason)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/payment", response_model=BookingWithPaymentResponse)
def initiate_payment(
    booking_id: UUID,
    current_user: User = Depends(require_customer),
    service: BookingService = Depends(get_booking_service),
) -> BookingWithPaymentResponse:
    """Start or resume online payment for a booking created without one."""
    result = service.initiate_payment(current_user.id, booking_id)
    return BookingWithPaymentResponse.from_result(result)
