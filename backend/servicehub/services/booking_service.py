"""Booking service for the marketplace workflow.

Handles the booking side of the workflow:
1. Create: validate service and customer, snapshot fees, persist the booking
   and (for gateway payments) start a payment
2. Retry payment: start a gateway payment for a booking left without one
3. Cancel: customer cancellation outside the cancellation window
4. Provider status updates
5. Reads and listings
6. Expiry of unpaid bookings whose slot has passed
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from servicehub.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    NotFoundException,
)
from servicehub.lib.db import transactional_scope
from servicehub.lib.dates import as_utc, utcnow
from servicehub.lib.logging import get_logger, log_with_context
from servicehub.lib.metrics import get_metrics_collector
from servicehub.lib.payment_gateway import PaymentGateway
from servicehub.lib.settings import settings
from servicehub.models.bookings import (
    CANCELLABLE_BOOKING_STATUSES,
    PINCODE_PATTERN,
    Booking,
    BookingStatus,
    PaymentStatus,
)
from servicehub.models.payments import OPEN_PAYMENT_STATUSES, Payment, PaymentGatewayStatus, PaymentMethod
from servicehub.models.services import Service
from servicehub.models.users import User, UserRole
from servicehub.services.booking_query import BookingQuery
from servicehub.services.payment_service import PaymentService

logger = get_logger(__name__)

BOOKING_EXPIRED_REASON = "Booking expired"


class AddressData(BaseModel):
    """Service address."""
    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    pincode: str = Field(..., pattern=PINCODE_PATTERN.pattern)
    landmark: Optional[str] = Field(default=None, max_length=255)

    @field_validator("street", "city", "state", "landmark")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value else value


class CreateBookingData(BaseModel):
    """Booking request payload."""
    service_id: UUID
    booking_date: datetime
    time_slot: str = Field(..., min_length=1, max_length=50)
    address: AddressData
    customer_notes: Optional[str] = Field(default=None, max_length=500)
    payment_method: PaymentMethod = PaymentMethod.RAZORPAY

    @field_validator("booking_date")
    @classmethod
    def _booking_date_in_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("time_slot")
    @classmethod
    def _strip_slot(cls, value: str) -> str:
        return value.strip()


@dataclass
class BookingResult:
    """A booking plus the payment started for it, if any."""
    booking: Booking
    payment: Optional[Payment] = None
    gateway_order: Optional[dict] = None


def calculate_fees(price) -> tuple[Decimal, Decimal, Decimal]:
    """
    Fee snapshot for a service price.

    platform_fee is the configured rate of the price rounded half-up to a
    whole currency unit; total_amount = service_fee + platform_fee.

    Returns:
        (service_fee, platform_fee, total_amount)

    Example:
        >>> calculate_fees(Decimal("500"))
        (Decimal('500'), Decimal('50'), Decimal('550'))
    """
    service_fee = Decimal(str(price))
    platform_fee = (service_fee * settings.platform_fee_rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return service_fee, platform_fee, service_fee + platform_fee


class BookingService:
    """Booking lifecycle over one database session and one gateway."""

    def __init__(self, session: Session, gateway: PaymentGateway):
        self.session = session
        self.payments = PaymentService(session, gateway)
        self.metrics = get_metrics_collector()

    # ===== Create =====

    def create_booking(self, customer_id: UUID, data: CreateBookingData) -> BookingResult:
        """
        Create a booking with an immutable fee snapshot.

        For gateway payments an order is created for the booking total and a
        `created` payment record is stored. The booking is committed before
        the gateway is called: when the gateway fails the booking stays
        pending without a payment and BadRequestException is raised, and the
        customer can retry through initiate_payment.

        Raises:
            NotFoundException: Service missing/inactive, or customer missing/inactive
            BadRequestException: Slot in the past, or gateway order creation failed
        """
        service = self.session.execute(
            select(Service).where(Service.id == data.service_id, Service.is_active.is_(True))
        ).scalar_one_or_none()
        if service is None:
            raise NotFoundException("Service", data.service_id, message="Service not found or not available")

        customer = self.session.get(User, customer_id)
        if customer is None or not customer.is_active:
            raise NotFoundException("Customer", customer_id, message="Customer not found")

        if data.booking_date <= utcnow():
            raise BadRequestException("Booking date must be in the future")

        service_fee, platform_fee, total_amount = calculate_fees(service.price)

        booking = Booking(
            customer_id=customer.id,
            provider_id=service.provider_id,
            service_id=service.id,
            booking_date=data.booking_date,
            time_slot=data.time_slot,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            service_fee=service_fee,
            platform_fee=platform_fee,
            total_amount=total_amount,
            address_street=data.address.street,
            address_city=data.address.city,
            address_state=data.address.state,
            address_pincode=data.address.pincode,
            address_landmark=data.address.landmark,
            customer_notes=data.customer_notes,
        )
        self.session.add(booking)
        self.session.commit()

        self.metrics.increment_bookings(data.payment_method.value)
        log_with_context(
            logger, "info", "Booking created",
            booking_id=booking.id, customer_id=customer.id, provider_id=service.provider_id,
            service_id=service.id, total_amount=total_amount, payment_method=data.payment_method.value,
        )

        result = BookingResult(booking=booking)
        if data.payment_method == PaymentMethod.RAZORPAY:
            result.payment, result.gateway_order = self.payments.start_gateway_payment(booking)
        return result

    def initiate_payment(self, customer_id: UUID, booking_id: UUID) -> BookingResult:
        """
        Start (or resume) the gateway payment for a pending booking.

        Returns the open payment if one already exists instead of creating a
        second order.

        Raises:
            NotFoundException: Booking missing, not the customer's, or not awaiting payment
            BadRequestException: Gateway order creation failed
        """
        booking = self.session.execute(
            select(Booking).where(
                Booking.id == booking_id,
                Booking.customer_id == customer_id,
                Booking.status == BookingStatus.PENDING,
                Booking.payment_status == PaymentStatus.PENDING,
            )
        ).scalar_one_or_none()
        if booking is None:
            raise NotFoundException("Booking", booking_id, message="Booking not found or not awaiting payment")

        existing = self.payments.get_open_gateway_payment(booking.id)
        if existing is not None:
            return BookingResult(booking=booking, payment=existing, gateway_order=existing.gateway_response)

        payment, order = self.payments.start_gateway_payment(booking)
        return BookingResult(booking=booking, payment=payment, gateway_order=order)

    # ===== Reads =====

    def get_booking(self, booking_id: UUID, user: User) -> Booking:
        """
        Booking visible to its customer, its provider, or any admin.

        Raises:
            NotFoundException: Booking missing or not visible to the user
        """
        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundException("Booking", booking_id, message="Booking not found")
        if user.role != UserRole.ADMIN and user.id not in (booking.customer_id, booking.provider_id):
            raise NotFoundException("Booking", booking_id, message="Booking not found")
        return booking

    def list_customer_bookings(self, customer_id: UUID, query: BookingQuery) -> dict:
        return query.execute(self.session, select(Booking).where(Booking.customer_id == customer_id))

    def list_provider_bookings(self, provider_id: UUID, query: BookingQuery) -> dict:
        return query.execute(self.session, select(Booking).where(Booking.provider_id == provider_id))

    def list_all_bookings(self, query: BookingQuery) -> dict:
        """Every booking on the platform, for admins."""
        return query.execute(self.session, select(Booking))

    # ===== Cancel =====

    def cancel_booking(self, customer_id: UUID, booking_id: UUID, reason: Optional[str] = None) -> Booking:
        """
        Customer cancellation.

        Only pending or confirmed bookings can be cancelled, and only while the
        slot is at least the cancellation window away. Payment state is not
        touched; refunds are a separate operation.

        Raises:
            NotFoundException: Booking missing, not the customer's, or not cancellable
            BadRequestException: Too close to the scheduled time
        """
        booking = self.session.execute(
            select(Booking).where(
                Booking.id == booking_id,
                Booking.customer_id == customer_id,
                Booking.status.in_(CANCELLABLE_BOOKING_STATUSES),
            )
        ).scalar_one_or_none()
        if booking is None:
            raise NotFoundException("Booking", booking_id, message="Booking not found or cannot be cancelled")

        now = utcnow()
        window = timedelta(hours=settings.cancellation_window_hours)
        if as_utc(booking.booking_date) - now < window:
            raise BadRequestException(
                f"Cannot cancel booking less than {settings.cancellation_window_hours} hours "
                "before the scheduled time"
            )

        result = self.session.execute(
            update(Booking)
            .where(
                Booking.id == booking.id,
                Booking.customer_id == customer_id,
                Booking.status.in_(CANCELLABLE_BOOKING_STATUSES),
            )
            .values(status=BookingStatus.CANCELLED, cancelled_at=now, cancel_reason=reason)
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFoundException("Booking", booking_id, message="Booking not found or cannot be cancelled")
        self.session.commit()
        self.session.refresh(booking)

        self.metrics.increment_transitions(BookingStatus.CANCELLED.value, actor="customer")
        log_with_context(logger, "info", "Booking cancelled by customer", booking_id=booking.id, reason=reason)
        return booking

    # ===== Provider =====

    def provider_update_booking_status(
        self,
        provider_id: UUID,
        booking_id: UUID,
        new_status: BookingStatus,
        provider_notes: Optional[str] = None,
        cancel_reason: Optional[str] = None,
    ) -> Booking:
        """
        Provider-driven status change.

        completed stamps completed_at, cancelled stamps cancelled_at and the
        optional reason; any other status is stored as-is. Terminal bookings
        do not move and refunds only happen through the refund flow.

        Completing a booking that was never paid through the gateway (cash on
        delivery, or a gateway order that never captured) counts it on the
        service, in the same transaction as the status change. Paid bookings
        were counted at capture and are not counted again.

        Raises:
            NotFoundException: Booking missing or not the provider's
            BadRequestException: Booking is terminal, or target is refunded
            ConflictException: Booking changed between read and write
        """
        booking = self.session.execute(
            select(Booking).where(Booking.id == booking_id, Booking.provider_id == provider_id)
        ).scalar_one_or_none()
        if booking is None:
            raise NotFoundException("Booking", booking_id, message="Booking not found")

        if booking.is_terminal:
            raise BadRequestException(
                f"Booking is already {booking.status.value}",
                details={"booking_id": str(booking.id), "status": booking.status.value},
            )
        if new_status == BookingStatus.REFUNDED:
            raise BadRequestException("Refunds must be processed through the refund flow")

        now = utcnow()
        values = {"status": new_status}
        if provider_notes:
            values["provider_notes"] = provider_notes
        if new_status == BookingStatus.COMPLETED:
            values["completed_at"] = now
        if new_status == BookingStatus.CANCELLED:
            values["cancelled_at"] = now
            if cancel_reason:
                values["cancel_reason"] = cancel_reason

        # Paid bookings were already counted on the service at capture
        count_on_service = (
            new_status == BookingStatus.COMPLETED and booking.payment_status != PaymentStatus.PAID
        )

        with transactional_scope(self.session) as tx:
            result = tx.execute(
                update(Booking)
                .where(
                    Booking.id == booking.id,
                    Booking.provider_id == provider_id,
                    Booking.status == booking.status,
                    Booking.payment_status == booking.payment_status,
                )
                .values(**values)
            )
            if result.rowcount == 0:
                raise ConflictException(
                    "Booking was modified by another request",
                    details={"booking_id": str(booking_id)},
                )
            if count_on_service:
                tx.execute(
                    update(Service)
                    .where(Service.id == booking.service_id)
                    .values(total_bookings=Service.total_bookings + 1)
                )
        self.session.refresh(booking)

        self.metrics.increment_transitions(new_status.value, actor="provider")
        log_with_context(
            logger, "info", "Booking status updated by provider",
            booking_id=booking.id, provider_id=provider_id, status=new_status.value,
        )
        return booking

    # ===== Expiry =====

    def expire_stale_bookings(self, now: Optional[datetime] = None) -> int:
        """
        Cancel bookings still awaiting payment whose slot has already passed.

        Open payments for those bookings are marked failed with the same
        reason. Returns the number of bookings expired.
        """
        now = as_utc(now) if now else utcnow()

        stale_ids = self.session.execute(
            select(Booking.id).where(
                Booking.status == BookingStatus.PENDING,
                Booking.payment_status == PaymentStatus.PENDING,
                Booking.booking_date < now,
            )
        ).scalars().all()
        if not stale_ids:
            return 0

        with transactional_scope(self.session) as tx:
            tx.execute(
                update(Payment)
                .where(Payment.booking_id.in_(stale_ids), Payment.status.in_(OPEN_PAYMENT_STATUSES))
                .values(status=PaymentGatewayStatus.FAILED, failure_reason=BOOKING_EXPIRED_REASON)
            )
            result = tx.execute(
                update(Booking)
                .where(
                    Booking.id.in_(stale_ids),
                    Booking.status == BookingStatus.PENDING,
                    Booking.payment_status == PaymentStatus.PENDING,
                )
                .values(
                    status=BookingStatus.CANCELLED,
                    cancelled_at=now,
                    cancel_reason=BOOKING_EXPIRED_REASON,
                )
            )
            expired = result.rowcount

        self.metrics.increment_transitions(BookingStatus.CANCELLED.value, actor="system", amount=expired)
        log_with_context(logger, "info", "Expired stale bookings", count=expired)
        return expired
