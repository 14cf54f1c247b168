"""Payment service for the booking workflow.

Owns every transition of a Payment record and the multi-entity updates that
ride along with it:

1. Start: create a gateway order for a booking and persist a `created` payment
2. Confirm: verified capture updates payment, booking, service counter and
   provider counters in one transaction
3. Fail: verified failure marks the payment failed and cancels the booking
4. Refund: reverses a capture, again as one transaction

Payment capture is the only place that increments the provider's counters and
counts a paid booking on Service.total_bookings; refunds reverse exactly what
capture added. Bookings that never pass through a capture are counted on the
service when the provider completes them.
"""
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from servicehub.api.middleware.error_handler import (
    AppException,
    BadRequestException,
    ConflictException,
    InternalServerException,
    NotFoundException,
)
from servicehub.lib.db import transactional_scope
from servicehub.lib.dates import utcnow
from servicehub.lib.logging import get_logger, log_with_context
from servicehub.lib.metrics import get_metrics_collector
from servicehub.lib.payment_gateway import (
    PaymentGateway,
    PaymentGatewayError,
    build_receipt,
    to_minor_units,
)
from servicehub.lib.settings import settings
from servicehub.models.bookings import Booking, BookingStatus, PaymentStatus
from servicehub.models.payments import (
    OPEN_PAYMENT_STATUSES,
    Payment,
    PaymentGatewayStatus,
    PaymentMethod,
)
from servicehub.models.services import Service
from servicehub.models.users import User

logger = get_logger(__name__)

PAYMENT_FAILED_REASON = "Payment failed"

# A paid booking can be refunded while confirmed or after the customer cancelled it
REFUNDABLE_BOOKING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.CANCELLED)


class PaymentService:
    """Payment lifecycle over one database session and one gateway."""

    def __init__(self, session: Session, gateway: PaymentGateway):
        self.session = session
        self.gateway = gateway
        self.metrics = get_metrics_collector()

    # ===== Lookups =====

    def get_payment(self, payment_id: UUID, customer_id: Optional[UUID] = None) -> Payment:
        """
        Load a payment, optionally scoped to the paying customer.

        Raises:
            NotFoundException: If the payment does not exist or belongs to someone else
        """
        payment = self.session.get(Payment, payment_id)
        if payment is None or (customer_id is not None and payment.customer_id != customer_id):
            raise NotFoundException("Payment", payment_id, message="Payment record not found")
        return payment

    def get_open_gateway_payment(self, booking_id: UUID) -> Optional[Payment]:
        stmt = (
            select(Payment)
            .where(
                Payment.booking_id == booking_id,
                Payment.method == PaymentMethod.RAZORPAY,
                Payment.status.in_(OPEN_PAYMENT_STATUSES),
            )
            .order_by(Payment.created_at.desc())
        )
        return self.session.execute(stmt).scalars().first()

    # ===== Start =====

    def start_gateway_payment(self, booking: Booking) -> tuple[Payment, dict]:
        """
        Create a gateway order for the booking total and persist a `created` payment.

        The booking must already be committed. If the gateway call fails the
        booking is left as it is, with no payment attached, so the customer
        can retry against the same booking.

        Returns:
            (payment, gateway_order)

        Raises:
            BadRequestException: If the gateway rejects the order
        """
        receipt = build_receipt(booking.id)
        try:
            order = self.gateway.create_order(
                to_minor_units(booking.total_amount),
                settings.currency,
                receipt,
            )
        except PaymentGatewayError as e:
            log_with_context(
                logger, "error", "Gateway order creation failed",
                booking_id=booking.id, receipt=receipt, error=e,
            )
            raise BadRequestException(
                "Failed to create payment order",
                details={"booking_id": str(booking.id)},
            ) from e

        payment = Payment(
            booking_id=booking.id,
            customer_id=booking.customer_id,
            provider_id=booking.provider_id,
            amount=booking.total_amount,
            currency=settings.currency,
            method=PaymentMethod.RAZORPAY,
            status=PaymentGatewayStatus.CREATED,
            gateway_order_id=order["id"],
            gateway_response=order,
        )
        self.session.add(payment)
        self.session.commit()

        log_with_context(
            logger, "info", "Payment record created",
            payment_id=payment.id, booking_id=booking.id, order_id=order["id"], amount=payment.amount,
        )
        return payment, order

    # ===== Confirm =====

    def confirm_payment(
        self,
        payment_id: UUID,
        gateway_order_id: str,
        gateway_payment_id: str,
        gateway_signature: str,
        customer_id: Optional[UUID] = None,
    ) -> Payment:
        """
        Apply a verified gateway capture.

        The signature is checked before anything is read or written. The four
        updates (payment, booking, service counter, provider counters) commit
        together or not at all. A payment that is no longer open (already
        captured, failed or refunded) is rejected, so a retried callback never
        counts twice.

        The gateway captures as soon as the customer pays, so a capture that
        arrives after the customer cancelled is still recorded: the booking
        stays cancelled, is marked paid and is counted like any other capture
        until process_refund reverses it.

        Raises:
            BadRequestException: Invalid signature or order mismatch
            NotFoundException: Unknown payment
            ConflictException: Payment already processed, or booking no longer pending
            InternalServerException: The transaction failed and was rolled back
        """
        if not self.gateway.verify_signature(gateway_order_id, gateway_payment_id, gateway_signature):
            self.metrics.increment_payments("rejected")
            log_with_context(logger, "warning", "Invalid payment signature", payment_id=payment_id)
            raise BadRequestException("Invalid payment signature")

        payment = self.get_payment(payment_id, customer_id)
        if payment.gateway_order_id != gateway_order_id:
            raise BadRequestException(
                "Order does not match payment",
                details={"payment_id": str(payment.id)},
            )

        booking = self.session.get(Booking, payment.booking_id)
        if booking is None:
            raise NotFoundException("Booking", payment.booking_id)

        amount = payment.amount
        booking_id, service_id, provider_id = booking.id, booking.service_id, booking.provider_id

        try:
            with transactional_scope(self.session) as tx:
                self._capture_payment(tx, payment.id, gateway_payment_id, gateway_signature)
                booking_status = self._mark_booking_paid(tx, booking_id)
                self._increment_service_bookings(tx, service_id, 1)
                self._adjust_provider_stats(tx, provider_id, amount, 1)
        except AppException:
            raise
        except SQLAlchemyError as e:
            log_with_context(
                logger, "error", "Payment confirmation transaction rolled back",
                payment_id=payment_id, booking_id=booking_id, error=e,
            )
            raise InternalServerException(
                "Payment confirmation failed",
                details={"payment_id": str(payment_id)},
            ) from e

        self.session.refresh(payment)
        self.metrics.increment_payments("captured")
        self.metrics.add_amount("captured", amount)
        log_with_context(
            logger, "info", "Payment captured",
            payment_id=payment.id, booking_id=booking_id, service_id=service_id,
            provider_id=provider_id, amount=amount, booking_status=booking_status.value,
        )
        return payment

    def _capture_payment(self, tx: Session, payment_id: UUID, gateway_payment_id: str, signature: str) -> None:
        result = tx.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status.in_(OPEN_PAYMENT_STATUSES))
            .values(
                status=PaymentGatewayStatus.CAPTURED,
                gateway_payment_id=gateway_payment_id,
                gateway_signature=signature,
            )
        )
        if result.rowcount == 0:
            raise ConflictException(
                "Payment has already been processed",
                details={"payment_id": str(payment_id)},
            )

    def _mark_booking_paid(self, tx: Session, booking_id: UUID) -> BookingStatus:
        """
        Mark the booking paid and return the status it ends up in.

        A pending booking becomes confirmed. A booking the customer cancelled
        while its order was open stays cancelled but is marked paid, so the
        captured money is on record and can go through the refund flow.
        """
        result = tx.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == BookingStatus.PENDING)
            .values(payment_status=PaymentStatus.PAID, status=BookingStatus.CONFIRMED)
        )
        if result.rowcount:
            return BookingStatus.CONFIRMED

        result = tx.execute(
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.status == BookingStatus.CANCELLED,
                Booking.payment_status == PaymentStatus.PENDING,
            )
            .values(payment_status=PaymentStatus.PAID)
        )
        if result.rowcount:
            return BookingStatus.CANCELLED

        raise ConflictException(
            "Booking is no longer awaiting payment",
            details={"booking_id": str(booking_id)},
        )

    def _increment_service_bookings(self, tx: Session, service_id: UUID, delta: int) -> None:
        tx.execute(
            update(Service)
            .where(Service.id == service_id)
            .values(total_bookings=Service.total_bookings + delta)
        )

    def _adjust_provider_stats(self, tx: Session, provider_id: UUID, earnings: Decimal, bookings: int) -> None:
        tx.execute(
            update(User)
            .where(User.id == provider_id)
            .values(
                total_earnings=User.total_earnings + earnings,
                total_bookings=User.total_bookings + bookings,
            )
        )

    # ===== Fail =====

    def fail_payment(self, payment_id: UUID, reason: str, customer_id: Optional[UUID] = None) -> Payment:
        """
        Record a gateway failure and cancel the booking it was for.

        No counters were touched for an uncaptured payment, so nothing is
        reversed here.

        Raises:
            NotFoundException: Unknown payment
            ConflictException: Payment is no longer open
        """
        payment = self.get_payment(payment_id, customer_id)
        now = utcnow()

        with transactional_scope(self.session) as tx:
            result = tx.execute(
                update(Payment)
                .where(Payment.id == payment.id, Payment.status.in_(OPEN_PAYMENT_STATUSES))
                .values(status=PaymentGatewayStatus.FAILED, failure_reason=reason)
            )
            if result.rowcount == 0:
                raise ConflictException(
                    "Payment has already been processed",
                    details={"payment_id": str(payment.id)},
                )

            tx.execute(
                update(Booking)
                .where(Booking.id == payment.booking_id, Booking.status == BookingStatus.PENDING)
                .values(
                    payment_status=PaymentStatus.FAILED,
                    status=BookingStatus.CANCELLED,
                    cancel_reason=PAYMENT_FAILED_REASON,
                    cancelled_at=now,
                )
            )

        self.session.refresh(payment)
        self.metrics.increment_payments("failed")
        self.metrics.increment_transitions(BookingStatus.CANCELLED.value, actor="gateway")
        log_with_context(
            logger, "warning", "Payment failed, booking cancelled",
            payment_id=payment.id, booking_id=payment.booking_id, reason=reason,
        )
        return payment

    # ===== Refund =====

    def process_refund(
        self,
        booking_id: UUID,
        refund_amount: Decimal,
        reason: str,
        refund_id: Optional[str] = None,
    ) -> Payment:
        """
        Refund a captured payment and reverse what its capture counted.

        Payment -> refunded, booking -> refunded/refunded, service booking
        counter -1, provider booking counter -1 and provider earnings reduced
        by the refunded amount. All in one transaction.

        A partial refund still ends the booking: it moves to refunded and
        drops out of both booking counters. The provider keeps the part of
        the payment that was not returned, so earnings only lose
        refund_amount.

        Raises:
            NotFoundException: No captured payment for the booking
            BadRequestException: Refund amount outside (0, captured amount]
            ConflictException: Booking is not in a refundable state
            InternalServerException: The transaction failed and was rolled back
        """
        payment = self.session.execute(
            select(Payment).where(
                Payment.booking_id == booking_id,
                Payment.status == PaymentGatewayStatus.CAPTURED,
            )
        ).scalars().first()

        if payment is None:
            raise NotFoundException("Payment", booking_id, message="Payment not found for refund")

        refund_amount = Decimal(str(refund_amount))
        if refund_amount <= 0 or refund_amount > payment.amount:
            raise BadRequestException(
                "Refund amount must be greater than zero and not exceed the captured amount",
                details={"captured_amount": str(payment.amount), "refund_amount": str(refund_amount)},
            )

        booking = self.session.get(Booking, booking_id)
        service_id, provider_id = booking.service_id, booking.provider_id

        try:
            with transactional_scope(self.session) as tx:
                result = tx.execute(
                    update(Payment)
                    .where(Payment.id == payment.id, Payment.status == PaymentGatewayStatus.CAPTURED)
                    .values(
                        status=PaymentGatewayStatus.REFUNDED,
                        refund_amount=refund_amount,
                        refund_reason=reason,
                        refund_id=refund_id,
                    )
                )
                if result.rowcount == 0:
                    raise ConflictException(
                        "Payment has already been refunded",
                        details={"payment_id": str(payment.id)},
                    )

                result = tx.execute(
                    update(Booking)
                    .where(
                        Booking.id == booking_id,
                        Booking.payment_status == PaymentStatus.PAID,
                        Booking.status.in_(REFUNDABLE_BOOKING_STATUSES),
                    )
                    .values(payment_status=PaymentStatus.REFUNDED, status=BookingStatus.REFUNDED)
                )
                if result.rowcount == 0:
                    raise ConflictException(
                        "Booking cannot be refunded in its current state",
                        details={"booking_id": str(booking_id), "status": booking.status.value},
                    )

                self._increment_service_bookings(tx, service_id, -1)
                self._adjust_provider_stats(tx, provider_id, -refund_amount, -1)
        except AppException:
            raise
        except SQLAlchemyError as e:
            log_with_context(
                logger, "error", "Refund transaction rolled back",
                payment_id=payment.id, booking_id=booking_id, error=e,
            )
            raise InternalServerException(
                "Refund failed",
                details={"booking_id": str(booking_id)},
            ) from e

        self.session.refresh(payment)
        self.metrics.increment_payments("refunded")
        self.metrics.add_amount("refunded", refund_amount)
        log_with_context(
            logger, "info", "Refund processed",
            payment_id=payment.id, booking_id=booking_id, refund_amount=refund_amount, reason=reason,
        )
        return payment
