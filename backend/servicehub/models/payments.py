"""
Payment model - one attempt to collect money for exactly one booking.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Numeric, DateTime, ForeignKey, Uuid, JSON, Enum as SQLEnum, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.lib.db import Base


class PaymentMethod(str, enum.Enum):
    """How the customer pays."""
    RAZORPAY = "razorpay"
    WALLET = "wallet"
    COD = "cod"


class PaymentGatewayStatus(str, enum.Enum):
    """
    Gateway status state machine.

    created -> captured -> refunded
    created -> failed
    """
    CREATED = "created"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    REFUNDED = "refunded"
    FAILED = "failed"


# Statuses a gateway callback may still resolve
OPEN_PAYMENT_STATUSES = (PaymentGatewayStatus.CREATED, PaymentGatewayStatus.AUTHORIZED)


class Payment(Base):
    """
    Payment entity.

    Customer and provider ids are copies of the booking's references taken
    when the payment is created.
    """
    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    booking_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    provider_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod, name="payment_method"),
        nullable=False,
    )
    status: Mapped[PaymentGatewayStatus] = mapped_column(
        SQLEnum(PaymentGatewayStatus, name="payment_gateway_status"),
        nullable=False,
        default=PaymentGatewayStatus.CREATED,
        index=True,
    )

    # Gateway references
    gateway_order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    gateway_signature: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    gateway_response: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    failure_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Refund
    refund_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    refund_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    refund_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="payment_amount_non_negative"),
        CheckConstraint(
            "refund_amount IS NULL OR (refund_amount >= 0 AND refund_amount <= amount)",
            name="payment_refund_within_amount",
        ),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, booking_id={self.booking_id}, status={self.status})>"
