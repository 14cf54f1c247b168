"""
Booking model - a reservation of one service by one customer from one provider.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4, UUID
import enum
import re

from sqlalchemy import String, Numeric, DateTime, ForeignKey, Uuid, Enum as SQLEnum, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from servicehub.lib.db import Base


PINCODE_PATTERN = re.compile(r"^[1-9][0-9]{5}$")


class BookingStatus(str, enum.Enum):
    """
    Booking status state machine.

    pending -> confirmed -> in_progress -> completed
    pending|confirmed -> cancelled
    confirmed -> refunded
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


TERMINAL_BOOKING_STATUSES = frozenset({
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.REFUNDED,
})

CANCELLABLE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class PaymentStatus(str, enum.Enum):
    """Payment status of a booking."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class Booking(Base):
    """
    Booking entity.

    Fees are a snapshot taken at creation: total_amount = service_fee +
    platform_fee and none of them is recomputed when the service price changes.
    Customer, provider and service references never change after insert.
    Bookings are never deleted.
    """
    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    # References
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
    service_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("services.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Scheduling
    booking_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    time_slot: Mapped[str] = mapped_column(String(50), nullable=False)

    # Status
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus, name="booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="booking_payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )

    # Fee snapshot
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    service_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Address
    address_street: Mapped[str] = mapped_column(String(255), nullable=False)
    address_city: Mapped[str] = mapped_column(String(100), nullable=False)
    address_state: Mapped[str] = mapped_column(String(100), nullable=False)
    address_pincode: Mapped[str] = mapped_column(String(6), nullable=False)
    address_landmark: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Notes
    customer_notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    provider_notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Lifecycle
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    customer = relationship("User", foreign_keys=[customer_id], lazy="joined")
    provider = relationship("User", foreign_keys=[provider_id], lazy="joined")
    service = relationship("Service", lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "total_amount = service_fee + platform_fee",
            name="booking_total_matches_fees",
        ),
        CheckConstraint(
            "service_fee >= 0 AND platform_fee >= 0",
            name="booking_fees_non_negative",
        ),
        CheckConstraint(
            "length(address_pincode) = 6",
            name="booking_pincode_length",
        ),
    )

    @validates("customer_id", "provider_id", "service_id")
    def _validate_reference(self, key, value):
        current = getattr(self, key)
        if current is not None and current != value:
            raise ValueError(f"{key} cannot be changed once the booking exists")
        return value

    @validates("address_pincode")
    def _validate_pincode(self, key, value):
        if not PINCODE_PATTERN.match(value or ""):
            raise ValueError("Please provide a valid pincode")
        return value

    @property
    def address(self) -> dict:
        return {
            "street": self.address_street,
            "city": self.address_city,
            "state": self.address_state,
            "pincode": self.address_pincode,
            "landmark": self.address_landmark,
        }

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_BOOKING_STATUSES

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status={self.status}, payment_status={self.payment_status})>"
