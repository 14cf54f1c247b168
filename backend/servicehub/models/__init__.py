"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from servicehub.models.users import User, UserRole
from servicehub.models.services import Service
from servicehub.models.bookings import Booking, BookingStatus, PaymentStatus
from servicehub.models.payments import Payment, PaymentMethod, PaymentGatewayStatus

__all__ = [
    "User",
    "UserRole",
    "Service",
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "Payment",
    "PaymentMethod",
    "PaymentGatewayStatus",
]
