"""
Razorpay payment gateway client.

The workflow only needs two capabilities from the gateway: creating an order
for an amount and verifying the signature Razorpay attaches to the checkout
callback. Both are expressed by the PaymentGateway protocol so tests can
substitute a fake.
"""
import hashlib
import hmac
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Protocol

import razorpay

from servicehub.lib.logging import get_logger
from servicehub.lib.settings import settings

logger = get_logger(__name__)


class PaymentGatewayError(Exception):
    """Raised when the gateway rejects or fails an order request."""


class PaymentGateway(Protocol):
    def create_order(self, amount_minor_units: int, currency: str, receipt: str) -> dict:
        ...

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        ...


def to_minor_units(amount: Decimal) -> int:
    """Convert a rupee amount to paise (Razorpay requires the smallest currency unit)."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_receipt(booking_id) -> str:
    """
    Receipt id for a booking order.

    Format: bk_<last 8 of booking id>_<last 8 of epoch millis>. Razorpay caps
    receipts at 40 characters.
    """
    booking_part = str(booking_id).replace("-", "")[-8:]
    millis = str(int(datetime.now(timezone.utc).timestamp() * 1000))
    return f"bk_{booking_part}_{millis[-8:]}"


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    """Hex HMAC-SHA256 of ``order_id|payment_id`` keyed by the gateway secret."""
    message = f"{order_id}|{payment_id}"
    return hmac.new(
        secret.encode('utf-8'),
        message.encode('utf-8'),
        hashlib.sha256
    ).hexdigest()


class RazorpayGateway:
    """PaymentGateway backed by the Razorpay SDK."""

    def __init__(self, key_id: str, key_secret: str):
        self.key_secret = key_secret
        self.client = razorpay.Client(auth=(key_id, key_secret))

    def create_order(self, amount_minor_units: int, currency: str, receipt: str) -> dict:
        """
        Create a Razorpay order.

        Args:
            amount_minor_units: Amount in paise
            currency: Currency code
            receipt: Receipt id (<= 40 chars)

        Returns:
            dict: Razorpay order object with id, amount, currency, etc.

        Raises:
            PaymentGatewayError: If Razorpay rejects the request or is unreachable
        """
        order_data = {
            'amount': amount_minor_units,
            'currency': currency,
            'receipt': receipt,
            'payment_capture': 1,
        }

        logger.info("Creating Razorpay order", extra={"receipt": receipt, "amount": amount_minor_units})
        try:
            order = self.client.order.create(data=order_data)
        except Exception as e:
            # The SDK raises its own error hierarchy plus requests exceptions
            logger.error(f"Razorpay order creation failed: {e}", extra={"receipt": receipt})
            raise PaymentGatewayError(str(e)) from e

        logger.info("Razorpay order created", extra={"order_id": order.get("id"), "receipt": receipt})
        return order

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """
        Verify Razorpay payment signature.

        Returns:
            bool: True if signature is valid, False otherwise
        """
        if not (order_id and payment_id and signature):
            return False

        expected = compute_signature(self.key_secret, order_id, payment_id)
        is_valid = hmac.compare_digest(expected, signature)

        logger.info(f"Payment signature verification: {is_valid}", extra={"order_id": order_id})
        return is_valid


_gateway: Optional[RazorpayGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """
    Process-wide Razorpay gateway built from settings.

    Used as a FastAPI dependency; tests override it with a fake.
    """
    global _gateway
    if _gateway is None:
        _gateway = RazorpayGateway(settings.razorpay_key_id, settings.razorpay_key_secret)
    return _gateway
