"""
Payment gateway protocol.

Defines the interface the reconciler needs from a payment gateway
(Midtrans today). Business logic depends only on this module, so the
gateway can be swapped or faked without touching the ledger.
"""
from typing import Protocol, Dict, Any, Optional
from dataclasses import dataclass, field


@dataclass
class GatewayStatus:
    """Authoritative status of one order as reported by the gateway."""
    order_id: str
    transaction_status: str
    fraud_status: Optional[str] = None
    payment_type: Optional[str] = None
    gross_amount: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CheckoutToken:
    """Hosted checkout session handed to the browser."""
    token: str
    redirect_url: Optional[str] = None


class PaymentGateway(Protocol):
    """
    Protocol for payment gateways.

    Implementations must handle:
    - Checkout session (Snap token) creation keyed by our order id
    - Notification verification (never trust the pushed payload as-is)
    - Live status lookup for the client-initiated verify path
    """

    def create_checkout_token(
        self,
        order_id: str,
        gross_amount: int,
        customer_email: Optional[str],
        finish_url: str,
    ) -> CheckoutToken:
        """
        Create a checkout session for one order.

        Raises:
            PaymentGatewayError: If the gateway rejects the request or is unreachable
        """
        ...

    def verify_notification(self, payload: Dict[str, Any]) -> GatewayStatus:
        """
        Verify a pushed notification and return the authoritative status.

        Raises:
            PaymentNotificationError: If the payload is malformed
            PaymentGatewayError: If the gateway cannot be reached
        """
        ...

    def get_status(self, order_id: str) -> GatewayStatus:
        """
        Query the live status of an order.

        Raises:
            PaymentGatewayError: If the gateway cannot be reached or does not know the order
        """
        ...


class PaymentGatewayError(Exception):
    """Base exception for payment gateway errors."""
    pass


class PaymentNotificationError(PaymentGatewayError):
    """Exception for malformed gateway notifications."""
    pass
