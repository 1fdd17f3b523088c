"""Test doubles shared by the API and billing tests."""
import time
from typing import Any, Dict, Optional

import jwt

from beatly.features.billing.provider import CheckoutToken, GatewayStatus, PaymentGatewayError

TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"
TEST_ADMIN_PASSWORD = "let-me-in"


def make_token(
    user_id: str = "user_alice",
    email: Optional[str] = "alice@example.com",
    user_metadata: Optional[Dict[str, Any]] = None,
    expires_in: int = 3600,
    secret: str = TEST_JWT_SECRET,
    audience: str = "authenticated",
) -> str:
    now = int(time.time())
    payload = {
        "sub": user_id,
        "email": email,
        "aud": audience,
        "iat": now,
        "exp": now + expires_in,
        "user_metadata": user_metadata or {},
    }
    return jwt.encode(payload, secret, algorithm="HS256")


class FakeGateway:
    """In-memory PaymentGateway: statuses are set by the test, calls are recorded."""

    def __init__(self):
        self.statuses: Dict[str, GatewayStatus] = {}
        self.checkout_calls = []
        self.fail_status = False
        self.fail_checkout = False

    def set_status(self, order_id: str, transaction_status: str, fraud_status: Optional[str] = None):
        self.statuses[order_id] = GatewayStatus(
            order_id=order_id,
            transaction_status=transaction_status,
            fraud_status=fraud_status,
        )

    def create_checkout_token(self, order_id, gross_amount, customer_email, finish_url):
        if self.fail_checkout:
            raise PaymentGatewayError("Midtrans unreachable")
        self.checkout_calls.append(
            {
                "order_id": order_id,
                "gross_amount": gross_amount,
                "customer_email": customer_email,
                "finish_url": finish_url,
            }
        )
        return CheckoutToken(token=f"snap-{order_id}", redirect_url=f"https://app.sandbox.midtrans.com/snap/v2/vtweb/{order_id}")

    def verify_notification(self, payload):
        if self.fail_status:
            raise PaymentGatewayError("Midtrans unreachable")
        order_id = payload["order_id"]
        if order_id in self.statuses:
            return self.statuses[order_id]
        return GatewayStatus(
            order_id=order_id,
            transaction_status=payload["transaction_status"],
            fraud_status=payload.get("fraud_status"),
        )

    def get_status(self, order_id):
        if self.fail_status or order_id not in self.statuses:
            raise PaymentGatewayError("Midtrans unreachable")
        return self.statuses[order_id]
