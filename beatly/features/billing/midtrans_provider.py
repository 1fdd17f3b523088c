"""
Midtrans payment gateway implementation.

Implements the PaymentGateway protocol with the official `midtransclient`
SDK: Snap for checkout tokens and notification verification, Core API for
live status lookups.
"""
from typing import Dict, Any, Optional

import midtransclient
import requests
from midtransclient.error_midtrans import JSONDecodeError as MidtransJSONDecodeError, MidtransAPIError

from beatly.core.config import settings
from beatly.features.billing.provider import (
    CheckoutToken,
    GatewayStatus,
    PaymentGatewayError,
    PaymentNotificationError,
)


class MidtransProvider:
    """Midtrans implementation of PaymentGateway protocol."""

    def __init__(
        self,
        server_key: Optional[str] = None,
        client_key: Optional[str] = None,
        is_production: Optional[bool] = None,
    ):
        """
        Initialize Midtrans clients.

        Args:
            server_key: Midtrans server key (defaults to MIDTRANS_SERVER_KEY)
            client_key: Midtrans client key (defaults to MIDTRANS_CLIENT_KEY)
            is_production: Use the production environment (defaults to MIDTRANS_IS_PRODUCTION)
        """
        self.server_key = server_key or settings.MIDTRANS_SERVER_KEY
        self.client_key = client_key or settings.MIDTRANS_CLIENT_KEY
        self.is_production = settings.MIDTRANS_IS_PRODUCTION if is_production is None else is_production

        if not self.server_key:
            raise PaymentGatewayError("MIDTRANS_SERVER_KEY not configured")

        self.snap = midtransclient.Snap(
            is_production=self.is_production,
            server_key=self.server_key,
            client_key=self.client_key,
        )
        self.core = midtransclient.CoreApi(
            is_production=self.is_production,
            server_key=self.server_key,
            client_key=self.client_key,
        )

    def create_checkout_token(
        self,
        order_id: str,
        gross_amount: int,
        customer_email: Optional[str],
        finish_url: str,
    ) -> CheckoutToken:
        """Create a Snap transaction and return its token."""
        parameter: Dict[str, Any] = {
            "transaction_details": {
                "order_id": order_id,
                "gross_amount": gross_amount,
            },
            "callbacks": {"finish": finish_url},
        }
        if customer_email:
            parameter["customer_details"] = {"email": customer_email}

        try:
            response = self.snap.create_transaction(parameter)
        except MidtransAPIError as e:
            raise PaymentGatewayError(f"Midtrans Snap token creation failed: {e.message}")
        except requests.RequestException as e:
            raise PaymentGatewayError(f"Midtrans unreachable: {e}")
        except MidtransJSONDecodeError as e:
            raise PaymentGatewayError(f"Midtrans returned a non-JSON response: {e}")

        token = response.get("token")
        if not token:
            raise PaymentGatewayError("Midtrans Snap response did not include a token")
        return CheckoutToken(token=token, redirect_url=response.get("redirect_url"))

    def verify_notification(self, payload: Dict[str, Any]) -> GatewayStatus:
        """Re-fetch the notified transaction from Midtrans and parse it."""
        if not isinstance(payload, dict) or not payload.get("transaction_id"):
            raise PaymentNotificationError("Notification payload missing transaction_id")

        try:
            response = self.snap.transactions.notification(payload)
        except MidtransAPIError as e:
            raise PaymentGatewayError(f"Midtrans notification verification failed: {e.message}")
        except requests.RequestException as e:
            raise PaymentGatewayError(f"Midtrans unreachable: {e}")
        except MidtransJSONDecodeError as e:
            raise PaymentGatewayError(f"Midtrans returned a non-JSON response: {e}")

        return self._parse_status(response)

    def get_status(self, order_id: str) -> GatewayStatus:
        """Query Core API for the live status of an order."""
        try:
            response = self.core.transactions.status(order_id)
        except MidtransAPIError as e:
            raise PaymentGatewayError(f"Midtrans status check failed: {e.message}")
        except requests.RequestException as e:
            raise PaymentGatewayError(f"Midtrans unreachable: {e}")
        except MidtransJSONDecodeError as e:
            raise PaymentGatewayError(f"Midtrans returned a non-JSON response: {e}")

        return self._parse_status(response)

    def _parse_status(self, response: Dict[str, Any]) -> GatewayStatus:
        """Normalize a Midtrans status response."""
        order_id = response.get("order_id")
        transaction_status = response.get("transaction_status")
        if not order_id or not transaction_status:
            raise PaymentNotificationError("Midtrans status response missing order_id or transaction_status")

        return GatewayStatus(
            order_id=str(order_id),
            transaction_status=str(transaction_status),
            fraud_status=response.get("fraud_status"),
            payment_type=response.get("payment_type"),
            gross_amount=response.get("gross_amount"),
            raw=dict(response),
        )
