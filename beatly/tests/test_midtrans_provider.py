"""MidtransProvider against a mocked midtransclient SDK."""
from unittest.mock import MagicMock, patch

import pytest
import requests
from midtransclient.error_midtrans import MidtransAPIError

from beatly.features.billing.midtrans_provider import MidtransProvider
from beatly.features.billing.provider import PaymentGatewayError, PaymentNotificationError


@pytest.fixture
def sdk():
    with patch("beatly.features.billing.midtrans_provider.midtransclient") as mocked:
        snap = MagicMock()
        core = MagicMock()
        mocked.Snap.return_value = snap
        mocked.CoreApi.return_value = core
        yield mocked, snap, core


def test_requires_server_key(sdk, monkeypatch):
    from beatly.core.config import settings

    monkeypatch.setattr(settings, "MIDTRANS_SERVER_KEY", None)

    with pytest.raises(PaymentGatewayError):
        MidtransProvider()


def test_clients_use_configured_environment(sdk):
    mocked, _, _ = sdk

    MidtransProvider(server_key="SB-Mid-server-abc", client_key="SB-Mid-client-abc", is_production=True)

    mocked.Snap.assert_called_once_with(
        is_production=True, server_key="SB-Mid-server-abc", client_key="SB-Mid-client-abc"
    )
    mocked.CoreApi.assert_called_once_with(
        is_production=True, server_key="SB-Mid-server-abc", client_key="SB-Mid-client-abc"
    )


def test_create_checkout_token(sdk):
    _, snap, _ = sdk
    snap.create_transaction.return_value = {
        "token": "66e4fa55-fdac-4ef9-91b5-733b97d1b862",
        "redirect_url": "https://app.sandbox.midtrans.com/snap/v2/vtweb/66e4fa55",
    }

    checkout = MidtransProvider().create_checkout_token(
        order_id="order-1",
        gross_amount=25000,
        customer_email="alice@example.com",
        finish_url="http://localhost:3000/pricing?status=success",
    )

    assert checkout.token == "66e4fa55-fdac-4ef9-91b5-733b97d1b862"
    parameter = snap.create_transaction.call_args[0][0]
    assert parameter["transaction_details"] == {"order_id": "order-1", "gross_amount": 25000}
    assert parameter["customer_details"] == {"email": "alice@example.com"}
    assert parameter["callbacks"] == {"finish": "http://localhost:3000/pricing?status=success"}


def test_checkout_api_error(sdk):
    _, snap, _ = sdk
    snap.create_transaction.side_effect = MidtransAPIError(
        "Midtrans API is returning API error. HTTP status code: 401", http_status_code=401
    )

    with pytest.raises(PaymentGatewayError):
        MidtransProvider().create_checkout_token("order-1", 25000, None, "http://localhost:3000")


def test_checkout_network_error(sdk):
    _, snap, _ = sdk
    snap.create_transaction.side_effect = requests.ConnectionError("timed out")

    with pytest.raises(PaymentGatewayError):
        MidtransProvider().create_checkout_token("order-1", 25000, None, "http://localhost:3000")


def test_verify_notification_uses_gateway_status(sdk):
    _, snap, _ = sdk
    snap.transactions.notification.return_value = {
        "order_id": "order-1",
        "transaction_status": "settlement",
        "fraud_status": "accept",
        "payment_type": "qris",
        "gross_amount": "25000.00",
    }

    status = MidtransProvider().verify_notification(
        {"transaction_id": "mid-1", "order_id": "order-1", "transaction_status": "pending"}
    )

    assert status.order_id == "order-1"
    assert status.transaction_status == "settlement"
    assert status.fraud_status == "accept"
    assert status.payment_type == "qris"


def test_verify_notification_requires_transaction_id(sdk):
    _, snap, _ = sdk

    with pytest.raises(PaymentNotificationError):
        MidtransProvider().verify_notification({"order_id": "order-1"})
    snap.transactions.notification.assert_not_called()


def test_get_status(sdk):
    _, _, core = sdk
    core.transactions.status.return_value = {"order_id": "order-1", "transaction_status": "expire"}

    status = MidtransProvider().get_status("order-1")

    core.transactions.status.assert_called_once_with("order-1")
    assert status.transaction_status == "expire"
    assert status.fraud_status is None


def test_get_status_unknown_order(sdk):
    _, _, core = sdk
    core.transactions.status.side_effect = MidtransAPIError(
        "Midtrans API is returning API error. HTTP status code: 404", http_status_code=404
    )

    with pytest.raises(PaymentGatewayError):
        MidtransProvider().get_status("order-1")


def _html_response(status_code: int) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = b"<html>502 Bad Gateway</html>"
    response.headers["Content-Type"] = "text/html"
    return response


def test_get_status_non_json_response():
    with patch("requests.request", return_value=_html_response(502)):
        with pytest.raises(PaymentGatewayError):
            MidtransProvider().get_status("order-1")


def test_checkout_non_json_response():
    with patch("requests.request", return_value=_html_response(502)):
        with pytest.raises(PaymentGatewayError):
            MidtransProvider().create_checkout_token("order-1", 25000, None, "http://localhost:3000")


def test_verify_notification_non_json_response():
    with patch("requests.request", return_value=_html_response(502)):
        with pytest.raises(PaymentGatewayError):
            MidtransProvider().verify_notification({"transaction_id": "mid-1", "order_id": "order-1"})
