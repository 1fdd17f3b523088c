"""
Billing service orchestrator.

Coordinates:
- Checkout initiation (pending transaction + Snap token)
- Webhook reconciliation (gateway push)
- Verify reconciliation (client-initiated poll)
- Subscription promotion on confirmed payment

Both reconciliation paths funnel into `apply_gateway_status`, which marks the
ledger and promotes the subscription in one database transaction. Promotion
runs only for the call that actually moved the transaction to success, so
duplicate webhooks and webhook/verify races promote exactly once.

All Midtrans-specific code is in midtrans_provider.py.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any

from beatly.core.auth import AuthenticatedUser
from beatly.core.clock import utc_now
from beatly.core.config import settings
from beatly.core.database import get_db_session
from beatly.core.errors import GatewayError, NotFoundError, ValidationError
from beatly.core.logging import log_event
from beatly.features.billing.ledger import (
    attach_snap_token,
    create_pending,
    get_transaction,
    map_gateway_status,
    mark_terminal,
)
from beatly.features.billing.midtrans_provider import MidtransProvider
from beatly.features.billing.provider import (
    GatewayStatus,
    PaymentGateway,
    PaymentGatewayError,
    PaymentNotificationError,
)
from beatly.features.plans.service import get_plan
from beatly.features.subscriptions.service import promote_subscription
from beatly.models.transaction import Transaction, TransactionStatus

logger = logging.getLogger("beatly.billing")


@dataclass(frozen=True)
class CheckoutSession:
    token: str
    transaction_id: str
    redirect_url: Optional[str] = None


@dataclass(frozen=True)
class VerificationResult:
    status: str  # success | pending | failed
    transaction_status: str
    message: str
    plan: Optional[str] = None


def billing_enabled() -> bool:
    """Check if billing is enabled (Midtrans configured)."""
    return bool(settings.MIDTRANS_SERVER_KEY)


def get_provider() -> Optional[PaymentGateway]:
    """Get payment gateway if billing is enabled."""
    if not billing_enabled():
        return None
    try:
        return MidtransProvider()
    except PaymentGatewayError:
        logger.exception("[billing] failed to initialize Midtrans provider")
        return None


def checkout_finish_url() -> str:
    return f"{settings.APP_URL.rstrip('/')}/pricing?status=success"


def initiate_checkout(user: AuthenticatedUser, plan_id: str, amount: int) -> CheckoutSession:
    """
    Start a payment for `plan_id`.

    Creates the pending transaction first so its id can be the gateway order
    id, then stores the returned Snap token on it.

    Raises:
        NotFoundError: unknown plan
        ValidationError: free plan, non-positive amount or amount != plan price
        GatewayError: billing disabled or the gateway rejected the request
    """
    provider = get_provider()
    if not provider:
        raise GatewayError("Payment gateway is not configured")

    plan = get_plan(plan_id)
    if not plan:
        raise NotFoundError(f"Plan {plan_id} not found")
    if plan.is_free:
        raise ValidationError("The free plan cannot be purchased")
    if amount <= 0:
        raise ValidationError("Price must be a positive amount")
    if amount != plan.price:
        raise ValidationError(f"Price {amount} does not match the current price of plan {plan_id}")

    transaction = create_pending(user.user_id, plan.id, amount)

    try:
        checkout = provider.create_checkout_token(
            order_id=transaction.id,
            gross_amount=amount,
            customer_email=user.email,
            finish_url=checkout_finish_url(),
        )
    except PaymentGatewayError as e:
        log_event(
            "error",
            "checkout.gateway_failed",
            user_id=user.user_id,
            transaction_id=transaction.id,
            error_code="gateway_error",
            extra={"error": e},
        )
        raise GatewayError(str(e))

    attach_snap_token(transaction.id, checkout.token)
    return CheckoutSession(
        token=checkout.token,
        transaction_id=transaction.id,
        redirect_url=checkout.redirect_url,
    )


def apply_gateway_status(transaction_id: str, gateway_status: GatewayStatus, now: Optional[datetime] = None) -> Transaction:
    """
    Reconcile one transaction with the gateway's authoritative status.

    Raises:
        NotFoundError: unknown transaction (or its plan vanished)
    """
    now = now or utc_now()
    target = map_gateway_status(gateway_status.transaction_status, gateway_status.fraud_status)

    with get_db_session() as session:
        if target is None or target == TransactionStatus.PENDING:
            current = get_transaction(transaction_id, session=session)
            if not current:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            if target is None:
                log_event(
                    "warning",
                    "transaction.unmapped_gateway_status",
                    user_id=current.user_id,
                    transaction_id=transaction_id,
                    event_type="transaction.unmapped_gateway_status",
                    extra={
                        "transaction_status": gateway_status.transaction_status,
                        "fraud_status": gateway_status.fraud_status,
                    },
                )
            return current

        result = mark_terminal(
            transaction_id,
            target,
            gateway_status=gateway_status.transaction_status,
            session=session,
            now=now,
        )
        transaction = result.transaction

        if result.changed and transaction.is_success:
            plan = get_plan(transaction.plan_id, session=session)
            if not plan:
                raise NotFoundError(f"Plan {transaction.plan_id} not found")
            promote_subscription(session, transaction.user_id, plan, now)

        return transaction


def handle_notification(payload: Dict[str, Any], now: Optional[datetime] = None) -> Transaction:
    """
    Process a Midtrans webhook (idempotent).

    1. Verify the notification through the gateway
    2. Map status and mark the ledger
    3. Promote the subscription on the first success

    Raises:
        ValidationError: malformed notification payload
        GatewayError: billing disabled or gateway unreachable (caller returns 5xx so Midtrans retries)
        NotFoundError: order id does not match a transaction
    """
    provider = get_provider()
    if not provider:
        raise GatewayError("Payment gateway is not configured")

    try:
        status = provider.verify_notification(payload)
    except PaymentNotificationError as e:
        raise ValidationError(str(e))
    except PaymentGatewayError as e:
        raise GatewayError(str(e))

    logger.info(
        f"[billing] notification received order_id={status.order_id} "
        f"transaction_status={status.transaction_status} fraud_status={status.fraud_status}"
    )
    return apply_gateway_status(status.order_id, status, now)


def _status_message(transaction_status: str, transaction: Transaction) -> str:
    if transaction.status == TransactionStatus.SUCCESS:
        return "Payment successful!"
    if transaction.status == TransactionStatus.CHALLENGE:
        return "Payment is under fraud review"
    if transaction_status == "pending":
        return "Waiting for payment"
    if transaction_status == "expire":
        return "Payment expired"
    if transaction_status in ("cancel", "deny"):
        return "Payment cancelled"
    if transaction_status == "capture":
        return "Payment rejected by fraud detection"
    return f"Status: {transaction_status}"


def verify_transaction(user_id: str, transaction_id: str, now: Optional[datetime] = None) -> VerificationResult:
    """
    Client-initiated reconciliation after returning from checkout.

    Never trusts client-supplied status: asks the gateway directly. Success is
    reported only when the ledger row is success.

    Raises:
        NotFoundError: transaction missing or owned by another user
    """
    transaction = get_transaction(transaction_id, user_id=user_id)
    if not transaction:
        raise NotFoundError("Transaction not found")

    if transaction.is_success:
        return VerificationResult(
            status="success",
            transaction_status="settlement",
            plan=transaction.plan_id,
            message="Payment already completed",
        )

    provider = get_provider()
    try:
        if not provider:
            raise PaymentGatewayError("Payment gateway is not configured")
        gateway_status = provider.get_status(transaction_id)
    except PaymentGatewayError as e:
        logger.warning(f"[billing] status check failed for transaction {transaction_id}: {e}")
        return VerificationResult(
            status="pending",
            transaction_status="pending",
            message="Payment not received yet",
        )

    updated = apply_gateway_status(transaction_id, gateway_status, now)
    message = _status_message(gateway_status.transaction_status, updated)

    if updated.status == TransactionStatus.SUCCESS:
        return VerificationResult(
            status="success",
            transaction_status=gateway_status.transaction_status,
            plan=updated.plan_id,
            message=message,
        )
    if updated.status == TransactionStatus.FAILED:
        return VerificationResult(
            status="failed",
            transaction_status=gateway_status.transaction_status,
            message=message,
        )
    return VerificationResult(
        status="pending",
        transaction_status=gateway_status.transaction_status,
        message=message,
    )
