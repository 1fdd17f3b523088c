"""
Midtrans payment API routes.

- POST /api/midtrans/token: create a pending transaction and a Snap token
- POST /api/midtrans/notification: Midtrans webhook (unauthenticated, verified via the SDK)
- POST /api/midtrans/verify: client-initiated status check after checkout
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from beatly.core.auth import AuthenticatedUser, get_current_user
from beatly.core.errors import UpstreamError
from beatly.features.billing.service import (
    handle_notification,
    initiate_checkout,
    verify_transaction,
)

logger = logging.getLogger("beatly.api.midtrans")

router = APIRouter(prefix="/api/midtrans", tags=["midtrans"])


class TokenRequest(BaseModel):
    """Request to start checkout for a plan."""
    planId: str = Field(..., min_length=1)
    price: int


class TokenResponse(BaseModel):
    token: str
    transactionId: str
    redirectUrl: Optional[str] = None  # hosted Snap page, for clients without snap.js


class NotificationResponse(BaseModel):
    status: str


class VerifyRequest(BaseModel):
    transactionId: str = Field(..., min_length=1)


class VerifyResponse(BaseModel):
    status: str
    transactionStatus: str
    plan: Optional[str] = None
    message: str


@router.post("/token", response_model=TokenResponse)
def create_token(request: TokenRequest, user: AuthenticatedUser = Depends(get_current_user)):
    """
    Start Midtrans Snap checkout.

    Returns:
        {"token": "<snap token>", "transactionId": "<order id>", "redirectUrl": "<snap page>"}

    Errors:
        400: price does not match the plan, or free plan
        404: unknown plan
        500: gateway or database failure
    """
    try:
        checkout = initiate_checkout(user, request.planId, request.price)
    except SQLAlchemyError:
        logger.exception(f"[midtrans] checkout failed for user {user.user_id}")
        raise UpstreamError("Failed to create transaction")
    return {
        "token": checkout.token,
        "transactionId": checkout.transaction_id,
        "redirectUrl": checkout.redirect_url,
    }


@router.post("/notification", response_model=NotificationResponse)
def notification(payload: Dict[str, Any] = Body(...)):
    """
    Handle Midtrans payment notifications.

    Duplicate deliveries are safe. Any 5xx makes Midtrans retry delivery,
    which is the recovery path for transient store failures.
    """
    try:
        handle_notification(payload)
    except SQLAlchemyError:
        logger.exception("[midtrans] database error while handling notification")
        raise UpstreamError("Database error")
    return {"status": "OK"}


@router.post("/verify", response_model=VerifyResponse, response_model_exclude_none=True)
def verify(request: VerifyRequest, user: AuthenticatedUser = Depends(get_current_user)):
    """
    Re-check a transaction with Midtrans and apply the result.

    Returns:
        {"status": "success" | "pending" | "failed", "transactionStatus": str, "plan"?: str, "message": str}
    """
    try:
        result = verify_transaction(user.user_id, request.transactionId)
    except SQLAlchemyError:
        logger.exception(f"[midtrans] verify failed for transaction {request.transactionId}")
        raise UpstreamError("Failed to verify transaction")
    return {
        "status": result.status,
        "transactionStatus": result.transaction_status,
        "plan": result.plan,
        "message": result.message,
    }
