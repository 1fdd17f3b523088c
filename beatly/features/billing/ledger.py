"""
Transaction ledger.

Owns the `transactions` table: creates pending payment attempts and moves
them through a small state machine.

    pending   -> success | challenge | failed
    challenge -> success | failed      (fraud review outcome)
    failed    -> success               (retried payment on the same order)
    success                            (terminal)

Every status write is a guarded conditional UPDATE (`WHERE status IN
<allowed predecessors>`), so the webhook and verify paths can race on the
same row and `success` can never be downgraded.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, FrozenSet
from sqlalchemy import select, insert, update, and_
from sqlalchemy.orm import Session

from beatly.core.clock import utc_now, as_utc
from beatly.core.database import get_db_session, transactions
from beatly.core.errors import NotFoundError, ValidationError
from beatly.core.logging import log_event
from beatly.models.transaction import Transaction, TransactionStatus

logger = logging.getLogger("beatly.billing.ledger")

ALLOWED_TRANSITIONS: Dict[TransactionStatus, FrozenSet[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset(
        {TransactionStatus.SUCCESS, TransactionStatus.CHALLENGE, TransactionStatus.FAILED}
    ),
    TransactionStatus.CHALLENGE: frozenset({TransactionStatus.SUCCESS, TransactionStatus.FAILED}),
    TransactionStatus.SUCCESS: frozenset(),
    TransactionStatus.FAILED: frozenset({TransactionStatus.SUCCESS}),
}


@dataclass(frozen=True)
class TransitionResult:
    transaction: Transaction
    changed: bool  # True only for the call that performed the transition


def map_gateway_status(transaction_status: Optional[str], fraud_status: Optional[str] = None) -> Optional[TransactionStatus]:
    """
    Translate Midtrans vocabulary to ledger status.

    Returns None for values that must leave the ledger untouched (including
    `capture` with a fraud status other than accept/challenge).
    """
    if transaction_status == "capture":
        if fraud_status == "accept":
            return TransactionStatus.SUCCESS
        if fraud_status == "challenge":
            return TransactionStatus.CHALLENGE
        return None
    if transaction_status == "settlement":
        return TransactionStatus.SUCCESS
    if transaction_status in ("cancel", "deny", "expire"):
        return TransactionStatus.FAILED
    if transaction_status == "pending":
        return TransactionStatus.PENDING
    return None


def _row_to_transaction(row) -> Transaction:
    return Transaction(
        id=row.id,
        user_id=row.user_id,
        plan_id=row.plan_id,
        amount=row.amount,
        status=TransactionStatus(row.status),
        snap_token=row.snap_token,
        gateway_status=row.gateway_status,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def create_pending(user_id: str, plan_id: str, amount: int, now: Optional[datetime] = None) -> Transaction:
    """Insert a pending transaction. Its id is used as the gateway order id."""
    now = now or utc_now()
    transaction_id = str(uuid.uuid4())
    with get_db_session() as session:
        session.execute(
            insert(transactions).values(
                id=transaction_id,
                user_id=user_id,
                plan_id=plan_id,
                amount=amount,
                status=TransactionStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
        )
        created = get_transaction(transaction_id, session=session)

    log_event(
        "info",
        "transaction.created",
        user_id=user_id,
        transaction_id=transaction_id,
        event_type="transaction.created",
        extra={"plan_id": plan_id, "amount": amount},
    )
    return created


def attach_snap_token(transaction_id: str, snap_token: str) -> None:
    with get_db_session() as session:
        session.execute(
            update(transactions)
            .where(transactions.c.id == transaction_id)
            .values(snap_token=snap_token, updated_at=utc_now())
        )


def get_transaction(
    transaction_id: str,
    user_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> Optional[Transaction]:
    """Fetch a transaction; with `user_id`, only if that user owns it."""
    if session is None:
        with get_db_session() as own_session:
            return get_transaction(transaction_id, user_id=user_id, session=own_session)

    query = select(transactions).where(transactions.c.id == transaction_id)
    if user_id is not None:
        query = query.where(transactions.c.user_id == user_id)
    row = session.execute(query).first()
    return _row_to_transaction(row) if row else None


def mark_terminal(
    transaction_id: str,
    status: TransactionStatus,
    gateway_status: Optional[str] = None,
    session: Optional[Session] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """
    Move a transaction to `status` if the state machine allows it.

    Idempotent: repeating the current status is a no-op, and a disallowed
    transition (e.g. success -> failed) leaves the row unchanged.

    Raises:
        NotFoundError: transaction does not exist
        ValidationError: `status` is pending (not a terminal status)
    """
    if session is None:
        with get_db_session() as own_session:
            return mark_terminal(transaction_id, status, gateway_status, session=own_session, now=now)

    target = TransactionStatus(status)
    if target == TransactionStatus.PENDING:
        raise ValidationError("pending is not a terminal transaction status")

    current = get_transaction(transaction_id, session=session)
    if not current:
        raise NotFoundError(f"Transaction {transaction_id} not found")

    if current.status == target:
        return TransitionResult(transaction=current, changed=False)

    predecessors = [source.value for source, targets in ALLOWED_TRANSITIONS.items() if target in targets]
    if current.status.value not in predecessors:
        logger.warning(
            f"[ledger] refused transition {current.status.value} -> {target.value} for transaction {transaction_id}"
        )
        return TransitionResult(transaction=current, changed=False)

    result = session.execute(
        update(transactions)
        .where(
            and_(
                transactions.c.id == transaction_id,
                transactions.c.status.in_(predecessors),
            )
        )
        .values(status=target.value, gateway_status=gateway_status, updated_at=now or utc_now())
    )
    updated = get_transaction(transaction_id, session=session)
    if not result.rowcount:
        # Another writer moved the row between our read and the guarded update
        return TransitionResult(transaction=updated, changed=False)

    log_event(
        "info",
        "transaction.status_changed",
        user_id=updated.user_id,
        transaction_id=transaction_id,
        event_type="transaction.status_changed",
        extra={"from": current.status.value, "to": target.value, "gateway_status": gateway_status},
    )
    return TransitionResult(transaction=updated, changed=True)
