"""
beatly/models/transaction.py

Transaction model: one payment attempt, correlated 1:1 with a Midtrans order.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    CHALLENGE = "challenge"
    FAILED = "failed"


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    plan_id: str
    amount: int
    status: TransactionStatus
    snap_token: Optional[str] = None
    gateway_status: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_success(self) -> bool:
        return self.status == TransactionStatus.SUCCESS
