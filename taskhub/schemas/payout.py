"""Redeem request and payout create payloads"""

from typing import Optional
from datetime import datetime
from pydantic import Field

from taskhub.models.enums import RedeemStatus, PayoutStatus
from .base import TimestampedCreateSchema


class RedeemRequestCreate(TimestampedCreateSchema):
    user_id: str
    amount: int
    status: RedeemStatus = RedeemStatus.PENDING
    admin_note: Optional[str] = None


class PayoutCreate(TimestampedCreateSchema):
    user_id: str
    redeem_request_id: str
    amount: float
    currency: str = Field("USD", max_length=10)
    status: PayoutStatus = PayoutStatus.PENDING
    transaction_id: Optional[str] = Field(None, max_length=255)
    gateway: Optional[str] = Field(None, max_length=50)
    processed_at: Optional[datetime] = None
