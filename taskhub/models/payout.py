"""Point redemption requests and the payouts that settle them"""

from sqlalchemy import Column, String, Integer, Float, Text, ForeignKey, Index, Enum
from sqlalchemy.orm import relationship

from .base import BaseModel, TimestampedModel, UUIDModel, UTCDateTime
from .enums import RedeemStatus, PayoutStatus


class RedeemRequest(BaseModel, UUIDModel, TimestampedModel):
    """User request to convert points into money"""

    __tablename__ = "redeem_requests"

    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    amount = Column(Integer, nullable=False)  # points being redeemed
    status = Column(
        Enum(RedeemStatus, name="redeem_status"),
        default=RedeemStatus.PENDING,
        nullable=False
    )
    admin_note = Column(Text, nullable=True)

    # Relationships
    user = relationship("User", back_populates="redeem_requests")
    payout = relationship("Payout", back_populates="redeem_request", uselist=False)

    __table_args__ = (
        Index("idx_redeem_requests_user_status", "user_id", "status"),
    )


class Payout(BaseModel, UUIDModel, TimestampedModel):
    """Payout records"""

    __tablename__ = "payouts"

    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    redeem_request_id = Column(String(36), ForeignKey("redeem_requests.id"), unique=True, nullable=False)

    # Payout details
    amount = Column(Float, nullable=False)
    currency = Column(String(10), default="USD", nullable=False)

    # Status
    status = Column(
        Enum(PayoutStatus, name="payout_status"),
        default=PayoutStatus.PENDING,
        nullable=False
    )

    # Transaction details
    transaction_id = Column(String(255), nullable=True)
    gateway = Column(String(50), nullable=True)  # MANUAL, provider name
    processed_at = Column(UTCDateTime(), nullable=True)

    # Relationships
    user = relationship("User", back_populates="payouts")
    redeem_request = relationship("RedeemRequest", back_populates="payout")

    __table_args__ = (
        Index("idx_payouts_user_status", "user_id", "status"),
    )
