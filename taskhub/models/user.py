"""
User model
Root aggregate for points, submissions, redemptions, payouts and certificates
"""

from sqlalchemy import Column, String, Integer, Index
from sqlalchemy.orm import relationship

from .base import BaseModel, TimestampedModel, UUIDModel


class User(BaseModel, UUIDModel, TimestampedModel):
    """Application user"""

    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False)
    password = Column(String(255), nullable=False)  # bcrypt hash
    name = Column(String(255), nullable=True)
    points = Column(Integer, default=0, nullable=False)

    # Referral
    referral_code = Column(String(50), unique=True, nullable=False)
    referred_by_code = Column(String(50), nullable=True)  # another user's referral_code, not a foreign key

    # Relationships
    referred_by = relationship(
        "User",
        primaryjoin="User.referred_by_code == User.referral_code",
        foreign_keys="User.referred_by_code",
        remote_side="User.referral_code",
        backref="referrals",
        uselist=False,
    )
    submissions = relationship("TaskSubmission", back_populates="user")
    redeem_requests = relationship("RedeemRequest", back_populates="user")
    payouts = relationship("Payout", back_populates="user")
    certificates = relationship("Certificate", back_populates="user")

    # Indexes
    __table_args__ = (
        Index("idx_users_referred_by_code", "referred_by_code"),
    )

    def __repr__(self):
        return f"<User {self.email}>"
