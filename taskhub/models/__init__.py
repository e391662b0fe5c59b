"""Models package initialization"""

from .base import Base, BaseModel
from .enums import SubmissionStatus, RedeemStatus, PayoutStatus, TaskStatus, AdminRole
from .user import User
from .admin import Admin, AuditLog
from .task import Task, TaskSubmission, Certificate
from .payout import RedeemRequest, Payout


# Export all models
__all__ = [
    "Base",
    "BaseModel",
    "User",
    "Admin",
    "AuditLog",
    "Task",
    "TaskSubmission",
    "Certificate",
    "RedeemRequest",
    "Payout",
    "SubmissionStatus",
    "RedeemStatus",
    "PayoutStatus",
    "TaskStatus",
    "AdminRole",
]
