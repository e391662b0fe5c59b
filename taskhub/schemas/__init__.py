"""Create payload schemas, one per model"""

from .user import UserCreate
from .admin import AdminCreate, AuditLogCreate
from .task import TaskCreate, TaskSubmissionCreate, CertificateCreate
from .payout import RedeemRequestCreate, PayoutCreate

__all__ = [
    "UserCreate",
    "AdminCreate",
    "AuditLogCreate",
    "TaskCreate",
    "TaskSubmissionCreate",
    "CertificateCreate",
    "RedeemRequestCreate",
    "PayoutCreate",
]
