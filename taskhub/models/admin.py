"""Admin accounts and the audit trail they produce"""

from sqlalchemy import Column, String, Text, ForeignKey, Index
from sqlalchemy.orm import relationship

from .base import BaseModel, CreatedAtModel, TimestampedModel, UUIDModel
from .enums import AdminRole


class Admin(BaseModel, UUIDModel, TimestampedModel):
    """Back-office administrator"""

    __tablename__ = "admins"

    email = Column(String(255), unique=True, nullable=False)
    password = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    role = Column(String(50), default=AdminRole.ADMIN.value, nullable=False)

    # Relationships
    audit_logs = relationship("AuditLog", back_populates="admin")
    created_tasks = relationship("Task", back_populates="creator")

    def __repr__(self):
        return f"<Admin {self.email}>"


class AuditLog(BaseModel, UUIDModel, CreatedAtModel):
    """Log all admin and system actions for audit trail"""

    __tablename__ = "audit_logs"

    admin_id = Column(String(36), ForeignKey("admins.id"), nullable=True)  # null for system entries
    action = Column(String(100), nullable=False)  # APPROVE_TASK, COMPLETE_PAYOUT, etc.
    entity_id = Column(String(200), nullable=False)
    entity_type = Column(String(50), nullable=False)  # TASK, TASK_SUBMISSION, REDEEM_REQUEST, PAYOUT
    details = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)

    # Relationships
    admin = relationship("Admin", back_populates="audit_logs")

    __table_args__ = (
        Index("idx_audit_logs_entity", "entity_type", "entity_id"),
        Index("idx_audit_logs_admin", "admin_id"),
    )
