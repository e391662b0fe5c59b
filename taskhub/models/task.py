"""Tasks, task submissions and the certificates they award"""

from sqlalchemy import Column, String, Integer, Boolean, Text, ForeignKey, Index, Enum, JSON
from sqlalchemy.orm import relationship

from .base import BaseModel, CreatedAtModel, TimestampedModel, UUIDModel, UTCDateTime, utcnow
from .enums import SubmissionStatus, TaskStatus


class Task(BaseModel, UUIDModel, TimestampedModel):
    """Rewardable task published by an admin"""

    __tablename__ = "tasks"

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    points = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    requirements = Column(JSON, default=list, nullable=False)  # ordered list of strings
    deadline = Column(UTCDateTime(), nullable=True)
    category = Column(String(100), nullable=True)
    proof_required = Column(Boolean, default=True, nullable=False)
    created_by = Column(String(36), ForeignKey("admins.id"), nullable=True)
    status = Column(String(20), default=TaskStatus.ACTIVE.value, nullable=False)

    # Relationships
    creator = relationship("Admin", back_populates="created_tasks")
    submissions = relationship("TaskSubmission", back_populates="task")

    __table_args__ = (
        Index("idx_tasks_status_active", "status", "is_active"),
    )


class TaskSubmission(BaseModel, UUIDModel, TimestampedModel):
    """Proof a user submitted for a task"""

    __tablename__ = "task_submissions"

    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    task_id = Column(String(36), ForeignKey("tasks.id"), nullable=False)
    status = Column(
        Enum(SubmissionStatus, name="submission_status"),
        default=SubmissionStatus.PENDING,
        nullable=False
    )
    proof_url = Column(Text, nullable=True)
    admin_comment = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Relationships
    user = relationship("User", back_populates="submissions")
    task = relationship("Task", back_populates="submissions")

    __table_args__ = (
        Index("idx_task_submissions_user", "user_id"),
        Index("idx_task_submissions_task_status", "task_id", "status"),
    )


class Certificate(BaseModel, UUIDModel, CreatedAtModel):
    """Course completion certificate"""

    __tablename__ = "certificates"

    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    course_name = Column(String(255), nullable=False)
    issue_date = Column(UTCDateTime(), default=utcnow, nullable=False)
    pdf_url = Column(Text, nullable=False)
    access_code = Column(String(100), unique=True, nullable=False)

    # Relationships
    user = relationship("User", back_populates="certificates")

    __table_args__ = (
        Index("idx_certificates_user", "user_id"),
    )
