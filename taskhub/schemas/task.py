"""Task, submission and certificate create payloads"""

from typing import List, Optional
from datetime import datetime
from pydantic import Field

from taskhub.models.enums import SubmissionStatus
from .base import CreateSchema, TimestampedCreateSchema


class TaskCreate(TimestampedCreateSchema):
    title: str = Field(..., max_length=200)
    description: str
    points: int
    is_active: bool = True
    requirements: List[str] = Field(default_factory=list)
    deadline: Optional[datetime] = None
    category: Optional[str] = Field(None, max_length=100)
    proof_required: bool = True
    created_by: Optional[str] = None
    status: str = Field("ACTIVE", max_length=20)


class TaskSubmissionCreate(TimestampedCreateSchema):
    user_id: str
    task_id: str
    status: SubmissionStatus = SubmissionStatus.PENDING
    proof_url: Optional[str] = None
    admin_comment: Optional[str] = None
    rejection_reason: Optional[str] = None


class CertificateCreate(CreateSchema):
    user_id: str
    course_name: str = Field(..., max_length=255)
    issue_date: Optional[datetime] = None
    pdf_url: str
    access_code: str = Field(..., max_length=100)
    created_at: Optional[datetime] = None
