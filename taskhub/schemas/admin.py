"""Admin and audit log create payloads"""

from typing import Optional
from datetime import datetime
from pydantic import EmailStr, Field, field_validator

from .base import CreateSchema, TimestampedCreateSchema, keep_as_written


class AdminCreate(TimestampedCreateSchema):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=255)
    name: Optional[str] = Field(None, max_length=255)
    role: str = Field("ADMIN", max_length=50)

    @field_validator("email", mode="wrap")
    @classmethod
    def email_as_written(cls, value, handler):
        return keep_as_written(value, handler)


class AuditLogCreate(CreateSchema):
    admin_id: Optional[str] = None
    action: str = Field(..., max_length=100)
    entity_id: str = Field(..., max_length=200)
    entity_type: str = Field(..., max_length=50)
    details: Optional[str] = None
    ip_address: Optional[str] = Field(None, max_length=45)
    created_at: Optional[datetime] = None
