"""User create payloads"""

from typing import Optional
from pydantic import EmailStr, Field, field_validator

from .base import TimestampedCreateSchema, keep_as_written


class UserCreate(TimestampedCreateSchema):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=255)
    name: Optional[str] = Field(None, max_length=255)
    points: int = 0
    referral_code: str = Field(..., min_length=1, max_length=50)
    referred_by_code: Optional[str] = Field(None, max_length=50)

    @field_validator("email", mode="wrap")
    @classmethod
    def email_as_written(cls, value, handler):
        return keep_as_written(value, handler)
