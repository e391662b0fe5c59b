"""Base schema for create payloads"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional
from datetime import datetime


class CreateSchema(BaseModel):
    """Create payload: unknown fields are rejected, enums are stored by value"""

    model_config = ConfigDict(extra="forbid", use_enum_values=True, str_strip_whitespace=False)

    id: Optional[str] = Field(None, max_length=36)


class TimestampedCreateSchema(CreateSchema):
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def keep_as_written(value: Any, handler) -> Any:
    """Validate with the field's type but store the value exactly as given

    EmailStr lower-cases the domain; stored addresses must match lookups
    made with the same string.
    """
    handler(value)
    return value
