"""Base models and mixins for database models"""

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import DeclarativeBase, declared_attr
from sqlalchemy.types import TypeDecorator
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import enum
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always round-trips as UTC

    SQLite drops tzinfo on storage, so naive values read back are UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# Create declarative base
class Base(DeclarativeBase):
    pass


class UUIDModel:
    """Mixin for adding a string UUID primary key"""

    @declared_attr
    def id(cls):
        return Column(
            String(36),
            primary_key=True,
            default=new_id,
            nullable=False
        )


class CreatedAtModel:
    """Mixin for adding a created_at timestamp"""

    @declared_attr
    def created_at(cls):
        return Column(
            UTCDateTime(),
            nullable=False,
            default=utcnow,
            index=True
        )


class TimestampedModel(CreatedAtModel):
    """Mixin for adding created_at and updated_at timestamps"""

    @declared_attr
    def updated_at(cls):
        return Column(
            UTCDateTime(),
            nullable=False,
            default=utcnow,
            onupdate=utcnow
        )


class BaseModel(Base):
    """Abstract base model with common functionality"""

    __abstract__ = True

    def to_dict(self, exclude: Optional[list] = None) -> Dict[str, Any]:
        """Convert model instance to dictionary keyed by attribute name"""
        exclude = exclude or []
        result = {}

        for attr in self.__mapper__.column_attrs:
            if attr.key not in exclude:
                value = getattr(self, attr.key)

                # Enums are stored and returned by their literal value
                if isinstance(value, enum.Enum):
                    value = value.value

                result[attr.key] = value

        return result

    def __repr__(self):
        """String representation"""
        class_name = self.__class__.__name__
        attributes = []

        for column in self.__table__.columns:
            if column.primary_key:
                value = getattr(self, column.key)
                attributes.append(f"{column.key}={value!r}")

        return f"<{class_name}({', '.join(attributes)})>"


__all__ = [
    'Base',
    'BaseModel',
    'UTCDateTime',
    'UUIDModel',
    'CreatedAtModel',
    'TimestampedModel',
    'utcnow',
    'new_id',
]
