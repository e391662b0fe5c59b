"""
Model metadata used to validate and compile queries
Built once per model from the SQLAlchemy mapper
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional, Set, Type
import enum

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import Boolean, Enum as SAEnum, Float, Integer, JSON, String, inspect
from sqlalchemy.orm import configure_mappers

from taskhub.core.exceptions import QueryValidationError
from taskhub.models import (
    User, Admin, Task, TaskSubmission, Certificate, RedeemRequest, Payout, AuditLog,
)
from taskhub.models.base import UTCDateTime
from taskhub.schemas import (
    UserCreate, AdminCreate, TaskCreate, TaskSubmissionCreate, CertificateCreate,
    RedeemRequestCreate, PayoutCreate, AuditLogCreate,
)
from taskhub.schemas.base import CreateSchema

NUMERIC_KINDS = {"int", "float"}
COMPARABLE_KINDS = {"int", "float", "string", "datetime", "enum"}


@dataclass
class FieldInfo:
    """One scalar column of a model"""

    name: str
    kind: str  # string, int, float, bool, datetime, enum, json
    attribute: Any
    nullable: bool
    unique: bool
    enum_class: Optional[Type[enum.Enum]] = None

    @property
    def is_numeric(self) -> bool:
        return self.kind in NUMERIC_KINDS

    @property
    def is_comparable(self) -> bool:
        return self.kind in COMPARABLE_KINDS

    def coerce(self, value: Any) -> Any:
        """Convert a filter or write operand to the column's Python type"""
        if value is None:
            return None
        if self.kind == "enum":
            if isinstance(value, self.enum_class):
                return value
            try:
                return self.enum_class(value)
            except ValueError:
                allowed = ", ".join(member.value for member in self.enum_class)
                raise QueryValidationError(f"Invalid value {value!r} for {self.name}; expected one of {allowed}")
        if self.kind == "datetime":
            if isinstance(value, datetime):
                return value
            if isinstance(value, str):
                try:
                    return datetime.fromisoformat(value)
                except ValueError:
                    pass
            raise QueryValidationError(f"Invalid datetime {value!r} for {self.name}")
        if self.kind in NUMERIC_KINDS:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise QueryValidationError(f"{self.name} expects a number, got {value!r}")
            if self.kind == "int" and isinstance(value, float) and not value.is_integer():
                raise QueryValidationError(f"{self.name} expects an integer, got {value!r}")
            return int(value) if self.kind == "int" else float(value)
        if self.kind == "bool":
            if not isinstance(value, bool):
                raise QueryValidationError(f"{self.name} expects a boolean, got {value!r}")
            return value
        if self.kind == "string":
            if not isinstance(value, str):
                raise QueryValidationError(f"{self.name} expects a string, got {value!r}")
            return value
        return value


@dataclass
class RelationInfo:
    """One relationship of a model, joined on a single column pair"""

    name: str
    target: str
    uselist: bool
    local_key: str
    remote_key: str
    attribute: Any


@dataclass
class ModelMeta:
    name: str
    model: Any
    create_schema: Type[CreateSchema]
    fields: Dict[str, FieldInfo] = field(default_factory=dict)
    relations: Dict[str, RelationInfo] = field(default_factory=dict)
    primary_key: str = "id"
    adapters: Dict[str, TypeAdapter] = field(default_factory=dict, repr=False)

    @property
    def unique_fields(self) -> Set[str]:
        return {name for name, info in self.fields.items() if info.unique}

    def field(self, name: str, purpose: str = "field") -> FieldInfo:
        info = self.fields.get(name)
        if info is None:
            if name in self.relations:
                raise QueryValidationError(f"{self.name}.{name} is a relation and cannot be used as a {purpose}")
            raise QueryValidationError(f"Unknown {purpose} {name!r} on {self.name}")
        return info

    def relation(self, name: str) -> RelationInfo:
        rel = self.relations.get(name)
        if rel is None:
            raise QueryValidationError(f"Unknown relation {name!r} on {self.name}")
        return rel

    def column(self, name: str):
        return self.field(name).attribute

    def require_unique(self, where: Any, argument: str = "where") -> None:
        """A unique selector needs at least one unique field given as a plain value"""
        if not isinstance(where, dict) or not where:
            raise QueryValidationError(f"{self.name} {argument} must be a non-empty dict")
        for key, value in where.items():
            if key in self.fields and self.fields[key].unique and value is not None and not isinstance(value, dict):
                return
        raise QueryValidationError(
            f"{self.name} {argument} must select a unique field: {', '.join(sorted(self.unique_fields))}"
        )

    def validate_create(self, data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise QueryValidationError(f"{self.name} create data must be a dict")
        try:
            payload = self.create_schema.model_validate(data)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
            raise QueryValidationError(f"Invalid {self.name} data: {problems}") from exc
        values = payload.model_dump(exclude_unset=True)
        for key in list(values):
            # Generated columns fall back to their defaults when passed as None
            if values[key] is None and not self.fields[key].nullable:
                del values[key]
        return values

    def validate_value(self, name: str, value: Any) -> Any:
        """Check one written value against the create schema's field constraints

        Strings are stored exactly as written; the schema only checks them.
        """
        adapter = self.adapters.get(name)
        if adapter is None:
            schema_field = self.create_schema.model_fields.get(name)
            if schema_field is None:
                return value
            annotation = schema_field.annotation
            if schema_field.metadata:
                annotation = Annotated[(annotation, *schema_field.metadata)]
            adapter = self.adapters[name] = TypeAdapter(annotation)
        try:
            checked = adapter.validate_python(value)
        except ValidationError as exc:
            problems = "; ".join(err["msg"] for err in exc.errors())
            raise QueryValidationError(f"Invalid {self.name}.{name}: {problems}") from exc
        return value if isinstance(value, str) else checked

    def scalar_names(self) -> List[str]:
        return list(self.fields)


def _field_kind(column_type) -> str:
    if isinstance(column_type, UTCDateTime):
        return "datetime"
    if isinstance(column_type, SAEnum):
        return "enum"
    if isinstance(column_type, Boolean):
        return "bool"
    if isinstance(column_type, Integer):
        return "int"
    if isinstance(column_type, Float):
        return "float"
    if isinstance(column_type, JSON):
        return "json"
    if isinstance(column_type, String):
        return "string"
    raise TypeError(f"Unsupported column type {column_type!r}")


def _build_meta(name: str, model, create_schema) -> ModelMeta:
    mapper = inspect(model)
    meta = ModelMeta(name=name, model=model, create_schema=create_schema)

    for attr in mapper.column_attrs:
        column = attr.columns[0]
        kind = _field_kind(column.type)
        meta.fields[attr.key] = FieldInfo(
            name=attr.key,
            kind=kind,
            attribute=getattr(model, attr.key),
            nullable=bool(column.nullable),
            unique=bool(column.primary_key or column.unique),
            enum_class=getattr(column.type, "enum_class", None) if kind == "enum" else None,
        )
        if column.primary_key:
            meta.primary_key = attr.key

    for rel in mapper.relationships:
        local, remote = rel.local_remote_pairs[0]
        meta.relations[rel.key] = RelationInfo(
            name=rel.key,
            target=rel.mapper.class_.__name__,
            uselist=bool(rel.uselist),
            local_key=local.key,
            remote_key=remote.key,
            attribute=getattr(model, rel.key),
        )
    return meta


_MODELS = (
    ("User", User, UserCreate),
    ("Admin", Admin, AdminCreate),
    ("Task", Task, TaskCreate),
    ("TaskSubmission", TaskSubmission, TaskSubmissionCreate),
    ("Certificate", Certificate, CertificateCreate),
    ("RedeemRequest", RedeemRequest, RedeemRequestCreate),
    ("Payout", Payout, PayoutCreate),
    ("AuditLog", AuditLog, AuditLogCreate),
)

_registry: Dict[str, ModelMeta] = {}


def get_meta(name: str) -> ModelMeta:
    if not _registry:
        configure_mappers()
        for model_name, model, schema in _MODELS:
            _registry[model_name] = _build_meta(model_name, model, schema)
    try:
        return _registry[name]
    except KeyError:
        raise QueryValidationError(f"Unknown model {name!r}")

