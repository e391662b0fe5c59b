"""
Where-clause compiler
Turns filter dicts into SQLAlchemy criteria
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import and_, false, func, not_, or_, true
from sqlalchemy.sql.elements import ColumnElement

from taskhub.core.exceptions import QueryValidationError
from .meta import FieldInfo, ModelMeta, get_meta

LOGICAL_KEYS = ("AND", "OR", "NOT")
STRING_OPERATORS = {"contains", "starts_with", "ends_with"}
RANGE_OPERATORS = {"lt", "lte", "gt", "gte"}
SCALAR_OPERATORS = {"equals", "not", "in", "not_in", "mode"} | STRING_OPERATORS | RANGE_OPERATORS
TO_MANY_OPERATORS = {"some", "every", "none"}
TO_ONE_OPERATORS = {"is", "is_not"}


def _as_list(value: Any, key: str) -> List[Dict[str, Any]]:
    if isinstance(value, dict):
        return [value]
    if isinstance(value, (list, tuple)):
        return list(value)
    raise QueryValidationError(f"{key} expects a filter dict or a list of filter dicts")


def build_where(meta: ModelMeta, where: Optional[Dict[str, Any]]) -> Optional[ColumnElement]:
    """Compile a where dict; None means no filtering"""
    if where is None:
        return None
    return compile_where(meta, where)


def compile_where(meta: ModelMeta, where: Any) -> ColumnElement:
    if not isinstance(where, dict):
        raise QueryValidationError(f"{meta.name} filter must be a dict, got {type(where).__name__}")

    clauses = []
    for key, value in where.items():
        if key == "AND":
            clauses.append(and_(true(), *[compile_where(meta, item) for item in _as_list(value, key)]))
        elif key == "OR":
            parts = [compile_where(meta, item) for item in _as_list(value, key)]
            clauses.append(or_(false(), *parts))
        elif key == "NOT":
            clauses.append(and_(true(), *[not_(compile_where(meta, item)) for item in _as_list(value, key)]))
        elif key in meta.fields:
            clauses.append(scalar_filter(meta.fields[key], meta.fields[key].attribute, value))
        elif key in meta.relations:
            clauses.append(_relation_filter(meta, key, value))
        else:
            raise QueryValidationError(f"Unknown filter field {key!r} on {meta.name}")
    return and_(true(), *clauses)


def scalar_filter(info: FieldInfo, expr, value: Any) -> ColumnElement:
    """
    Filter one scalar expression

    A plain value means equality; a dict holds operators.
    `expr` is usually the column but may be an aggregate expression.
    """
    if info.kind == "json":
        raise QueryValidationError(f"{info.name} is a JSON field and cannot be filtered")

    if not isinstance(value, dict):
        return _equals(info, expr, value, insensitive=False)

    unknown = set(value) - SCALAR_OPERATORS
    if unknown:
        raise QueryValidationError(f"Unknown operator(s) {sorted(unknown)} for {info.name}")

    mode = value.get("mode", "default")
    if mode not in ("default", "insensitive"):
        raise QueryValidationError(f"mode must be 'default' or 'insensitive', got {mode!r}")
    insensitive = mode == "insensitive"
    if insensitive and info.kind != "string":
        raise QueryValidationError(f"mode=insensitive only applies to string fields, not {info.name}")

    parts = []
    for op, operand in value.items():
        if op == "mode":
            continue
        parts.append(_operator(info, expr, op, operand, insensitive))
    return and_(true(), *parts)


def _fold(expr, insensitive: bool):
    return func.lower(expr) if insensitive else expr


def _equals(info: FieldInfo, expr, operand: Any, insensitive: bool) -> ColumnElement:
    if operand is None:
        return expr.is_(None)
    operand = info.coerce(operand)
    if insensitive:
        return func.lower(expr) == operand.lower()
    return expr == operand


def _operator(info: FieldInfo, expr, op: str, operand: Any, insensitive: bool) -> ColumnElement:
    if op == "equals":
        return _equals(info, expr, operand, insensitive)

    if op == "not":
        if operand is None:
            return expr.is_not(None)
        if isinstance(operand, dict):
            nested = dict(operand)
            if insensitive:
                nested.setdefault("mode", "insensitive")
            return not_(scalar_filter(info, expr, nested))
        return not_(_equals(info, expr, operand, insensitive))

    if op in ("in", "not_in"):
        if not isinstance(operand, (list, tuple, set)):
            raise QueryValidationError(f"{op} on {info.name} expects a list")
        values = [info.coerce(item) for item in operand]
        if insensitive:
            values = [item.lower() for item in values]
        target = _fold(expr, insensitive)
        return target.in_(values) if op == "in" else target.not_in(values)

    if op in RANGE_OPERATORS:
        if not info.is_comparable:
            raise QueryValidationError(f"{op} is not supported on {info.name}")
        if operand is None:
            raise QueryValidationError(f"{op} on {info.name} needs a value")
        operand = info.coerce(operand)
        target = _fold(expr, insensitive)
        if insensitive:
            operand = operand.lower()
        if op == "lt":
            return target < operand
        if op == "lte":
            return target <= operand
        if op == "gt":
            return target > operand
        return target >= operand

    # contains, starts_with, ends_with
    if info.kind != "string":
        raise QueryValidationError(f"{op} only applies to string fields, not {info.name}")
    if not isinstance(operand, str):
        raise QueryValidationError(f"{op} on {info.name} expects a string")
    target = _fold(expr, insensitive)
    if insensitive:
        operand = operand.lower()
    if op == "contains":
        return target.contains(operand, autoescape=True)
    if op == "starts_with":
        return target.startswith(operand, autoescape=True)
    return target.endswith(operand, autoescape=True)


def _relation_filter(meta: ModelMeta, name: str, value: Any) -> ColumnElement:
    rel = meta.relations[name]
    target = get_meta(rel.target)
    attr = rel.attribute

    if rel.uselist:
        if not isinstance(value, dict) or not value or set(value) - TO_MANY_OPERATORS:
            raise QueryValidationError(
                f"{meta.name}.{name} is a list relation; filter it with some, every or none"
            )
        parts = []
        for op, nested in value.items():
            criterion = compile_where(target, nested or {})
            if op == "some":
                parts.append(attr.any(criterion))
            elif op == "every":
                parts.append(not_(attr.any(not_(criterion))))
            else:
                parts.append(not_(attr.any(criterion)))
        return and_(true(), *parts)

    if value is None:
        return not_(attr.has())
    if not isinstance(value, dict):
        raise QueryValidationError(f"{meta.name}.{name} filter must be a dict or None")

    if value and set(value) <= TO_ONE_OPERATORS:
        parts = []
        if "is" in value:
            nested = value["is"]
            parts.append(not_(attr.has()) if nested is None else attr.has(compile_where(target, nested)))
        if "is_not" in value:
            nested = value["is_not"]
            parts.append(attr.has() if nested is None else not_(attr.has(compile_where(target, nested))))
        return and_(true(), *parts)

    return attr.has(compile_where(target, value))
