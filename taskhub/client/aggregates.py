"""
aggregate, group_by and count compilation
"""

from typing import Any, Dict, List, Optional, Tuple
import enum

from sqlalchemy import and_, false, func, not_, or_, select, true

from taskhub.core.exceptions import QueryValidationError
from .filters import LOGICAL_KEYS, build_where, scalar_filter
from .meta import FieldInfo, ModelMeta
from .ordering import DIRECTIONS

AGGREGATES = ("_count", "_avg", "_sum", "_min", "_max")


class AggregatePlan:
    """
    Validated aggregate selection

    Each entry is (aggregate, field or "_all", label); `_count: True` is
    remembered so results collapse to a plain integer.
    """

    def __init__(self, meta: ModelMeta, **aggregates: Any):
        self.meta = meta
        self.entries: List[Tuple[str, str, str]] = []
        self.count_scalar = False

        for name in AGGREGATES:
            spec = aggregates.get(name)
            if spec is None or spec is False:
                continue
            if name == "_count" and spec is True:
                self.count_scalar = True
                self.entries.append(("_count", "_all", "_count___all"))
                continue
            if not isinstance(spec, dict) or not spec:
                raise QueryValidationError(f"{name} expects a dict of {{field: True}}")
            for field, enabled in spec.items():
                if enabled is not True:
                    if enabled is False:
                        continue
                    raise QueryValidationError(f"{name}.{field} expects True")
                if name == "_count" and field == "_all":
                    self.entries.append((name, "_all", "_count___all"))
                    continue
                self.check_field(name, meta.field(field, f"{name} field"))
                self.entries.append((name, field, f"{name}__{field}"))

    @staticmethod
    def check_field(aggregate: str, info: FieldInfo) -> None:
        if aggregate in ("_avg", "_sum") and not info.is_numeric:
            raise QueryValidationError(f"{aggregate} only applies to numeric fields, not {info.name}")
        if aggregate in ("_min", "_max") and not info.is_comparable:
            raise QueryValidationError(f"{aggregate} is not supported on {info.name}")

    @property
    def empty(self) -> bool:
        return not self.entries

    def columns(self, source) -> list:
        """Labeled aggregate expressions over `source` (a table or subquery)"""
        return [aggregate_expression(name, field, source).label(label) for name, field, label in self.entries]

    def assemble(self, row) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for name, field, label in self.entries:
            value = _convert(self.meta, name, field, row._mapping[label])
            if name == "_count" and self.count_scalar:
                result["_count"] = value
                continue
            result.setdefault(name, {})[field] = value
        return result


def aggregate_expression(name: str, field: str, source):
    if name == "_count":
        return func.count() if field == "_all" else func.count(source.c[field])
    column = source.c[field]
    if name == "_avg":
        return func.avg(column)
    if name == "_sum":
        return func.sum(column)
    if name == "_min":
        return func.min(column)
    return func.max(column)


def _convert(meta: ModelMeta, name: str, field: str, value: Any) -> Any:
    if name == "_count":
        return int(value or 0)
    if value is None:
        return None
    if name == "_avg":
        return float(value)
    info = meta.fields[field]
    if name == "_sum":
        return int(value) if info.kind == "int" else float(value)
    if isinstance(value, enum.Enum):
        return value.value
    if info.kind == "enum":
        return value
    if info.kind == "int":
        return int(value)
    if info.kind == "float":
        return float(value)
    return value


class CountPlan:
    """count(select=...) is an aggregate over _count only"""

    def __init__(self, meta: ModelMeta, select_arg: Optional[Dict[str, Any]]):
        if select_arg is None:
            self.plan = None
            return
        if not isinstance(select_arg, dict) or not select_arg:
            raise QueryValidationError("count select must be a non-empty dict")
        self.plan = AggregatePlan(meta, _count=select_arg)

    def columns(self, source) -> list:
        if self.plan is None:
            return [func.count().label("_count___all")]
        return self.plan.columns(source)

    def assemble(self, row) -> Any:
        if self.plan is None:
            return int(row._mapping["_count___all"] or 0)
        return self.plan.assemble(row).get("_count", {})


class GroupByPlan:
    """Validated group_by query; builds the grouped select over the model table"""

    def __init__(
        self,
        meta: ModelMeta,
        by: Any,
        where: Optional[Dict[str, Any]] = None,
        having: Optional[Dict[str, Any]] = None,
        order_by: Any = None,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        **aggregates: Any,
    ):
        if isinstance(by, str):
            by = [by]
        if not isinstance(by, (list, tuple)) or not by:
            raise QueryValidationError("group_by requires a non-empty 'by' list")
        for field in by:
            info = meta.field(field, "group_by field")
            if info.kind == "json":
                raise QueryValidationError(f"Cannot group by JSON field {field}")
        if skip is not None and (isinstance(skip, bool) or not isinstance(skip, int) or skip < 0):
            raise QueryValidationError(f"skip must be a non-negative integer, got {skip!r}")
        if take is not None and (isinstance(take, bool) or not isinstance(take, int) or take < 0):
            raise QueryValidationError(f"take must be a non-negative integer, got {take!r}")

        self.meta = meta
        self.by = list(by)
        self.criterion = build_where(meta, where)
        self.aggregates = AggregatePlan(meta, **aggregates)
        self.having = self._compile_having(having) if having is not None else None
        self.order = self._compile_order(order_by)
        self.skip = skip
        self.take = take

    def _aggregate_ref(self, name: str, field: str):
        table = self.meta.model.__table__
        if name not in AGGREGATES:
            raise QueryValidationError(f"Unknown aggregate {name!r}")
        if name == "_count" and field == "_all":
            return func.count()
        AggregatePlan.check_field(name, self.meta.field(field, f"{name} field"))
        return aggregate_expression(name, field, table)

    def _compile_having(self, having: Any):
        if not isinstance(having, dict):
            raise QueryValidationError("having must be a dict")
        clauses = []
        for key, value in having.items():
            if key in LOGICAL_KEYS:
                items = value if isinstance(value, (list, tuple)) else [value]
                parts = [self._compile_having(item) for item in items]
                if key == "AND":
                    clauses.append(and_(true(), *parts))
                elif key == "OR":
                    clauses.append(or_(false(), *parts))
                else:
                    clauses.append(and_(true(), *[not_(part) for part in parts]))
                continue

            info = self.meta.field(key, "having field")
            aggregate_filters = value if isinstance(value, dict) else {}
            scalar_ops = {k: v for k, v in aggregate_filters.items() if k not in AGGREGATES}
            if not isinstance(value, dict):
                scalar_ops = None

            for name in AGGREGATES:
                if name not in aggregate_filters:
                    continue
                expr = self._aggregate_ref(name, key)
                clauses.append(scalar_filter(_aggregate_info(info, name), expr, aggregate_filters[name]))

            if scalar_ops is None or scalar_ops:
                if key not in self.by:
                    raise QueryValidationError(
                        f"having on {key} must use an aggregate unless {key} is in 'by'"
                    )
                clauses.append(scalar_filter(info, info.attribute, value if scalar_ops is None else scalar_ops))
        return and_(true(), *clauses)

    def _compile_order(self, order_by: Any) -> list:
        if order_by is None:
            return [self.meta.column(field).asc() for field in self.by]
        items = order_by if isinstance(order_by, (list, tuple)) else [order_by]
        clauses = []
        for item in items:
            if not isinstance(item, dict) or not item:
                raise QueryValidationError("order_by entries must be non-empty dicts")
            for key, value in item.items():
                if key in AGGREGATES:
                    if not isinstance(value, dict) or not value:
                        raise QueryValidationError(f"order_by.{key} expects {{field: direction}}")
                    for field, direction in value.items():
                        clauses.append(_direction(self._aggregate_ref(key, field), direction))
                elif key in self.by:
                    clauses.append(_direction(self.meta.column(key), value))
                else:
                    raise QueryValidationError(f"order_by field {key} must be in 'by' or use an aggregate")
        return clauses

    def statement(self):
        table = self.meta.model.__table__
        by_columns = [self.meta.column(field) for field in self.by]
        stmt = select(*by_columns, *self.aggregates.columns(table)).group_by(*by_columns)
        if self.criterion is not None:
            stmt = stmt.where(self.criterion)
        if self.having is not None:
            stmt = stmt.having(self.having)
        stmt = stmt.order_by(*self.order)
        if self.skip:
            stmt = stmt.offset(self.skip)
        if self.take is not None:
            stmt = stmt.limit(self.take)
        return stmt

    def assemble(self, row) -> Dict[str, Any]:
        mapping = row._mapping
        result = {}
        for field in self.by:
            value = mapping[field]
            result[field] = value.value if isinstance(value, enum.Enum) else value
        result.update(self.aggregates.assemble(row))
        return result


def _direction(expr, value: Any):
    if not isinstance(value, str) or value.lower() not in DIRECTIONS:
        raise QueryValidationError(f"Sort direction must be 'asc' or 'desc', got {value!r}")
    return expr.asc() if value.lower() == "asc" else expr.desc()


def _aggregate_info(info: FieldInfo, name: str) -> FieldInfo:
    """Operand typing for a filter applied to an aggregate of `info`"""
    if name == "_count":
        kind = "int"
    elif name == "_avg":
        kind = "float"
    else:
        kind = info.kind
    return FieldInfo(
        name=f"{name}({info.name})",
        kind=kind,
        attribute=None,
        nullable=True,
        unique=False,
        enum_class=info.enum_class if kind == "enum" else None,
    )


def split_aggregates(args: Dict[str, Any]) -> Dict[str, Any]:
    return {name: args.get(name) for name in AGGREGATES}

