"""
Ordering, cursor and offset pagination
"""

from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from sqlalchemy import and_, false, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from taskhub.core.exceptions import QueryValidationError
from .filters import build_where
from .meta import ModelMeta

DIRECTIONS = ("asc", "desc")


class OrderKey(NamedTuple):
    field: str
    direction: str
    nulls: Optional[str] = None

    def reversed(self) -> "OrderKey":
        direction = "desc" if self.direction == "asc" else "asc"
        nulls = {"first": "last", "last": "first"}.get(self.nulls) if self.nulls else None
        return OrderKey(self.field, direction, nulls)


def _parse_direction(meta: ModelMeta, field: str, value: Any) -> OrderKey:
    info = meta.field(field, "order field")
    if info.kind == "json":
        raise QueryValidationError(f"{meta.name}.{field} is a JSON field and cannot be ordered")
    nulls = None
    if isinstance(value, dict):
        unknown = set(value) - {"sort", "nulls"}
        if unknown or "sort" not in value:
            raise QueryValidationError(f"Order on {field} expects {{'sort': ..., 'nulls': ...}}")
        nulls = value.get("nulls")
        if nulls not in (None, "first", "last"):
            raise QueryValidationError(f"nulls must be 'first' or 'last', got {nulls!r}")
        value = value["sort"]
    if not isinstance(value, str) or value.lower() not in DIRECTIONS:
        raise QueryValidationError(f"Sort direction for {field} must be 'asc' or 'desc', got {value!r}")
    return OrderKey(field, value.lower(), nulls)


def parse_order_by(meta: ModelMeta, order_by: Any) -> List[OrderKey]:
    """
    Normalize order_by into keys, always ending with the primary key

    Without an explicit order rows come back in insertion order.
    """
    if order_by is None:
        keys = [OrderKey("created_at", "asc")] if "created_at" in meta.fields else []
    else:
        items = order_by if isinstance(order_by, (list, tuple)) else [order_by]
        keys = []
        for item in items:
            if not isinstance(item, dict) or not item:
                raise QueryValidationError("order_by entries must be non-empty dicts")
            for field, value in item.items():
                keys.append(_parse_direction(meta, field, value))

    if not any(key.field == meta.primary_key for key in keys):
        keys.append(OrderKey(meta.primary_key, "asc"))
    return keys


def order_clauses(meta: ModelMeta, keys: Sequence[OrderKey]) -> list:
    clauses = []
    for key in keys:
        column = meta.column(key.field)
        clause = column.asc() if key.direction == "asc" else column.desc()
        if key.nulls == "first":
            clause = clause.nulls_first()
        elif key.nulls == "last":
            clause = clause.nulls_last()
        clauses.append(clause)
    return clauses


def nulls_sort_first(key: OrderKey, dialect: str) -> bool:
    """Whether NULLs come before values for this key on the given dialect"""
    if key.nulls is not None:
        return key.nulls == "first"
    # PostgreSQL treats NULL as larger than any value; SQLite and MySQL as smaller
    if dialect == "postgresql":
        return key.direction == "desc"
    return key.direction == "asc"


def cursor_condition(meta: ModelMeta, keys: Sequence[OrderKey], values: Sequence[Any], dialect: str = "sqlite"):
    """
    Rows at or after the cursor position in the given order

    Expanded lexicographically: (a > x) OR (a = x AND b > y) OR ... OR all equal.
    NULLs are placed where the ORDER BY puts them, so nullable keys page
    through every row.
    """
    branches = []
    prefix = []
    for key, value in zip(keys, values):
        info = meta.field(key.field)
        column = info.attribute
        nulls_first = nulls_sort_first(key, dialect)
        if value is None:
            after = column.isnot(None) if nulls_first else false()
            equal = column.is_(None)
        else:
            after = column > value if key.direction == "asc" else column < value
            if info.nullable and not nulls_first:
                after = or_(after, column.is_(None))
            equal = column == value
        branches.append(and_(*prefix, after) if prefix else after)
        prefix.append(equal)
    branches.append(and_(*prefix))
    return or_(*branches)


def _check_window(skip: Any, take: Any) -> None:
    if skip is not None and (isinstance(skip, bool) or not isinstance(skip, int) or skip < 0):
        raise QueryValidationError(f"skip must be a non-negative integer, got {skip!r}")
    if take is not None and (isinstance(take, bool) or not isinstance(take, int)):
        raise QueryValidationError(f"take must be an integer, got {take!r}")


class QueryWindow:
    """Validated where/order/cursor/skip/take/distinct for one read"""

    def __init__(
        self,
        meta: ModelMeta,
        where: Optional[Dict[str, Any]] = None,
        order_by: Any = None,
        cursor: Optional[Dict[str, Any]] = None,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        distinct: Optional[Sequence[str]] = None,
    ):
        _check_window(skip, take)
        if cursor is not None:
            meta.require_unique(cursor, "cursor")
        if distinct is not None:
            if isinstance(distinct, str):
                distinct = [distinct]
            for field in distinct:
                meta.field(field, "distinct field")

        self.meta = meta
        self.criterion = build_where(meta, where)
        self.cursor_criterion = build_where(meta, cursor) if cursor is not None else None
        self.backwards = take is not None and take < 0
        keys = parse_order_by(meta, order_by)
        self.keys = [key.reversed() for key in keys] if self.backwards else keys
        self.skip = skip
        self.take = abs(take) if take is not None else None
        self.distinct = list(distinct) if distinct else None

    async def statement(self, session: AsyncSession, *, paginate: bool = True) -> Optional[Select]:
        """Build the entity select; None when the cursor row does not exist"""
        meta = self.meta
        stmt = select(meta.model).execution_options(populate_existing=True)
        if self.criterion is not None:
            stmt = stmt.where(self.criterion)

        if self.cursor_criterion is not None:
            columns = [meta.column(key.field) for key in self.keys]
            position = (await session.execute(select(*columns).where(self.cursor_criterion))).first()
            if position is None:
                return None
            dialect = session.get_bind().dialect.name
            stmt = stmt.where(cursor_condition(meta, self.keys, list(position), dialect))

        stmt = stmt.order_by(*order_clauses(meta, self.keys))
        if paginate and not self.distinct:
            if self.skip:
                stmt = stmt.offset(self.skip)
            if self.take is not None:
                stmt = stmt.limit(self.take)
        return stmt

    def finish(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Apply in-memory distinct and restore the requested direction"""
        if self.distinct:
            seen = set()
            unique_rows = []
            for row in rows:
                marker = tuple(_hashable(row[field]) for field in self.distinct)
                if marker in seen:
                    continue
                seen.add(marker)
                unique_rows.append(row)
            start = self.skip or 0
            rows = unique_rows[start:start + self.take] if self.take is not None else unique_rows[start:]
        if self.backwards:
            rows = list(reversed(rows))
        return rows


def _hashable(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(value)
    return value


async def fetch_rows(session: AsyncSession, window: QueryWindow) -> List[Dict[str, Any]]:
    stmt = await window.statement(session)
    if stmt is None:
        return []
    if window.take == 0:
        return []
    result = await session.execute(stmt)
    rows = [obj.to_dict() for obj in result.scalars().all()]
    return window.finish(rows)
