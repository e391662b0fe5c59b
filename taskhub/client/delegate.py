"""
Per-model delegate exposing the query operations
"""

from typing import Any, Dict, List, Optional, TYPE_CHECKING
import logging

from sqlalchemy import delete, false, insert, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.core.exceptions import QueryValidationError, RecordNotFoundError
from .aggregates import AggregatePlan, CountPlan, GroupByPlan, split_aggregates
from .filters import build_where
from .meta import FieldInfo, ModelMeta
from .ordering import QueryWindow, fetch_rows
from .shaping import find_records, parse_selection, shape_records
from .state_machine import get_state_machine

if TYPE_CHECKING:
    from .client import BaseClient

logger = logging.getLogger(__name__)

NUMBER_OPERATIONS = ("set", "increment", "decrement", "multiply", "divide")


class ModelDelegate:
    """
    Query operations for one model

    Every public method goes through the client's middleware chain; the
    matching `_`-prefixed handler validates its arguments before opening
    a session, so malformed queries never reach the store.
    """

    def __init__(self, client: "BaseClient", meta: ModelMeta):
        self._client = client
        self._meta = meta

    @property
    def model_name(self) -> str:
        return self._meta.name

    def __repr__(self):
        return f"<ModelDelegate {self._meta.name}>"

    async def _run(self, action: str, args: Dict[str, Any], handler) -> Any:
        return await self._client._dispatch(self._meta.name, action, args, handler)

    def _session(self):
        return self._client._session_scope(self._meta.name)

    # Reads

    async def find_unique(self, where, select=None, include=None):
        return await self._run("find_unique", {"where": where, "select": select, "include": include}, self._find_unique)

    async def find_unique_or_throw(self, where, select=None, include=None):
        return await self._run(
            "find_unique_or_throw", {"where": where, "select": select, "include": include}, self._find_unique_or_throw
        )

    async def find_first(self, where=None, order_by=None, cursor=None, skip=None, take=None,
                         distinct=None, select=None, include=None):
        args = dict(where=where, order_by=order_by, cursor=cursor, skip=skip, take=take,
                    distinct=distinct, select=select, include=include)
        return await self._run("find_first", args, self._find_first)

    async def find_first_or_throw(self, where=None, order_by=None, cursor=None, skip=None, take=None,
                                  distinct=None, select=None, include=None):
        args = dict(where=where, order_by=order_by, cursor=cursor, skip=skip, take=take,
                    distinct=distinct, select=select, include=include)
        return await self._run("find_first_or_throw", args, self._find_first_or_throw)

    async def find_many(self, where=None, order_by=None, cursor=None, skip=None, take=None,
                        distinct=None, select=None, include=None) -> List[Dict[str, Any]]:
        args = dict(where=where, order_by=order_by, cursor=cursor, skip=skip, take=take,
                    distinct=distinct, select=select, include=include)
        return await self._run("find_many", args, self._find_many)

    async def _find_unique(self, args):
        self._meta.require_unique(args.get("where"))
        window = QueryWindow(self._meta, where=args["where"], take=1)
        selection = parse_selection(self._meta, args.get("select"), args.get("include"))
        async with self._session() as session:
            records = await find_records(session, window, selection)
        return records[0] if records else None

    async def _find_unique_or_throw(self, args):
        record = await self._find_unique(args)
        if record is None:
            raise RecordNotFoundError(self._meta.name, args.get("where"))
        return record

    async def _find_first(self, args):
        take = args.get("take")
        args = dict(args, take=-1 if take is not None and take < 0 else 1)
        records = await self._find_many(args)
        return records[0] if records else None

    async def _find_first_or_throw(self, args):
        record = await self._find_first(args)
        if record is None:
            raise RecordNotFoundError(self._meta.name, args.get("where"))
        return record

    async def _find_many(self, args):
        window = QueryWindow(
            self._meta,
            where=args.get("where"),
            order_by=args.get("order_by"),
            cursor=args.get("cursor"),
            skip=args.get("skip"),
            take=args.get("take"),
            distinct=args.get("distinct"),
        )
        selection = parse_selection(self._meta, args.get("select"), args.get("include"))
        async with self._session() as session:
            return await find_records(session, window, selection)

    # Writes

    async def create(self, data, select=None, include=None):
        return await self._run("create", {"data": data, "select": select, "include": include}, self._create)

    async def create_many(self, data, skip_duplicates: bool = False) -> int:
        return await self._run("create_many", {"data": data, "skip_duplicates": skip_duplicates}, self._create_many)

    async def update(self, where, data, select=None, include=None):
        args = {"where": where, "data": data, "select": select, "include": include}
        return await self._run("update", args, self._update)

    async def update_many(self, data, where=None) -> int:
        return await self._run("update_many", {"data": data, "where": where}, self._update_many)

    async def upsert(self, where, create, update, select=None, include=None):
        args = {"where": where, "create": create, "update": update, "select": select, "include": include}
        return await self._run("upsert", args, self._upsert)

    async def delete(self, where, select=None, include=None):
        return await self._run("delete", {"where": where, "select": select, "include": include}, self._delete)

    async def delete_many(self, where=None) -> int:
        return await self._run("delete_many", {"where": where}, self._delete_many)

    async def _reload(self, session: AsyncSession, key: Any, selection) -> Dict[str, Any]:
        window = QueryWindow(self._meta, where={self._meta.primary_key: key}, take=1)
        records = await find_records(session, window, selection)
        return records[0]

    async def _insert(self, session: AsyncSession, values: Dict[str, Any]) -> Any:
        instance = self._meta.model(**values)
        session.add(instance)
        await session.flush()
        return getattr(instance, self._meta.primary_key)

    async def _create(self, args):
        values = self._meta.validate_create(args.get("data"))
        selection = parse_selection(self._meta, args.get("select"), args.get("include"))
        async with self._session() as session:
            key = await self._insert(session, values)
            return await self._reload(session, key, selection)

    async def _create_many(self, args):
        data = args.get("data")
        if not isinstance(data, (list, tuple)):
            raise QueryValidationError(f"{self._meta.name} create_many expects a list of dicts")
        rows = [self._meta.validate_create(item) for item in data]
        if not rows:
            return 0

        async with self._session() as session:
            if not args.get("skip_duplicates"):
                session.add_all([self._meta.model(**values) for values in rows])
                await session.flush()
                return len(rows)

            # Row by row so collisions inside the batch are skipped too
            statement_for = self._ignore_duplicates_insert(session)
            inserted = 0
            for values in rows:
                result = await session.execute(statement_for(values))
                inserted += max(result.rowcount or 0, 0)
            logger.debug(f"{self._meta.name}.create_many inserted {inserted} of {len(rows)} rows")
            return inserted

    def _ignore_duplicates_insert(self, session: AsyncSession):
        table = self._meta.model.__table__
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            return lambda values: postgresql_insert(table).values(**values).on_conflict_do_nothing()
        if dialect == "sqlite":
            return lambda values: sqlite_insert(table).values(**values).on_conflict_do_nothing()
        if dialect == "mysql":
            return lambda values: insert(table).values(**values).prefix_with("IGNORE")
        raise QueryValidationError(f"skip_duplicates is not supported on {dialect}")

    def _compile_update(self, data: Any) -> Dict[str, Any]:
        """Validate update data and turn atomic number operations into SQL expressions"""
        if not isinstance(data, dict):
            raise QueryValidationError(f"{self._meta.name} update data must be a dict")
        values = {}
        for name, value in data.items():
            if name in self._meta.relations:
                raise QueryValidationError(f"Nested writes are not supported ({self._meta.name}.{name})")
            info = self._meta.field(name, "update field")
            values[name] = self._update_value(info, value)
        return values

    def _update_value(self, info: FieldInfo, value: Any) -> Any:
        if isinstance(value, dict) and info.kind != "json":
            if len(value) != 1:
                raise QueryValidationError(f"{info.name} update expects exactly one operation")
            op, operand = next(iter(value.items()))
            if op == "set":
                return self._update_value(info, operand)
            if op not in NUMBER_OPERATIONS:
                raise QueryValidationError(f"Unknown update operation {op!r} for {info.name}")
            if not info.is_numeric:
                raise QueryValidationError(f"{op} only applies to numeric fields, not {info.name}")
            operand = info.coerce(operand)
            if operand is None:
                raise QueryValidationError(f"{op} on {info.name} needs a number")
            column = info.attribute
            if op == "increment":
                return column + operand
            if op == "decrement":
                return column - operand
            if op == "multiply":
                return column * operand
            if operand == 0:
                raise QueryValidationError(f"Cannot divide {info.name} by zero")
            if info.kind == "int":
                return column // operand
            return column / operand

        if value is None:
            if not info.nullable:
                raise QueryValidationError(f"{self._meta.name}.{info.name} cannot be null")
            return None
        if info.kind == "json":
            if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                raise QueryValidationError(f"{info.name} expects a list of strings")
            return self._meta.validate_value(info.name, list(value))
        return self._meta.validate_value(info.name, info.coerce(value))

    async def _check_transition(self, session: AsyncSession, values: Dict[str, Any], criterion) -> None:
        machine = get_state_machine(self._meta.name)
        if machine is None or "status" not in values or not self._client.settings.ENFORCE_STATUS_TRANSITIONS:
            return
        requested = values["status"]
        status = self._meta.column("status")
        stmt = select(status).distinct()
        if criterion is not None:
            stmt = stmt.where(criterion)
        for current in (await session.execute(stmt)).scalars().all():
            machine.validate_transition(current, requested)

    async def _update_by_key(self, session: AsyncSession, key: Any, values: Dict[str, Any]) -> None:
        if not values:
            return
        pk = self._meta.column(self._meta.primary_key)
        await session.execute(
            update(self._meta.model)
            .where(pk == key)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def _find_key(self, session: AsyncSession, where: Dict[str, Any], lock: bool = False) -> Optional[Any]:
        pk = self._meta.column(self._meta.primary_key)
        stmt = select(pk).where(build_where(self._meta, where))
        if lock:
            stmt = stmt.with_for_update()
        return (await session.execute(stmt)).scalars().first()

    async def _update(self, args):
        where = args.get("where")
        self._meta.require_unique(where)
        build_where(self._meta, where)
        values = self._compile_update(args.get("data"))
        selection = parse_selection(self._meta, args.get("select"), args.get("include"))
        async with self._session() as session:
            key = await self._find_key(session, where)
            if key is None:
                raise RecordNotFoundError(self._meta.name, where)
            await self._check_transition(session, values, self._meta.column(self._meta.primary_key) == key)
            await self._update_by_key(session, key, values)
            new_key = values.get(self._meta.primary_key, key)
            return await self._reload(session, new_key, selection)

    async def _update_many(self, args):
        values = self._compile_update(args.get("data"))
        criterion = build_where(self._meta, args.get("where"))
        if not values:
            return 0
        async with self._session() as session:
            await self._check_transition(session, values, criterion)
            stmt = update(self._meta.model).values(**values).execution_options(synchronize_session=False)
            if criterion is not None:
                stmt = stmt.where(criterion)
            result = await session.execute(stmt)
            return result.rowcount

    async def _upsert(self, args):
        where = args.get("where")
        self._meta.require_unique(where)
        build_where(self._meta, where)
        create_values = self._meta.validate_create(args.get("create"))
        update_values = self._compile_update(args.get("update") or {})
        selection = parse_selection(self._meta, args.get("select"), args.get("include"))
        async with self._session() as session:
            key = await self._find_key(session, where, lock=True)
            if key is None:
                key = await self._insert(session, create_values)
                return await self._reload(session, key, selection)
            await self._check_transition(session, update_values, self._meta.column(self._meta.primary_key) == key)
            await self._update_by_key(session, key, update_values)
            return await self._reload(session, update_values.get(self._meta.primary_key, key), selection)

    async def _delete(self, args):
        where = args.get("where")
        self._meta.require_unique(where)
        window = QueryWindow(self._meta, where=where, take=1)
        selection = parse_selection(self._meta, args.get("select"), args.get("include"))
        async with self._session() as session:
            rows = await fetch_rows(session, window)
            if not rows:
                raise RecordNotFoundError(self._meta.name, where)
            record = (await shape_records(session, self._meta, rows, selection))[0]
            pk = self._meta.column(self._meta.primary_key)
            await session.execute(
                delete(self._meta.model)
                .where(pk == rows[0][self._meta.primary_key])
                .execution_options(synchronize_session=False)
            )
            return record

    async def _delete_many(self, args):
        criterion = build_where(self._meta, args.get("where"))
        async with self._session() as session:
            stmt = delete(self._meta.model).execution_options(synchronize_session=False)
            if criterion is not None:
                stmt = stmt.where(criterion)
            result = await session.execute(stmt)
            return result.rowcount

    # Aggregation

    async def aggregate(self, where=None, order_by=None, cursor=None, skip=None, take=None,
                        _count=None, _avg=None, _sum=None, _min=None, _max=None) -> Dict[str, Any]:
        args = dict(where=where, order_by=order_by, cursor=cursor, skip=skip, take=take,
                    _count=_count, _avg=_avg, _sum=_sum, _min=_min, _max=_max)
        return await self._run("aggregate", args, self._aggregate)

    async def group_by(self, by, where=None, having=None, order_by=None, skip=None, take=None,
                       _count=None, _avg=None, _sum=None, _min=None, _max=None) -> List[Dict[str, Any]]:
        args = dict(by=by, where=where, having=having, order_by=order_by, skip=skip, take=take,
                    _count=_count, _avg=_avg, _sum=_sum, _min=_min, _max=_max)
        return await self._run("group_by", args, self._group_by)

    async def count(self, where=None, select=None, order_by=None, cursor=None, skip=None, take=None):
        args = dict(where=where, select=select, order_by=order_by, cursor=cursor, skip=skip, take=take)
        return await self._run("count", args, self._count)

    async def _windowed_aggregate(self, args, plan) -> Any:
        window = QueryWindow(
            self._meta,
            where=args.get("where"),
            order_by=args.get("order_by"),
            cursor=args.get("cursor"),
            skip=args.get("skip"),
            take=args.get("take"),
        )
        async with self._session() as session:
            stmt = await window.statement(session)
            if stmt is None or window.take == 0:
                # Empty window: aggregate over no rows
                stmt = select(self._meta.model).where(false())
            source = stmt.subquery()
            row = (await session.execute(select(*plan.columns(source)).select_from(source))).one()
            return plan.assemble(row)

    async def _aggregate(self, args):
        plan = AggregatePlan(self._meta, **split_aggregates(args))
        if plan.empty:
            return {}
        return await self._windowed_aggregate(args, plan)

    async def _group_by(self, args):
        aggregates = split_aggregates(args)
        plan = GroupByPlan(
            self._meta,
            args.get("by"),
            where=args.get("where"),
            having=args.get("having"),
            order_by=args.get("order_by"),
            skip=args.get("skip"),
            take=args.get("take"),
            **aggregates,
        )
        async with self._session() as session:
            result = await session.execute(plan.statement())
            return [plan.assemble(row) for row in result.all()]

    async def _count(self, args):
        plan = CountPlan(self._meta, args.get("select"))
        return await self._windowed_aggregate(args, plan)

