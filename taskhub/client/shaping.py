"""
Record shaping: select / include and batched relation loading
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.core.exceptions import QueryValidationError
from .filters import build_where
from .meta import ModelMeta, get_meta
from .ordering import QueryWindow, fetch_rows

TO_MANY_ARGS = {"select", "include", "where", "order_by", "skip", "take"}
TO_ONE_ARGS = {"select", "include"}


@dataclass
class RelationLoad:
    name: str
    select: Optional[Dict[str, Any]] = None
    include: Optional[Dict[str, Any]] = None
    where: Optional[Dict[str, Any]] = None
    order_by: Any = None
    skip: Optional[int] = None
    take: Optional[int] = None


@dataclass
class Selection:
    scalars: List[str]
    relations: Dict[str, RelationLoad] = field(default_factory=dict)
    counts: Dict[str, Optional[Dict[str, Any]]] = field(default_factory=dict)


def _relation_load(meta: ModelMeta, name: str, value: Any) -> Optional[RelationLoad]:
    rel = meta.relation(name)
    if value is False or value is None:
        return None
    if value is True:
        return RelationLoad(name)
    if not isinstance(value, dict):
        raise QueryValidationError(f"{meta.name}.{name} expects True or a dict of arguments")

    allowed = TO_MANY_ARGS if rel.uselist else TO_ONE_ARGS
    unknown = set(value) - allowed
    if unknown:
        raise QueryValidationError(f"Unsupported argument(s) {sorted(unknown)} for relation {meta.name}.{name}")
    load = RelationLoad(name, **value)

    # Validate nested arguments eagerly so errors surface before any query
    target = get_meta(rel.target)
    parse_selection(target, load.select, load.include)
    if rel.uselist:
        QueryWindow(target, where=load.where, order_by=load.order_by, skip=load.skip, take=load.take)
    return load


def _count_selection(meta: ModelMeta, value: Any) -> Dict[str, Optional[Dict[str, Any]]]:
    to_many = [name for name, rel in meta.relations.items() if rel.uselist]
    if value is False or value is None:
        return {}
    if value is True:
        return {name: None for name in to_many}
    if not isinstance(value, dict) or set(value) != {"select"} or not isinstance(value["select"], dict):
        raise QueryValidationError("_count expects True or {'select': {relation: True | {'where': ...}}}")

    counts = {}
    for name, spec in value["select"].items():
        rel = meta.relation(name)
        if not rel.uselist:
            raise QueryValidationError(f"_count only applies to list relations, not {meta.name}.{name}")
        if spec is False:
            continue
        if spec is True:
            counts[name] = None
        elif isinstance(spec, dict) and set(spec) <= {"where"}:
            where = spec.get("where")
            build_where(get_meta(rel.target), where)
            counts[name] = where
        else:
            raise QueryValidationError(f"_count.{name} expects True or {{'where': ...}}")
    return counts


def parse_selection(meta: ModelMeta, select_arg: Any = None, include_arg: Any = None) -> Selection:
    if select_arg is not None and include_arg is not None:
        raise QueryValidationError("select and include cannot be used together")

    if select_arg is None:
        selection = Selection(scalars=meta.scalar_names())
        if include_arg is None:
            return selection
        if not isinstance(include_arg, dict):
            raise QueryValidationError("include must be a dict")
        for name, value in include_arg.items():
            if name == "_count":
                selection.counts = _count_selection(meta, value)
            elif name in meta.fields:
                raise QueryValidationError(f"include only accepts relations; {meta.name}.{name} is a scalar field")
            else:
                load = _relation_load(meta, name, value)
                if load:
                    selection.relations[name] = load
        return selection

    if not isinstance(select_arg, dict) or not select_arg:
        raise QueryValidationError("select must be a non-empty dict")
    selection = Selection(scalars=[])
    for name, value in select_arg.items():
        if name == "_count":
            selection.counts = _count_selection(meta, value)
        elif name in meta.fields:
            if not isinstance(value, bool):
                raise QueryValidationError(f"select.{name} expects True or False")
            if value:
                selection.scalars.append(name)
        else:
            load = _relation_load(meta, name, value)
            if load:
                selection.relations[name] = load
    return selection


async def _load_relation(session: AsyncSession, meta: ModelMeta, rows: List[Dict[str, Any]], load: RelationLoad):
    rel = meta.relations[load.name]
    target = get_meta(rel.target)
    keys = {row[rel.local_key] for row in rows if row[rel.local_key] is not None}

    grouped: Dict[Any, List[Dict[str, Any]]] = {}
    if keys:
        window = QueryWindow(target, where=load.where, order_by=load.order_by)
        stmt = await window.statement(session, paginate=False)
        stmt = stmt.where(target.column(rel.remote_key).in_(keys))
        children = [obj.to_dict() for obj in (await session.execute(stmt)).scalars().all()]
        shaped = await shape_records(session, target, children, parse_selection(target, load.select, load.include))
        for raw, record in zip(children, shaped):
            grouped.setdefault(raw[rel.remote_key], []).append(record)

    values = []
    for row in rows:
        related = grouped.get(row[rel.local_key], [])
        if rel.uselist:
            start = load.skip or 0
            if load.take is None:
                related = related[start:]
            elif load.take >= 0:
                related = related[start:start + load.take]
            else:
                end = len(related) - start
                related = related[max(end + load.take, 0):end]
            values.append(related)
        else:
            values.append(related[0] if related else None)
    return values


async def _load_count(session: AsyncSession, meta: ModelMeta, rows: List[Dict[str, Any]], name: str, where):
    rel = meta.relations[name]
    target = get_meta(rel.target)
    keys = {row[rel.local_key] for row in rows if row[rel.local_key] is not None}
    totals: Dict[Any, int] = {}
    if keys:
        remote = target.column(rel.remote_key)
        stmt = select(remote, func.count()).where(remote.in_(keys)).group_by(remote)
        criterion = build_where(target, where)
        if criterion is not None:
            stmt = stmt.where(criterion)
        totals = {key: count for key, count in (await session.execute(stmt)).all()}
    return [totals.get(row[rel.local_key], 0) for row in rows]


async def shape_records(
    session: AsyncSession,
    meta: ModelMeta,
    rows: List[Dict[str, Any]],
    selection: Selection,
) -> List[Dict[str, Any]]:
    """Project raw rows and attach relations; output order matches input"""
    if not rows:
        return []

    relation_values = {}
    for name, load in selection.relations.items():
        relation_values[name] = await _load_relation(session, meta, rows, load)

    count_values = {}
    for name, where in selection.counts.items():
        count_values[name] = await _load_count(session, meta, rows, name, where)

    records = []
    for index, row in enumerate(rows):
        record = {name: row[name] for name in selection.scalars}
        for name, values in relation_values.items():
            record[name] = values[index]
        if selection.counts:
            record["_count"] = {name: values[index] for name, values in count_values.items()}
        records.append(record)
    return records


async def find_records(session: AsyncSession, window: QueryWindow, selection: Selection) -> List[Dict[str, Any]]:
    rows = await fetch_rows(session, window)
    return await shape_records(session, window.meta, rows, selection)
