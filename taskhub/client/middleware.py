"""
Query middleware chain and SQL query events
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Sequence
import logging
import time

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


@dataclass
class QueryParams:
    """One delegate call as seen by middleware"""

    model: str
    action: str
    args: Dict[str, Any] = field(default_factory=dict)
    run_in_transaction: bool = False


@dataclass
class QueryEvent:
    """One executed SQL statement"""

    query: str
    params: Any
    duration_ms: float
    timestamp: datetime


Middleware = Callable[[QueryParams, Callable[[QueryParams], Awaitable[Any]]], Awaitable[Any]]
QueryHandler = Callable[[QueryEvent], Any]


async def run_middleware(
    middlewares: Sequence[Middleware],
    params: QueryParams,
    handler: Callable[[Dict[str, Any]], Awaitable[Any]],
) -> Any:
    """Run middlewares in registration order; the innermost call executes the query"""

    async def call(index: int, current: QueryParams) -> Any:
        if index == len(middlewares):
            return await handler(current.args)

        async def call_next(next_params: QueryParams) -> Any:
            return await call(index + 1, next_params)

        return await middlewares[index](current, call_next)

    return await call(0, params)


class QueryEventEmitter:
    """
    Publishes QueryEvents from SQLAlchemy cursor events

    Statements slower than `slow_query_ms` are logged as warnings.
    """

    def __init__(self, slow_query_ms: float):
        self.slow_query_ms = slow_query_ms
        self.handlers: List[QueryHandler] = []

    def subscribe(self, handler: QueryHandler) -> None:
        self.handlers.append(handler)

    def attach(self, engine: AsyncEngine) -> None:
        sync_engine = engine.sync_engine
        event.listen(sync_engine, "before_cursor_execute", self._before_cursor_execute)
        event.listen(sync_engine, "after_cursor_execute", self._after_cursor_execute)
        event.listen(sync_engine, "handle_error", self._handle_error)

    def _before_cursor_execute(self, conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    def _handle_error(self, context):
        # after_cursor_execute never fires for a failed statement
        conn = context.connection
        if conn is None or context.is_disconnect:
            return
        started = conn.info.get("query_start_time")
        if started:
            started.pop()

    def _after_cursor_execute(self, conn, cursor, statement, parameters, context, executemany):
        started = conn.info.get("query_start_time")
        if not started:
            return
        duration_ms = (time.perf_counter() - started.pop()) * 1000

        if duration_ms > self.slow_query_ms:
            logger.warning(f"Slow query ({duration_ms:.1f}ms): {statement}")

        if not self.handlers:
            return
        query_event = QueryEvent(
            query=statement,
            params=parameters,
            duration_ms=duration_ms,
            timestamp=datetime.now(timezone.utc),
        )
        for handler in list(self.handlers):
            try:
                handler(query_event)
            except Exception:
                logger.exception("Query event handler %r failed", handler)

