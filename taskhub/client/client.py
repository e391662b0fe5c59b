"""
TaskHub data-access client
Owns the engine, the delegates, middleware and transactions
"""

from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union
import asyncio
import enum
import logging

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import PendingRollbackError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from taskhub.core.config import Settings, get_settings, to_async_database_url
from taskhub.core.database import close_db, create_engine, create_session_factory, drop_db, init_db
from taskhub.core.exceptions import (
    ClientNotConnectedError,
    TaskHubError,
    TransactionError,
    TransactionTimeoutError,
    UnsupportedIsolationLevelError,
)
from .delegate import ModelDelegate
from .errors import translate_store_error
from .meta import get_meta
from .middleware import Middleware, QueryEventEmitter, QueryHandler, QueryParams, run_middleware

logger = logging.getLogger(__name__)


class IsolationLevel(str, enum.Enum):
    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"


SUPPORTED_ISOLATION_LEVELS = {
    "postgresql": tuple(IsolationLevel),
    "mysql": tuple(IsolationLevel),
    "sqlite": (IsolationLevel.SERIALIZABLE,),
}

ClientState = str  # idle, connected, disconnected

TransactionBody = Union[
    Callable[["TransactionClient"], Awaitable[Any]],
    Sequence[Callable[["TransactionClient"], Awaitable[Any]]],
]


def resolve_isolation_level(level: Any, dialect: str) -> Optional[IsolationLevel]:
    """Map a level (enum, value or name) onto the dialect's supported set"""
    if level is None:
        return None
    supported = SUPPORTED_ISOLATION_LEVELS.get(dialect, ())
    resolved = None
    if isinstance(level, IsolationLevel):
        resolved = level
    elif isinstance(level, str):
        normalized = level.strip().upper().replace("_", " ")
        resolved = next((member for member in IsolationLevel if member.value == normalized), None)
    if resolved is None or resolved not in supported:
        raise UnsupportedIsolationLevelError(
            getattr(level, "value", str(level)), dialect, [member.value for member in supported]
        )
    return resolved


class BaseClient:
    """Delegates shared by the top-level client and transaction clients"""

    def __init__(self):
        self.user = ModelDelegate(self, get_meta("User"))
        self.admin = ModelDelegate(self, get_meta("Admin"))
        self.task = ModelDelegate(self, get_meta("Task"))
        self.task_submission = ModelDelegate(self, get_meta("TaskSubmission"))
        self.certificate = ModelDelegate(self, get_meta("Certificate"))
        self.redeem_request = ModelDelegate(self, get_meta("RedeemRequest"))
        self.payout = ModelDelegate(self, get_meta("Payout"))
        self.audit_log = ModelDelegate(self, get_meta("AuditLog"))

    @property
    def delegates(self) -> List[ModelDelegate]:
        return [
            self.user, self.admin, self.task, self.task_submission,
            self.certificate, self.redeem_request, self.payout, self.audit_log,
        ]

    @property
    def settings(self) -> Settings:
        raise NotImplementedError

    @property
    def _middlewares(self) -> List[Middleware]:
        raise NotImplementedError

    @property
    def in_transaction(self) -> bool:
        return False

    async def _dispatch(self, model: str, action: str, args: Dict[str, Any], handler) -> Any:
        params = QueryParams(model=model, action=action, args=dict(args), run_in_transaction=self.in_transaction)
        return await run_middleware(self._middlewares, params, handler)

    def _session_scope(self, model: str):
        raise NotImplementedError


class TaskHubClient(BaseClient):
    """
    Async client over the TaskHub schema

    Connects lazily on first use; after disconnect() every operation
    raises ClientNotConnectedError until connect() is called again.

    Usage:
        async with TaskHubClient("sqlite:///./taskhub.db") as db:
            user = await db.user.find_unique(where={"email": "a@b.com"})
    """

    def __init__(self, database_url: Optional[str] = None, settings: Optional[Settings] = None, **engine_options: Any):
        super().__init__()
        self._settings = settings or get_settings()
        self.database_url = to_async_database_url(database_url or self._settings.DATABASE_URL)
        self._engine_options = engine_options
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None
        self._state: ClientState = "idle"
        self._connect_lock = asyncio.Lock()
        self._middleware_stack: List[Middleware] = []
        self._events = QueryEventEmitter(self._settings.SLOW_QUERY_MS)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def _middlewares(self) -> List[Middleware]:
        return self._middleware_stack

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def dialect(self) -> str:
        return make_url(self.database_url).get_backend_name()

    @property
    def engine(self) -> Optional[AsyncEngine]:
        return self._engine

    async def connect(self) -> None:
        async with self._connect_lock:
            if self._state == "connected":
                return
            engine = create_engine(self.database_url, settings=self._settings, **self._engine_options)
            self._events.attach(engine)
            try:
                async with engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            except SQLAlchemyError as exc:
                await engine.dispose()
                logger.error(f"Failed to connect to {self.dialect} store: {exc}")
                raise translate_store_error("connect", exc) from exc
            self._engine = engine
            self._session_factory = create_session_factory(engine)
            self._state = "connected"
            logger.info(f"{self._settings.APP_NAME} client connected ({self.dialect})")

    async def disconnect(self) -> None:
        async with self._connect_lock:
            if self._engine is not None:
                await close_db(self._engine)
            self._engine = None
            self._session_factory = None
            self._state = "disconnected"
            logger.info(f"{self._settings.APP_NAME} client disconnected")

    async def __aenter__(self) -> "TaskHubClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    async def _ensure_connected(self) -> AsyncEngine:
        if self._state == "disconnected":
            raise ClientNotConnectedError()
        if self._state == "idle":
            await self.connect()
        return self._engine

    async def create_all(self) -> None:
        await init_db(await self._ensure_connected())

    async def drop_all(self) -> None:
        await drop_db(await self._ensure_connected())

    def use(self, middleware: Middleware) -> None:
        """Register a query middleware: async def mw(params, call_next)"""
        self._middleware_stack.append(middleware)

    def on(self, event_name: str, handler: QueryHandler) -> None:
        """Subscribe to client events; only "query" is emitted"""
        if event_name != "query":
            raise ValueError(f"Unknown event {event_name!r}; expected 'query'")
        self._events.subscribe(handler)

    @asynccontextmanager
    async def _session_scope(self, model: str):
        await self._ensure_connected()
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except TaskHubError:
            raise
        except SQLAlchemyError as exc:
            raise translate_store_error(model, exc) from exc

    async def transaction(
        self,
        operations: TransactionBody,
        max_wait: Optional[float] = None,
        timeout: Optional[float] = None,
        isolation_level: Any = None,
    ) -> Any:
        """
        Run operations atomically

        `operations` is either `async fn(tx)` or a list of `tx -> awaitable`
        callables run in order. Any failure rolls everything back.
        """
        if not callable(operations):
            if not isinstance(operations, (list, tuple)) or not all(callable(op) for op in operations):
                raise TransactionError("transaction expects a callable or a list of callables taking the transaction client")
        level = resolve_isolation_level(isolation_level, self.dialect)
        max_wait = self._settings.TRANSACTION_MAX_WAIT if max_wait is None else max_wait
        timeout = self._settings.TRANSACTION_TIMEOUT if timeout is None else timeout

        engine = await self._ensure_connected()
        try:
            conn = await asyncio.wait_for(engine.connect().start(), timeout=max_wait)
        except asyncio.TimeoutError:
            logger.warning(f"Transaction could not acquire a connection within {max_wait}s")
            raise TransactionTimeoutError(f"Could not acquire a connection within {max_wait}s (max_wait)")
        except SQLAlchemyError as exc:
            raise translate_store_error("transaction", exc) from exc

        try:
            if level is not None:
                await conn.execution_options(isolation_level=level.value)
            outer = await conn.begin()
            session = self._session_factory(bind=conn)
            tx_client = TransactionClient(self, session)
            logger.debug("Transaction started")
            try:
                result = await asyncio.wait_for(_run_body(operations, tx_client), timeout=timeout)
            except asyncio.TimeoutError:
                if outer.is_active:
                    await outer.rollback()
                logger.warning(f"Transaction exceeded {timeout}s and was rolled back")
                raise TransactionTimeoutError(f"Transaction exceeded its {timeout}s timeout")
            except BaseException:
                # A failed flush may already have rolled the connection back
                if outer.is_active:
                    await outer.rollback()
                logger.debug("Transaction rolled back")
                raise
            finally:
                tx_client._close()
                await session.close()

            if not outer.is_active:
                raise TransactionError("Transaction was rolled back by a failed operation and cannot commit")
            try:
                await outer.commit()
            except SQLAlchemyError as exc:
                raise translate_store_error("transaction", exc) from exc
            logger.debug("Transaction committed")
            return result
        finally:
            await conn.close()


async def _run_body(operations: TransactionBody, tx: "TransactionClient") -> Any:
    if callable(operations):
        return await operations(tx)
    results = []
    for operation in operations:
        results.append(await operation(tx))
    return results


class TransactionClient(BaseClient):
    """Delegates bound to one open transaction"""

    def __init__(self, root: TaskHubClient, session: AsyncSession):
        super().__init__()
        self._root = root
        self._session = session
        self._closed = False

    @property
    def settings(self) -> Settings:
        return self._root.settings

    @property
    def _middlewares(self) -> List[Middleware]:
        return self._root._middlewares

    @property
    def in_transaction(self) -> bool:
        return True

    def _close(self) -> None:
        self._closed = True

    async def transaction(self, *args: Any, **kwargs: Any) -> Any:
        raise TransactionError("Nested transactions are not supported; use the transaction client directly")

    @asynccontextmanager
    async def _session_scope(self, model: str):
        if self._closed:
            raise TransactionError("Transaction is already closed")
        try:
            yield self._session
        except TaskHubError:
            raise
        except PendingRollbackError as exc:
            raise TransactionError(
                "Transaction was rolled back by an earlier failed operation; no further operations can run in it"
            ) from exc
        except SQLAlchemyError as exc:
            raise translate_store_error(model, exc) from exc
