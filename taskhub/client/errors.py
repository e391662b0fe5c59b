"""
Translate SQLAlchemy / driver errors into client errors
"""

from typing import Optional, Tuple
import logging
import re

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

from taskhub.core.exceptions import (
    ForeignKeyConstraintError,
    TaskHubError,
    UniqueConstraintError,
    UnknownStoreError,
)

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"

_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: (.+)")
_POSTGRES_KEY = re.compile(r"Key \((.+?)\)=")
_MYSQL_DUPLICATE = re.compile(r"for key '(?:[\w]+\.)?(\w+)'")


def store_code(orig: BaseException) -> Optional[str]:
    """SQLSTATE or driver error code, when the driver exposes one"""
    for attr in ("sqlstate", "pgcode", "sqlite_errorname"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int):
        return str(args[0])
    return None


def unique_fields(message: str) -> Tuple[str, ...]:
    match = _SQLITE_UNIQUE.search(message)
    if match:
        return tuple(part.strip().split(".")[-1] for part in match.group(1).splitlines()[0].split(","))
    match = _POSTGRES_KEY.search(message)
    if match:
        return tuple(part.strip() for part in match.group(1).split(","))
    match = _MYSQL_DUPLICATE.search(message)
    if match:
        return (match.group(1),)
    return ()


def translate_store_error(model: str, exc: SQLAlchemyError) -> TaskHubError:
    orig = getattr(exc, "orig", None) or exc
    message = str(orig)
    code = store_code(orig)

    if isinstance(exc, IntegrityError):
        if code == UNIQUE_VIOLATION or "UNIQUE constraint failed" in message or "Duplicate entry" in message:
            return UniqueConstraintError(model, unique_fields(message))
        if code == FOREIGN_KEY_VIOLATION or "FOREIGN KEY constraint failed" in message or "foreign key constraint" in message:
            return ForeignKeyConstraintError(model, detail=f"Foreign key constraint failed on {model}: {message}")

    if isinstance(exc, DBAPIError):
        logger.error("Store error on %s: %s", model, message)
        return UnknownStoreError(message, code)

    logger.error("Unexpected SQLAlchemy error on %s: %s", model, exc)
    return UnknownStoreError(str(exc))
