"""Core configuration, database, logging and error types"""

from .config import Settings, get_settings
from .exceptions import (
    TaskHubError,
    RecordNotFoundError,
    UniqueConstraintError,
    ForeignKeyConstraintError,
    QueryValidationError,
    InvalidStatusTransitionError,
    TransactionError,
    TransactionTimeoutError,
    ConfigurationError,
    UnsupportedIsolationLevelError,
    ClientNotConnectedError,
    UnknownStoreError,
)

__all__ = [
    "Settings",
    "get_settings",
    "TaskHubError",
    "RecordNotFoundError",
    "UniqueConstraintError",
    "ForeignKeyConstraintError",
    "QueryValidationError",
    "InvalidStatusTransitionError",
    "TransactionError",
    "TransactionTimeoutError",
    "ConfigurationError",
    "UnsupportedIsolationLevelError",
    "ClientNotConnectedError",
    "UnknownStoreError",
]
