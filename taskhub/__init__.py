"""TaskHub data-access layer"""

from taskhub.client import IsolationLevel, QueryEvent, QueryParams, TaskHubClient
from taskhub.core.config import Settings, get_settings
from taskhub.core.exceptions import (
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

__version__ = "1.0.0"

__all__ = [
    "TaskHubClient",
    "IsolationLevel",
    "QueryEvent",
    "QueryParams",
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
