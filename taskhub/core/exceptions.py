"""
Custom exception classes for the data-access client
Every client failure is a TaskHubError with a stable error code
"""

from typing import Any, Dict, Optional, Sequence


class TaskHubError(Exception):
    """Base exception class for TaskHub client errors"""

    error_code = "TASKHUB_ERROR"

    def __init__(self, detail: str, error_code: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        if error_code:
            self.error_code = error_code

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.detail}"


class RecordNotFoundError(TaskHubError):
    """No record matched a unique selector or a required filter"""

    error_code = "NOT_FOUND"

    def __init__(self, model: str, where: Optional[Dict[str, Any]] = None, detail: Optional[str] = None):
        self.model = model
        self.where = where
        super().__init__(detail or f"No {model} record found for {where!r}")


class UniqueConstraintError(TaskHubError):
    """A unique field would collide with an existing row"""

    error_code = "UNIQUE_CONSTRAINT_VIOLATION"

    def __init__(self, model: str, fields: Sequence[str] = (), detail: Optional[str] = None):
        self.model = model
        self.fields = tuple(fields)
        target = ", ".join(self.fields) or "unknown field"
        super().__init__(detail or f"Unique constraint failed on {model}({target})")


class ForeignKeyConstraintError(TaskHubError):
    """A foreign key points at a missing row, or a parent row is still referenced"""

    error_code = "FOREIGN_KEY_VIOLATION"

    def __init__(self, model: str, detail: Optional[str] = None):
        self.model = model
        super().__init__(detail or f"Foreign key constraint failed on {model}")


class QueryValidationError(TaskHubError):
    """The query arguments are malformed; raised before any store access"""

    error_code = "VALIDATION_ERROR"


class InvalidStatusTransitionError(QueryValidationError):
    """Status change not allowed by the entity's state machine"""

    error_code = "INVALID_STATUS_TRANSITION"

    def __init__(self, model: str, current: str, requested: str):
        self.model = model
        self.current = current
        self.requested = requested
        super().__init__(f"{model}.status cannot move from {current} to {requested}")


class TransactionError(TaskHubError):
    """Transaction API misuse or failure"""

    error_code = "TRANSACTION_ERROR"


class TransactionTimeoutError(TransactionError):
    """max_wait or timeout budget of a transaction was exceeded"""

    error_code = "TRANSACTION_TIMEOUT"


class ConfigurationError(TaskHubError):
    """Client configuration is invalid for the connected store"""

    error_code = "CONFIGURATION_ERROR"


class UnsupportedIsolationLevelError(ConfigurationError):
    """Isolation level not supported by the store dialect"""

    def __init__(self, level: str, dialect: str, supported: Sequence[str]):
        self.level = level
        self.dialect = dialect
        self.supported = tuple(supported)
        super().__init__(
            f"Isolation level {level} is not supported by {dialect}; "
            f"supported levels: {', '.join(self.supported)}"
        )


class ClientNotConnectedError(TaskHubError):
    """Operation issued after disconnect()"""

    error_code = "CLIENT_NOT_CONNECTED"

    def __init__(self, detail: str = "Client is disconnected; call connect() first"):
        super().__init__(detail)


class UnknownStoreError(TaskHubError):
    """Store error that maps to no other kind"""

    error_code = "UNKNOWN_STORE_ERROR"

    def __init__(self, detail: str, store_code: Optional[str] = None):
        self.store_code = store_code
        if store_code:
            detail = f"{detail} (store code {store_code})"
        super().__init__(detail)
