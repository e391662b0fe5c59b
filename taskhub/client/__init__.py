"""Async data-access client"""

from .client import IsolationLevel, TaskHubClient, TransactionClient
from .delegate import ModelDelegate
from .middleware import QueryEvent, QueryParams
from .state_machine import (
    StatusStateMachine,
    get_state_machine,
    payout_state_machine,
    redeem_state_machine,
    submission_state_machine,
)

__all__ = [
    "TaskHubClient",
    "TransactionClient",
    "IsolationLevel",
    "ModelDelegate",
    "QueryEvent",
    "QueryParams",
    "StatusStateMachine",
    "get_state_machine",
    "submission_state_machine",
    "redeem_state_machine",
    "payout_state_machine",
]
