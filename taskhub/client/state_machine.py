"""
Status state machines for submissions, redeem requests and payouts
"""

from typing import Dict, List, Optional, Set, Type
import enum

from taskhub.core.exceptions import InvalidStatusTransitionError, QueryValidationError
from taskhub.models.enums import SubmissionStatus, RedeemStatus, PayoutStatus


class StatusStateMachine:
    """
    Manages valid status transitions for one enum-bearing model
    """

    def __init__(self, model: str, status_enum: Type[enum.Enum], transitions: Dict[enum.Enum, Set[enum.Enum]]):
        self.model = model
        self.status_enum = status_enum
        self.transitions = transitions

    @property
    def initial_state(self) -> enum.Enum:
        return next(iter(self.status_enum))

    def coerce(self, status) -> enum.Enum:
        """Accept enum members or their persisted string literals"""
        if isinstance(status, self.status_enum):
            return status
        try:
            return self.status_enum(status)
        except ValueError:
            raise QueryValidationError(f"Invalid {self.model}.status value {status!r}")

    def can_transition(self, current_status, new_status) -> bool:
        """
        Check if transition is valid

        Re-applying the current status is always allowed.
        """
        current = self.coerce(current_status)
        new = self.coerce(new_status)
        if current == new:
            return True
        return new in self.transitions.get(current, set())

    def get_valid_transitions(self, current_status) -> List[enum.Enum]:
        """Get list of valid transitions from current status"""
        current = self.coerce(current_status)
        return sorted(self.transitions.get(current, set()), key=lambda s: s.value)

    def is_terminal_state(self, status) -> bool:
        """Check if no more transitions are possible"""
        return len(self.transitions.get(self.coerce(status), set())) == 0

    def validate_transition(self, current_status, new_status) -> None:
        if not self.can_transition(current_status, new_status):
            raise InvalidStatusTransitionError(
                self.model,
                self.coerce(current_status).value,
                self.coerce(new_status).value,
            )


submission_state_machine = StatusStateMachine(
    "TaskSubmission",
    SubmissionStatus,
    {
        SubmissionStatus.PENDING: {SubmissionStatus.APPROVED, SubmissionStatus.REJECTED},
        SubmissionStatus.APPROVED: set(),
        SubmissionStatus.REJECTED: set(),
    },
)

redeem_state_machine = StatusStateMachine(
    "RedeemRequest",
    RedeemStatus,
    {
        RedeemStatus.PENDING: {RedeemStatus.APPROVED, RedeemStatus.REJECTED},
        RedeemStatus.APPROVED: {RedeemStatus.PAID},
        RedeemStatus.REJECTED: set(),
        RedeemStatus.PAID: set(),
    },
)

# FAILED payouts are retried with a new Payout row, not a transition
payout_state_machine = StatusStateMachine(
    "Payout",
    PayoutStatus,
    {
        PayoutStatus.PENDING: {PayoutStatus.PROCESSING},
        PayoutStatus.PROCESSING: {PayoutStatus.COMPLETED, PayoutStatus.FAILED},
        PayoutStatus.COMPLETED: set(),
        PayoutStatus.FAILED: set(),
    },
)

STATE_MACHINES: Dict[str, StatusStateMachine] = {
    machine.model: machine
    for machine in (submission_state_machine, redeem_state_machine, payout_state_machine)
}


def get_state_machine(model: str) -> Optional[StatusStateMachine]:
    return STATE_MACHINES.get(model)
