"""
Tests for status state machines and their enforcement on writes.
"""
import pytest

from taskhub.client import payout_state_machine, redeem_state_machine, submission_state_machine
from taskhub.core.exceptions import InvalidStatusTransitionError, QueryValidationError
from taskhub.models.enums import PayoutStatus, RedeemStatus, SubmissionStatus


class TestStateMachines:
    """Unit tests for the transition tables."""

    def test_submission_transitions(self):
        assert submission_state_machine.can_transition("PENDING", "APPROVED")
        assert submission_state_machine.can_transition(SubmissionStatus.PENDING, SubmissionStatus.REJECTED)
        assert not submission_state_machine.can_transition("APPROVED", "PENDING")
        assert submission_state_machine.is_terminal_state("REJECTED")

    def test_redeem_transitions(self):
        assert redeem_state_machine.get_valid_transitions("APPROVED") == [RedeemStatus.PAID]
        assert not redeem_state_machine.can_transition("PENDING", "PAID")
        assert redeem_state_machine.initial_state == RedeemStatus.PENDING

    def test_payout_transitions(self):
        assert payout_state_machine.get_valid_transitions("PROCESSING") == [
            PayoutStatus.COMPLETED, PayoutStatus.FAILED,
        ]
        assert not payout_state_machine.can_transition("PENDING", "COMPLETED")
        assert payout_state_machine.is_terminal_state(PayoutStatus.FAILED)

    def test_same_status_is_allowed(self):
        assert payout_state_machine.can_transition("COMPLETED", "COMPLETED")

    def test_invalid_transition_error(self):
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            submission_state_machine.validate_transition("APPROVED", "REJECTED")
        assert exc_info.value.current == "APPROVED"
        assert exc_info.value.requested == "REJECTED"
        assert isinstance(exc_info.value, QueryValidationError)

    def test_unknown_status_rejected(self):
        with pytest.raises(QueryValidationError):
            redeem_state_machine.coerce("LOST")


class TestEnforcement:
    """Status changes through the client."""

    async def test_valid_transition_applies(self, client, make_submission):
        submission = await make_submission()
        updated = await client.task_submission.update(where={"id": submission["id"]}, data={"status": "APPROVED"})
        assert updated["status"] == "APPROVED"

    async def test_invalid_transition_rejected_and_not_written(self, client, make_submission):
        submission = await make_submission()
        await client.task_submission.update(where={"id": submission["id"]}, data={"status": "REJECTED"})

        with pytest.raises(InvalidStatusTransitionError):
            await client.task_submission.update(where={"id": submission["id"]}, data={"status": "APPROVED"})

        current = await client.task_submission.find_unique(where={"id": submission["id"]})
        assert current["status"] == "REJECTED"

    async def test_update_many_checks_every_current_status(self, client, make_user):
        user = await make_user()
        first = await client.redeem_request.create(data={"user_id": user["id"], "amount": 10})
        await client.redeem_request.create(data={"user_id": user["id"], "amount": 20})
        await client.redeem_request.update(where={"id": first["id"]}, data={"status": "APPROVED"})

        with pytest.raises(InvalidStatusTransitionError):
            await client.redeem_request.update_many(where={"user_id": user["id"]}, data={"status": "PAID"})

        assert await client.redeem_request.update_many(where={"status": "APPROVED"}, data={"status": "PAID"}) == 1

    async def test_upsert_update_path_enforced(self, client, make_user):
        user = await make_user()
        redeem = await client.redeem_request.create(data={"user_id": user["id"], "amount": 10})
        payout = await client.payout.create(
            data={"user_id": user["id"], "redeem_request_id": redeem["id"], "amount": 0.1}
        )

        with pytest.raises(InvalidStatusTransitionError):
            await client.payout.upsert(
                where={"redeem_request_id": redeem["id"]},
                create={"user_id": user["id"], "redeem_request_id": redeem["id"], "amount": 0.1},
                update={"status": "COMPLETED"},
            )

        processing = await client.payout.upsert(
            where={"id": payout["id"]},
            create={"user_id": user["id"], "redeem_request_id": redeem["id"], "amount": 0.1},
            update={"status": "PROCESSING"},
        )
        assert processing["status"] == "PROCESSING"

    async def test_enforcement_can_be_disabled(self, database_url, settings, make_user):
        from taskhub.client import TaskHubClient

        relaxed = TaskHubClient(database_url, settings=settings.model_copy(update={"ENFORCE_STATUS_TRANSITIONS": False}))
        user = await make_user()
        redeem = await relaxed.redeem_request.create(data={"user_id": user["id"], "amount": 10})

        paid = await relaxed.redeem_request.update(where={"id": redeem["id"]}, data={"status": "PAID"})

        assert paid["status"] == "PAID"
        await relaxed.disconnect()
