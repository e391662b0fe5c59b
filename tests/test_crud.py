"""
Tests for create/read/update/delete delegate operations.
"""
import pytest
from datetime import timezone

from taskhub.core.exceptions import (
    ForeignKeyConstraintError,
    QueryValidationError,
    RecordNotFoundError,
    UniqueConstraintError,
)
from tests.conftest import user_data


class TestCreate:
    """Test create and defaults."""

    async def test_create_round_trip(self, client):
        """A created record reads back equal through its unique key."""
        created = await client.user.create(data=user_data(email="alice@example.com", referral_code="ALICE1"))

        found = await client.user.find_unique(where={"email": "alice@example.com"})

        assert found == created
        assert found["points"] == 0
        assert found["referred_by_code"] is None
        assert len(found["id"]) == 36
        assert found["created_at"].tzinfo is not None
        assert found["created_at"].utcoffset() == timezone.utc.utcoffset(None)

    async def test_duplicate_email_raises_unique_error(self, client):
        """Second user with the same email fails and leaves the store unchanged."""
        await client.user.create(data=user_data(email="dup@example.com"))

        with pytest.raises(UniqueConstraintError) as exc_info:
            await client.user.create(data=user_data(email="dup@example.com"))

        assert "email" in exc_info.value.fields
        assert exc_info.value.error_code == "UNIQUE_CONSTRAINT_VIOLATION"
        assert await client.user.count() == 1

    async def test_status_defaults_to_pending(self, client, make_user, make_task):
        """Submission, redeem request and payout start PENDING."""
        user = await make_user()
        task = await make_task()

        submission = await client.task_submission.create(data={"user_id": user["id"], "task_id": task["id"]})
        redeem = await client.redeem_request.create(data={"user_id": user["id"], "amount": 100})
        payout = await client.payout.create(
            data={"user_id": user["id"], "redeem_request_id": redeem["id"], "amount": 1.0}
        )

        assert submission["status"] == "PENDING"
        assert redeem["status"] == "PENDING"
        assert payout["status"] == "PENDING"
        assert payout["currency"] == "USD"

    async def test_task_defaults(self, client):
        """Task flags, requirements and status get their defaults."""
        task = await client.task.create(data={"title": "Read docs", "description": "All of them", "points": 5})

        assert task["is_active"] is True
        assert task["proof_required"] is True
        assert task["requirements"] == []
        assert task["status"] == "ACTIVE"

    async def test_admin_role_default(self, client):
        admin = await client.admin.create(data={"email": "root@example.com", "password": "x"})
        assert admin["role"] == "ADMIN"

    async def test_unknown_field_rejected(self, client):
        with pytest.raises(QueryValidationError):
            await client.user.create(data=user_data(nickname="ally"))

    async def test_missing_required_field_rejected(self, client):
        data = user_data()
        del data["referral_code"]
        with pytest.raises(QueryValidationError):
            await client.user.create(data=data)

    async def test_bad_enum_value_rejected(self, client, make_user, make_task):
        user = await make_user()
        task = await make_task()
        with pytest.raises(QueryValidationError):
            await client.task_submission.create(
                data={"user_id": user["id"], "task_id": task["id"], "status": "MAYBE"}
            )

    async def test_missing_parent_raises_foreign_key_error(self, client, make_task):
        task = await make_task()
        with pytest.raises(ForeignKeyConstraintError):
            await client.task_submission.create(data={"user_id": "missing-user", "task_id": task["id"]})


class TestFindUnique:
    """Test unique lookups."""

    async def test_missing_record_returns_none(self, client):
        assert await client.user.find_unique(where={"id": "nope"}) is None

    async def test_or_throw_raises_not_found(self, client):
        with pytest.raises(RecordNotFoundError):
            await client.user.find_unique_or_throw(where={"email": "ghost@example.com"})

    async def test_non_unique_selector_rejected(self, client):
        with pytest.raises(QueryValidationError):
            await client.user.find_unique(where={"name": "Alice"})

    async def test_extra_filters_narrow_match(self, client, make_user):
        user = await make_user(points=10)
        assert await client.user.find_unique(where={"id": user["id"], "points": {"gt": 50}}) is None
        assert (await client.user.find_unique(where={"id": user["id"], "points": 10}))["id"] == user["id"]

    async def test_find_first_or_throw(self, client, make_user):
        await make_user(name="Zed")
        with pytest.raises(RecordNotFoundError):
            await client.user.find_first_or_throw(where={"name": "Nobody"})
        found = await client.user.find_first_or_throw(where={"name": "Zed"})
        assert found["name"] == "Zed"


class TestUpdate:
    """Test single and bulk updates."""

    async def test_update_changes_only_given_fields(self, client, make_user):
        user = await make_user(name="Before", points=5)

        updated = await client.user.update(where={"id": user["id"]}, data={"name": "After"})

        assert updated["name"] == "After"
        for field in ("email", "password", "points", "referral_code", "referred_by_code", "created_at"):
            assert updated[field] == user[field]
        assert updated["updated_at"] >= user["updated_at"]

    async def test_update_missing_record_raises(self, client):
        with pytest.raises(RecordNotFoundError):
            await client.user.update(where={"id": "missing"}, data={"name": "x"})

    async def test_atomic_number_operations(self, client, make_user):
        user = await make_user(points=10)

        user = await client.user.update(where={"id": user["id"]}, data={"points": {"increment": 5}})
        assert user["points"] == 15
        user = await client.user.update(where={"id": user["id"]}, data={"points": {"decrement": 3}})
        assert user["points"] == 12
        user = await client.user.update(where={"id": user["id"]}, data={"points": {"multiply": 2}})
        assert user["points"] == 24
        user = await client.user.update(where={"id": user["id"]}, data={"points": {"divide": 4}})
        assert user["points"] == 6
        user = await client.user.update(where={"id": user["id"]}, data={"points": {"set": 100}})
        assert user["points"] == 100

    async def test_atomic_operation_on_string_rejected(self, client, make_user):
        user = await make_user()
        with pytest.raises(QueryValidationError):
            await client.user.update(where={"id": user["id"]}, data={"name": {"increment": 1}})

    async def test_update_to_taken_email_raises_unique_error(self, client, make_user):
        first = await make_user()
        second = await make_user()
        with pytest.raises(UniqueConstraintError):
            await client.user.update(where={"id": second["id"]}, data={"email": first["email"]})

    async def test_update_many_counts_rows(self, client, make_user):
        await make_user(points=1)
        await make_user(points=2)
        await make_user(points=50)

        count = await client.user.update_many(where={"points": {"lt": 10}}, data={"points": {"increment": 100}})

        assert count == 2
        assert await client.user.count(where={"points": {"gte": 100}}) == 2

    async def test_update_many_without_match_returns_zero(self, client):
        assert await client.user.update_many(where={"name": "nobody"}, data={"points": 1}) == 0


class TestUpsert:
    """Test upsert create and update paths."""

    async def test_upsert_creates_then_updates(self, client):
        where = {"email": "up@example.com"}
        created = await client.user.upsert(
            where=where,
            create=user_data(email="up@example.com", points=1),
            update={"points": {"increment": 1}},
        )
        assert created["points"] == 1

        updated = await client.user.upsert(
            where=where,
            create=user_data(email="up@example.com", points=1),
            update={"points": {"increment": 1}},
        )
        assert updated["id"] == created["id"]
        assert updated["points"] == 2
        assert await client.user.count() == 1

    async def test_upsert_empty_update_returns_existing(self, client, make_user):
        user = await make_user()
        result = await client.user.upsert(where={"id": user["id"]}, create=user_data(), update={})
        assert result == user


class TestDelete:
    """Test single and bulk deletes."""

    async def test_delete_returns_record_and_removes_it(self, client, make_user):
        user = await make_user()

        deleted = await client.user.delete(where={"id": user["id"]})

        assert deleted == user
        assert await client.user.find_unique(where={"id": user["id"]}) is None
        with pytest.raises(RecordNotFoundError):
            await client.user.find_unique_or_throw(where={"id": user["id"]})

    async def test_delete_missing_raises(self, client):
        with pytest.raises(RecordNotFoundError):
            await client.user.delete(where={"id": "missing"})

    async def test_delete_referenced_parent_raises_foreign_key_error(self, client, make_submission):
        submission = await make_submission()
        with pytest.raises(ForeignKeyConstraintError):
            await client.user.delete(where={"id": submission["user_id"]})

    async def test_delete_many(self, client, make_user):
        await make_user(points=1)
        await make_user(points=1)
        await make_user(points=9)

        assert await client.user.delete_many(where={"points": 1}) == 2
        assert await client.user.count() == 1
        assert await client.user.delete_many() == 1


class TestCreateMany:
    """Test bulk inserts."""

    async def test_create_many_inserts_all(self, client):
        count = await client.user.create_many(data=[user_data(), user_data(), user_data()])
        assert count == 3
        assert await client.user.count() == 3

    async def test_create_many_collision_fails_whole_batch(self, client):
        with pytest.raises(UniqueConstraintError):
            await client.user.create_many(data=[user_data(email="same@example.com"), user_data(email="same@example.com")])
        assert await client.user.count() == 0

    async def test_create_many_skip_duplicates(self, client, make_user):
        await make_user(email="taken@example.com")

        count = await client.user.create_many(
            data=[
                user_data(email="taken@example.com"),
                user_data(email="new@example.com"),
                user_data(email="new@example.com"),
            ],
            skip_duplicates=True,
        )

        assert count == 1
        assert await client.user.count() == 2

    async def test_create_many_empty_list(self, client):
        assert await client.user.create_many(data=[]) == 0


class TestRoundTrip:
    """Every entity reads back what was created with an explicit id."""

    async def test_find_unique_after_create_with_id(self, client):
        admin = {"id": "admin-1", "email": "boss@example.com", "password": "x", "name": "Boss"}
        user = user_data(id="user-1")
        task = {"id": "task-1", "title": "T", "description": "D", "points": 3,
                "requirements": ["one", "two"], "created_by": "admin-1"}
        submission = {"id": "sub-1", "user_id": "user-1", "task_id": "task-1", "proof_url": "https://p"}
        certificate = {"id": "cert-1", "user_id": "user-1", "course_name": "Python",
                       "pdf_url": "https://pdf", "access_code": "CERT-1"}
        redeem = {"id": "redeem-1", "user_id": "user-1", "amount": 100}
        payout = {"id": "payout-1", "user_id": "user-1", "redeem_request_id": "redeem-1",
                  "amount": 1.0, "gateway": "MANUAL"}
        audit = {"id": "audit-1", "admin_id": "admin-1", "action": "APPROVE_TASK",
                 "entity_id": "sub-1", "entity_type": "TASK_SUBMISSION"}

        cases = [
            (client.admin, admin),
            (client.user, user),
            (client.task, task),
            (client.task_submission, submission),
            (client.certificate, certificate),
            (client.redeem_request, redeem),
            (client.payout, payout),
            (client.audit_log, audit),
        ]
        for delegate, data in cases:
            created = await delegate.create(data=data)
            found = await delegate.find_unique(where={"id": data["id"]})

            assert found == created, delegate.model_name
            for key, value in data.items():
                assert found[key] == value, (delegate.model_name, key)


class TestUniqueFields:
    """Every unique field rejects a second record with the same value."""

    async def test_user_referral_code(self, client):
        await client.user.create(data=user_data(referral_code="SAME1"))
        with pytest.raises(UniqueConstraintError) as exc_info:
            await client.user.create(data=user_data(referral_code="SAME1"))
        assert "referral_code" in exc_info.value.fields
        assert await client.user.count() == 1

    async def test_admin_email(self, client):
        await client.admin.create(data={"email": "ops@example.com", "password": "x"})
        with pytest.raises(UniqueConstraintError):
            await client.admin.create(data={"email": "ops@example.com", "password": "y"})
        assert await client.admin.count() == 1

    async def test_certificate_access_code(self, client, make_user):
        user = await make_user()
        data = {"user_id": user["id"], "course_name": "Python", "pdf_url": "https://pdf", "access_code": "CERT-SAME"}
        await client.certificate.create(data=data)
        with pytest.raises(UniqueConstraintError) as exc_info:
            await client.certificate.create(data=dict(data, course_name="SQL"))
        assert "access_code" in exc_info.value.fields
        assert await client.certificate.count() == 1

    async def test_one_payout_per_redeem_request(self, client, make_user):
        user = await make_user()
        redeem = await client.redeem_request.create(data={"user_id": user["id"], "amount": 100})
        data = {"user_id": user["id"], "redeem_request_id": redeem["id"], "amount": 1.0}
        await client.payout.create(data=data)
        with pytest.raises(UniqueConstraintError) as exc_info:
            await client.payout.create(data=data)
        assert "redeem_request_id" in exc_info.value.fields
        assert await client.payout.count() == 1


class TestEmailStorage:
    """Emails are validated but stored exactly as written."""

    async def test_mixed_case_email_round_trip(self, client):
        created = await client.user.create(data=user_data(email="Bob@Example.COM"))

        found = await client.user.find_unique(where={"email": "Bob@Example.COM"})

        assert created["email"] == "Bob@Example.COM"
        assert found is not None
        assert found["id"] == created["id"]

    async def test_invalid_email_rejected_on_create(self, client):
        with pytest.raises(QueryValidationError):
            await client.user.create(data=user_data(email="not-an-email"))

    async def test_update_email_kept_as_written(self, client, make_user):
        user = await make_user()
        updated = await client.user.update(where={"id": user["id"]}, data={"email": "New@Example.COM"})
        assert updated["email"] == "New@Example.COM"
        assert (await client.user.find_unique(where={"email": "New@Example.COM"}))["id"] == user["id"]


class TestUpdateValidation:
    """Updates enforce the same field constraints as create."""

    async def test_invalid_email_rejected(self, client, make_user):
        user = await make_user()
        with pytest.raises(QueryValidationError):
            await client.user.update(where={"id": user["id"]}, data={"email": "not-an-email"})
        assert (await client.user.find_unique(where={"id": user["id"]}))["email"] == user["email"]

    async def test_max_length_enforced(self, client, make_task):
        task = await make_task()
        with pytest.raises(QueryValidationError):
            await client.task.update(where={"id": task["id"]}, data={"title": "x" * 201})

    async def test_max_length_enforced_through_set(self, client, make_user):
        user = await make_user()
        with pytest.raises(QueryValidationError):
            await client.user.update(where={"id": user["id"]}, data={"referral_code": {"set": "R" * 51}})

    async def test_update_many_validates(self, client, make_user):
        await make_user()
        with pytest.raises(QueryValidationError):
            await client.user.update_many(data={"name": "n" * 256})
