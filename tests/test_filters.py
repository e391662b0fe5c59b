"""
Tests for where-clause filtering.
"""
import pytest

from taskhub.core.exceptions import QueryValidationError


async def _emails(client, where):
    return sorted(user["email"] for user in await client.user.find_many(where=where))


class TestScalarFilters:
    """Test scalar operators."""

    @pytest.fixture(autouse=True)
    async def users(self, make_user):
        await make_user(email="ann@example.com", name="Ann Lee", points=10)
        await make_user(email="bob@example.com", name="Bob Stone", points=20)
        await make_user(email="cy@example.org", name=None, points=30)

    async def test_equality_shorthand(self, client):
        assert await _emails(client, {"points": 20}) == ["bob@example.com"]

    async def test_null_shorthand(self, client):
        assert await _emails(client, {"name": None}) == ["cy@example.org"]

    async def test_not_null(self, client):
        assert await _emails(client, {"name": {"not": None}}) == ["ann@example.com", "bob@example.com"]

    async def test_ranges(self, client):
        assert await _emails(client, {"points": {"gt": 10, "lte": 30}}) == ["bob@example.com", "cy@example.org"]
        assert await _emails(client, {"points": {"lt": 20}}) == ["ann@example.com"]
        assert await _emails(client, {"points": {"gte": 30}}) == ["cy@example.org"]

    async def test_in_and_not_in(self, client):
        assert await _emails(client, {"points": {"in": [10, 30]}}) == ["ann@example.com", "cy@example.org"]
        assert await _emails(client, {"points": {"not_in": [10, 30]}}) == ["bob@example.com"]
        assert await _emails(client, {"points": {"in": []}}) == []

    async def test_string_operators(self, client):
        assert await _emails(client, {"email": {"ends_with": ".org"}}) == ["cy@example.org"]
        assert await _emails(client, {"email": {"starts_with": "bo"}}) == ["bob@example.com"]
        assert await _emails(client, {"name": {"contains": "Lee"}}) == ["ann@example.com"]

    async def test_insensitive_mode(self, client):
        assert await _emails(client, {"name": {"equals": "ann lee", "mode": "insensitive"}}) == ["ann@example.com"]
        assert await _emails(client, {"name": {"contains": "STONE", "mode": "insensitive"}}) == ["bob@example.com"]

    async def test_like_wildcards_are_literal(self, client):
        assert await _emails(client, {"email": {"contains": "%"}}) == []

    async def test_nested_not_operator(self, client):
        assert await _emails(client, {"points": {"not": {"in": [10, 20]}}}) == ["cy@example.org"]

    async def test_unknown_operator_rejected(self, client):
        with pytest.raises(QueryValidationError):
            await client.user.find_many(where={"points": {"between": [1, 2]}})

    async def test_unknown_field_rejected(self, client):
        with pytest.raises(QueryValidationError):
            await client.user.find_many(where={"nickname": "x"})

    async def test_string_operator_on_number_rejected(self, client):
        with pytest.raises(QueryValidationError):
            await client.user.find_many(where={"points": {"contains": "1"}})


class TestCombinators:
    """Test AND / OR / NOT."""

    @pytest.fixture(autouse=True)
    async def users(self, make_user):
        await make_user(email="a@example.com", points=1)
        await make_user(email="b@example.com", points=2)
        await make_user(email="c@example.com", points=3)

    async def test_or(self, client):
        where = {"OR": [{"points": 1}, {"points": 3}]}
        assert await _emails(client, where) == ["a@example.com", "c@example.com"]

    async def test_and_list(self, client):
        where = {"AND": [{"points": {"gt": 1}}, {"points": {"lt": 3}}]}
        assert await _emails(client, where) == ["b@example.com"]

    async def test_not_dict(self, client):
        assert await _emails(client, {"NOT": {"points": 2}}) == ["a@example.com", "c@example.com"]

    async def test_empty_lists(self, client):
        assert len(await _emails(client, {"AND": []})) == 3
        assert await _emails(client, {"OR": []}) == []
        assert len(await _emails(client, {"NOT": []})) == 3

    async def test_nested_combinators(self, client):
        where = {"OR": [{"AND": [{"points": {"gte": 2}}, {"NOT": {"points": 3}}]}, {"email": "a@example.com"}]}
        assert await _emails(client, where) == ["a@example.com", "b@example.com"]


class TestRelationFilters:
    """Test to-one and to-many relation filters."""

    async def test_some_every_none(self, client, make_user, make_task, make_submission):
        task = await make_task()
        busy = await make_user(email="busy@example.com")
        mixed = await make_user(email="mixed@example.com")
        await make_user(email="idle@example.com")

        approved = await make_submission(user=busy, task=task)
        await client.task_submission.update(where={"id": approved["id"]}, data={"status": "APPROVED"})
        await make_submission(user=mixed, task=task)
        second = await make_submission(user=mixed, task=task)
        await client.task_submission.update(where={"id": second["id"]}, data={"status": "APPROVED"})

        some = await _emails(client, {"submissions": {"some": {"status": "APPROVED"}}})
        every = await _emails(client, {"submissions": {"every": {"status": "APPROVED"}}})
        none = await _emails(client, {"submissions": {"none": {"status": "APPROVED"}}})

        assert some == ["busy@example.com", "mixed@example.com"]
        # every is vacuously true for users without submissions
        assert every == ["busy@example.com", "idle@example.com"]
        assert none == ["idle@example.com"]

    async def test_to_one_nested_and_is(self, client, make_user, make_submission):
        ann = await make_user(email="ann@example.com")
        await make_submission(user=ann)
        await make_submission()

        nested = await client.task_submission.find_many(where={"user": {"email": "ann@example.com"}})
        with_is = await client.task_submission.find_many(where={"user": {"is": {"email": "ann@example.com"}}})
        is_not = await client.task_submission.find_many(where={"user": {"is_not": {"email": "ann@example.com"}}})

        assert [s["user_id"] for s in nested] == [ann["id"]]
        assert with_is == nested
        assert len(is_not) == 1 and is_not[0]["user_id"] != ann["id"]

    async def test_self_referral_relation(self, client, make_user):
        await make_user(email="root@example.com", referral_code="ROOT")
        await make_user(email="child@example.com", referral_code="CHILD", referred_by_code="ROOT")

        referred = await _emails(client, {"referred_by": {"referral_code": "ROOT"}})
        unreferred = await _emails(client, {"referred_by": None})
        referrers = await _emails(client, {"referrals": {"some": {}}})

        assert referred == ["child@example.com"]
        assert unreferred == ["root@example.com"]
        assert referrers == ["root@example.com"]

    async def test_to_many_without_quantifier_rejected(self, client):
        with pytest.raises(QueryValidationError):
            await client.user.find_many(where={"submissions": {"status": "APPROVED"}})

    async def test_json_field_not_filterable(self, client):
        with pytest.raises(QueryValidationError):
            await client.task.find_many(where={"requirements": ["a"]})

    async def test_enum_filter_accepts_member_and_string(self, client, make_submission):
        from taskhub.models.enums import SubmissionStatus

        await make_submission()
        by_string = await client.task_submission.count(where={"status": "PENDING"})
        by_member = await client.task_submission.count(where={"status": SubmissionStatus.PENDING})
        assert by_string == by_member == 1

        with pytest.raises(QueryValidationError):
            await client.task_submission.count(where={"status": "LOST"})
