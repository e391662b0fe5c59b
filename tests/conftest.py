"""
Pytest configuration and fixtures for the client tests.
"""
import pytest
from typing import AsyncGenerator
from faker import Faker

from taskhub.client import TaskHubClient
from taskhub.core.config import Settings
from taskhub.core.security import SecurityUtils

# Initialize Faker for test data generation
fake = Faker()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        LOG_FILE="",
        TRANSACTION_MAX_WAIT=2.0,
        TRANSACTION_TIMEOUT=5.0,
    )


@pytest.fixture
def database_url(tmp_path) -> str:
    """One SQLite file per test."""
    return f"sqlite:///{tmp_path}/test.db"


@pytest.fixture
async def client(database_url, settings) -> AsyncGenerator[TaskHubClient, None]:
    """Connected client with a fresh schema."""
    db = TaskHubClient(database_url, settings=settings)
    await db.connect()
    await db.create_all()
    yield db
    await db.disconnect()


def user_data(**overrides) -> dict:
    """Generate valid user create data."""
    data = {
        "email": fake.unique.email().lower(),
        "password": "hashed-password",
        "name": fake.name(),
        "referral_code": SecurityUtils.generate_referral_code(),
    }
    data.update(overrides)
    return data


def task_data(**overrides) -> dict:
    """Generate valid task create data."""
    data = {
        "title": fake.sentence(nb_words=4)[:200],
        "description": fake.paragraph(),
        "points": fake.random_int(min=10, max=200),
        "requirements": ["Submit proof"],
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_user(client):
    async def _make(**overrides) -> dict:
        return await client.user.create(data=user_data(**overrides))
    return _make


@pytest.fixture
def make_task(client):
    async def _make(**overrides) -> dict:
        return await client.task.create(data=task_data(**overrides))
    return _make


@pytest.fixture
def make_submission(client, make_user, make_task):
    async def _make(user=None, task=None, **overrides) -> dict:
        user = user or await make_user()
        task = task or await make_task()
        data = {"user_id": user["id"], "task_id": task["id"]}
        data.update(overrides)
        return await client.task_submission.create(data=data)
    return _make
