"""
Development seed data
Safe to run repeatedly: existing rows are reused
"""

from typing import Any, Dict
import logging

from taskhub.client import TaskHubClient
from taskhub.core.security import SecurityUtils
from taskhub.models.enums import AdminRole, RedeemStatus, SubmissionStatus

logger = logging.getLogger(__name__)

ADMIN_EMAIL = "admin@example.com"
STUDENT_PASSWORD = "student123"

TASKS = [
    {
        "title": "Complete React Course",
        "description": "Finish the intro to React course.",
        "points": 100,
        "requirements": ["Watch all videos", "Submit final project"],
    },
    {
        "title": "Invite 3 Friends",
        "description": "Refer 3 active students.",
        "points": 50,
        "requirements": ["Share referral link"],
    },
]


async def _task(client: TaskHubClient, data: Dict[str, Any], admin_id: str) -> Dict[str, Any]:
    existing = await client.task.find_first(where={"title": data["title"]})
    if existing:
        return existing
    return await client.task.create(data={**data, "created_by": admin_id})


async def seed(client: TaskHubClient) -> Dict[str, Any]:
    """Create a super admin, two referral-linked users, two tasks and pending work items"""
    admin = await client.admin.upsert(
        where={"email": ADMIN_EMAIL},
        update={},
        create={
            "email": ADMIN_EMAIL,
            "name": "Super Admin",
            "password": SecurityUtils.hash_password("admin123"),
            "role": AdminRole.SUPER_ADMIN.value,
        },
    )

    alice = await client.user.upsert(
        where={"email": "student1@example.com"},
        update={},
        create={
            "email": "student1@example.com",
            "name": "Alice Student",
            "password": SecurityUtils.hash_password(STUDENT_PASSWORD),
            "referral_code": "ALICE1",
            "points": 150,
        },
    )
    bob = await client.user.upsert(
        where={"email": "student2@example.com"},
        update={},
        create={
            "email": "student2@example.com",
            "name": "Bob Learner",
            "password": SecurityUtils.hash_password(STUDENT_PASSWORD),
            "referral_code": "BOB1",
            "referred_by_code": "ALICE1",
            "points": 50,
        },
    )

    tasks = [await _task(client, data, admin["id"]) for data in TASKS]

    submission = await client.task_submission.find_first(
        where={"user_id": bob["id"], "task_id": tasks[0]["id"]}
    )
    if submission is None:
        submission = await client.task_submission.create(
            data={
                "user_id": bob["id"],
                "task_id": tasks[0]["id"],
                "status": SubmissionStatus.PENDING.value,
                "proof_url": "https://example.com/screenshot.png",
            }
        )

    redeem_request = await client.redeem_request.find_first(
        where={"user_id": alice["id"], "status": RedeemStatus.PENDING.value}
    )
    if redeem_request is None:
        redeem_request = await client.redeem_request.create(
            data={"user_id": alice["id"], "amount": 100, "status": RedeemStatus.PENDING.value}
        )

    logger.info("Seeding completed")
    return {
        "admin": admin,
        "users": [alice, bob],
        "tasks": tasks,
        "submission": submission,
        "redeem_request": redeem_request,
    }
