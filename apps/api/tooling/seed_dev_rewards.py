"""Seed development rewards users and an active spotlight into the API database."""

from __future__ import annotations

import asyncio
import os
from typing import TypedDict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from rewards_api.core.settings import settings
from rewards_api.models.rewards import SpotlightCandidate
from rewards_api.models.user import User
from rewards_api.services.rewards import ReferralService


class SeedUser(TypedDict):
    email: str
    display_name: str
    role: str


DEV_USERS: list[SeedUser] = [
    {
        "email": os.getenv("DEV_REWARDS_MEMBER_EMAIL", "member@rewards.dev").lower(),
        "display_name": "Member QA",
        "role": "member",
    },
    {
        "email": os.getenv("DEV_REWARDS_FRIEND_EMAIL", "friend@rewards.dev").lower(),
        "display_name": "Friend QA",
        "role": "member",
    },
    {
        "email": os.getenv("DEV_REWARDS_MODERATOR_EMAIL", "moderator@rewards.dev").lower(),
        "display_name": "Moderator QA",
        "role": "moderator",
    },
]

DEV_SPOTLIGHT = {
    "title": "Try the Acme notes app",
    "tool_name": "Acme Notes",
    "description": "Sign up with the same email and upload a screenshot of your workspace.",
    "cta_url": "https://acme.example/notes",
    "points_reward": 250,
}


async def seed_users(session: AsyncSession) -> list[User]:
    records: list[User] = []
    for user in DEV_USERS:
        with session.no_autoflush:
            existing = await session.execute(select(User).where(User.email == user["email"]))
        record = existing.scalar_one_or_none()

        if record:
            record.display_name = user["display_name"]
            record.role = user["role"].lower()
        else:
            record = User(
                email=user["email"],
                display_name=user["display_name"],
                role=user["role"].lower(),
            )
            session.add(record)
        records.append(record)
    await session.commit()

    referrals = ReferralService(session)
    for record in records:
        await referrals.assign_referral_code(record)
    return records


async def seed_spotlight(session: AsyncSession) -> SpotlightCandidate:
    existing = await session.execute(
        select(SpotlightCandidate).where(SpotlightCandidate.tool_name == DEV_SPOTLIGHT["tool_name"])
    )
    spotlight = existing.scalar_one_or_none()
    if spotlight is None:
        spotlight = SpotlightCandidate(**DEV_SPOTLIGHT)
        session.add(spotlight)
    spotlight.is_active = True
    await session.commit()
    return spotlight


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            users = await seed_users(session)
            spotlight = await seed_spotlight(session)
        for user in users:
            print(f"{user.role:<10} {user.email:<28} id={user.id} referral_code={user.referral_code}")
        print(f"Active spotlight {spotlight.tool_name} ({spotlight.points_reward} pts) id={spotlight.id}")
        print("Development rewards data ready ✅")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
