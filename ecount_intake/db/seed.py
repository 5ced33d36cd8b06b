"""Database seeding with a demo organization."""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from .models import Organization, EcountConnection


DEMO_ORG_ID = 1

DEMO_ORGANIZATION = {"id": DEMO_ORG_ID, "name": "데모 식자재"}

DEMO_CONNECTION = {
    "org_id": DEMO_ORG_ID,
    "company_code": "DEMO001",
    "ecount_user_id": "demo_api_user",
    "status": "pending",
}


async def seed_database(session: AsyncSession, company_code: str = None, user_id: str = None):
    """Seed the demo organization and its Ecount connection settings."""
    result = await session.execute(select(Organization).limit(1))
    if result.scalar_one_or_none():
        logger.info("Database already seeded, skipping")
        return

    session.add(Organization(**DEMO_ORGANIZATION))
    connection = dict(DEMO_CONNECTION)
    if company_code:
        connection["company_code"] = company_code
    if user_id:
        connection["ecount_user_id"] = user_id
    session.add(EcountConnection(**connection))

    await session.commit()
    logger.info("Seeded demo organization {} ({})", DEMO_ORG_ID, connection["company_code"])
