from __future__ import annotations
from datetime import datetime, timezone as dt_tz
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from templepoints.config import settings
from templepoints.models.ward import Ward
from templepoints.models.user import User, ROLE_ADMIN
from templepoints.models.submission import PointSubmission, STATUS_APPROVED, STATUS_PENDING
from templepoints.security import hash_password
from templepoints.services.ledger import recompute_all_totals

log = structlog.get_logger()

WARD_NAMES = (
    "Fountain Green 1st Ward",
    "Fountain Green 2nd Ward",
    "Fountain Green 3rd Ward",
    "Moroni 1st Ward",
    "Moroni 2nd Ward",
    "Moroni 3rd Ward",
    "Sanpitch Ward",
)

# (ward index into WARD_NAMES, points, status)
DEMO_SUBMISSIONS = (
    (3, 847, STATUS_APPROVED),
    (1, 765, STATUS_APPROVED),
    (6, 692, STATUS_APPROVED),
    (5, 543, STATUS_APPROVED),
    (0, 489, STATUS_APPROVED),
    (4, 412, STATUS_APPROVED),
    (2, 387, STATUS_APPROVED),
    (3, 50, STATUS_PENDING),
    (1, 55, STATUS_PENDING),
    (5, 35, STATUS_PENDING),
    (0, 25, STATUS_PENDING),
    (2, 55, STATUS_PENDING),
)


async def seed_initial_data(session: AsyncSession, *, demo: bool = True) -> bool:
    """
    Populate an empty database: wards, the admin account and (optionally) demo
    submissions. Ward caches are rebuilt from the submissions afterwards.
    Returns False without touching anything if wards already exist. Commits.
    """
    count = await session.scalar(select(func.count()).select_from(Ward))
    if count:
        return False

    wards = [Ward(name=name) for name in WARD_NAMES]
    session.add_all(wards)
    await session.flush()

    admin_email = settings.admin_email.lower()
    if not await session.scalar(select(User).where(User.email == admin_email)):
        session.add(User(email=admin_email, password_hash=hash_password(settings.admin_password), role=ROLE_ADMIN))

    if demo:
        now = datetime.now(dt_tz.utc)
        for idx, points, status in DEMO_SUBMISSIONS:
            session.add(PointSubmission(
                ward_id=wards[idx].id,
                submitter_name="Demo User",
                points=points,
                note="Initial seed data",
                status=status,
                approved_at=now if status == STATUS_APPROVED else None,
            ))
        await session.flush()
        await recompute_all_totals(session)

    await session.commit()
    log.info("database_seeded", wards=len(wards), demo=demo)
    return True
