from __future__ import annotations
from dataclasses import dataclass
from typing import Sequence
from sqlalchemy import select, insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from templepoints.config import settings
from templepoints.models.ward import Ward
from templepoints.models.achievement import Achievement

log = structlog.get_logger()


@dataclass(frozen=True)
class Milestone:
    threshold: int
    type: str
    title: str
    icon: str
    description: str = ""


def default_milestones(goal: int | None = None) -> tuple[Milestone, ...]:
    """Ascending milestone table. New milestones are added here, not in the evaluator."""
    goal = int(goal or settings.competition_goal)
    return (
        Milestone(100, "first_100", "First 100 Points!", "💯", "Reached 100 verified points"),
        Milestone(500, "first_500", "First to 500!", "⚡", "Reached 500 verified points"),
        Milestone(1000, "first_1000", "Thousand Club!", "🎯", "Reached 1000 verified points"),
        Milestone(goal, "goal_reached", "Goal Achieved!", "🏆", f"Reached the {goal} point competition goal"),
    )


async def _insert_once(session: AsyncSession, ward_id: int, m: Milestone) -> bool:
    """Insert the (ward, type) award unless it exists. True only for a genuinely new row."""
    values = dict(ward_id=ward_id, type=m.type, title=m.title, description=m.description, icon=m.icon)
    dialect = session.bind.dialect.name if session.bind is not None else ""

    if dialect in ("postgresql", "sqlite"):
        ins = pg_insert if dialect == "postgresql" else sqlite_insert
        res = await session.execute(
            ins(Achievement).values(**values).on_conflict_do_nothing(index_elements=["ward_id", "type"])
        )
        return bool(res.rowcount)

    exists = await session.scalar(
        select(Achievement.id).where(Achievement.ward_id == ward_id, Achievement.type == m.type)
    )
    if exists:
        return False
    try:
        async with session.begin_nested():
            await session.execute(insert(Achievement).values(**values))
    except IntegrityError:
        # lost the race to a concurrent evaluator
        return False
    return True


async def evaluate_achievements(
    session: AsyncSession, ward_id: int, milestones: Sequence[Milestone] | None = None
) -> list[Milestone]:
    """
    Award every milestone the ward's verified total has reached.

    Safe to call repeatedly or concurrently: each (ward, type) is inserted at
    most once and only new inserts are returned, so callers announce each
    award once. Does not commit.
    """
    points = await session.scalar(select(Ward.points).where(Ward.id == ward_id))
    if points is None:
        return []
    table = sorted(milestones if milestones is not None else default_milestones(), key=lambda m: m.threshold)

    awarded: list[Milestone] = []
    for m in table:
        if int(points) < m.threshold:
            break
        if await _insert_once(session, ward_id, m):
            awarded.append(m)
            log.info("achievement_awarded", ward_id=ward_id, type=m.type, points=int(points))
    return awarded


async def ward_achievement_labels(session: AsyncSession) -> dict[int, list[str]]:
    """ward_id -> ["icon title", ...] in award order."""
    rows = (await session.execute(
        select(Achievement.ward_id, Achievement.icon, Achievement.title)
        .order_by(Achievement.earned_at.asc(), Achievement.id.asc())
    )).all()
    out: dict[int, list[str]] = {}
    for ward_id, icon, title in rows:
        out.setdefault(ward_id, []).append(f"{icon or ''} {title}".strip())
    return out
