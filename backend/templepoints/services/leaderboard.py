from __future__ import annotations
from datetime import datetime, timezone as dt_tz, timedelta
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from templepoints.config import settings
from templepoints.models.ward import Ward
from templepoints.models.submission import PointSubmission, STATUS_APPROVED
from templepoints.models.activity import ActivityLog
from templepoints.schemas.leaderboard import LeaderboardEntry, LeaderboardView, Stats
from templepoints.services.achievements import ward_achievement_labels

DEFAULT_SORT = "verified-desc"

_total = Ward.points + Ward.pending_points

# Ward id is the secondary key everywhere so equal values rank deterministically
SORT_ORDERS = {
    "verified-desc": (Ward.points.desc(), Ward.id.asc()),
    "verified-asc": (Ward.points.asc(), Ward.id.asc()),
    "total-desc": (_total.desc(), Ward.id.asc()),
    "total-asc": (_total.asc(), Ward.id.asc()),
    "ward-asc": (Ward.name.asc(), Ward.id.asc()),
    "ward-desc": (Ward.name.desc(), Ward.id.asc()),
}


def _as_utc(dt: datetime | None) -> datetime | None:
    # sqlite hands back naive datetimes; everything is stored as UTC
    if dt is None:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=dt_tz.utc)


def progress_pct(points: int, goal: int) -> float:
    if goal <= 0:
        return 0.0
    return round(points / goal * 100, 1)


async def _streaks(session: AsyncSession, now: datetime, window_days: int) -> dict[int, int]:
    """
    Distinct UTC days with activity inside the trailing window, per ward.

    An engagement proxy, not a consecutive-day run: three active days out of
    the last seven count as 3 whether or not they touch.
    """
    cutoff = now - timedelta(days=window_days)
    rows = (await session.execute(
        select(ActivityLog.ward_id, ActivityLog.created_at).where(ActivityLog.created_at >= cutoff)
    )).all()
    days: dict[int, set] = {}
    for ward_id, created_at in rows:
        days.setdefault(ward_id, set()).add(_as_utc(created_at).date())
    return {wid: len(d) for wid, d in days.items()}


async def _last_activity(session: AsyncSession) -> dict[int, datetime]:
    rows = (await session.execute(
        select(ActivityLog.ward_id, func.max(ActivityLog.created_at)).group_by(ActivityLog.ward_id)
    )).all()
    return {wid: _as_utc(ts) for wid, ts in rows}


async def compute_standings(
    session: AsyncSession, sort: str | None = DEFAULT_SORT, goal: int | None = None, now: datetime | None = None
) -> list[LeaderboardEntry]:
    """Ranked snapshot of every ward. Unknown sort keys fall back to verified-desc. Never cached."""
    order = SORT_ORDERS.get(sort or DEFAULT_SORT, SORT_ORDERS[DEFAULT_SORT])
    goal = int(goal or settings.competition_goal)
    now = now or datetime.now(dt_tz.utc)

    wards = (await session.execute(
        select(Ward).order_by(*order).execution_options(populate_existing=True)
    )).scalars().all()
    labels = await ward_achievement_labels(session)
    streaks = await _streaks(session, now, settings.streak_window_days)
    last_seen = await _last_activity(session)

    return [
        LeaderboardEntry(
            rank=idx,
            ward_id=w.id,
            ward_name=w.name,
            points=int(w.points),
            pending_points=int(w.pending_points),
            total_points=int(w.points) + int(w.pending_points),
            progress=progress_pct(int(w.points), goal),
            achievements=labels.get(w.id, []),
            streak=streaks.get(w.id, 0),
            last_activity=last_seen.get(w.id),
        )
        for idx, w in enumerate(wards, start=1)
    ]


async def compute_stats(session: AsyncSession, now: datetime | None = None) -> Stats:
    now = now or datetime.now(dt_tz.utc)

    leading = await session.scalar(
        select(Ward.name).order_by(Ward.points.desc(), Ward.id.asc()).limit(1)
    )
    total = await session.scalar(select(func.coalesce(func.sum(Ward.points), 0))) or 0

    first_approved = await session.scalar(
        select(func.min(PointSubmission.created_at)).where(PointSubmission.status == STATUS_APPROVED)
    )
    days_active = 0
    if first_approved is not None:
        days_active = max(0, int((now - _as_utc(first_approved)).total_seconds() // 86400))

    participants = await session.scalar(
        select(func.count(func.distinct(PointSubmission.submitter_name)))
    ) or 0

    return Stats(
        leading_ward=leading or "",
        total_points=int(total),
        days_active=days_active,
        participants=int(participants),
    )


async def leaderboard_view(session: AsyncSession, sort: str | None = DEFAULT_SORT) -> LeaderboardView:
    now = datetime.now(dt_tz.utc)
    return LeaderboardView(
        leaderboard=await compute_standings(session, sort, now=now),
        stats=await compute_stats(session, now=now),
    )
