from __future__ import annotations
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from templepoints.models.ward import Ward
from templepoints.services.achievements import Milestone
from templepoints.services.broadcast import BroadcastHub
from templepoints.services.leaderboard import leaderboard_view

log = structlog.get_logger()

LEADERBOARD_UPDATE = "leaderboard-update"
ACHIEVEMENT = "achievement"

# Publishing is best effort: a failed push is logged and never fails the
# request that caused it.

async def publish_leaderboard(session: AsyncSession, hub: BroadcastHub) -> int:
    try:
        view = await leaderboard_view(session)
        return await hub.broadcast(LEADERBOARD_UPDATE, view.model_dump(mode="json"))
    except Exception:
        log.exception("broadcast_failed", event_type=LEADERBOARD_UPDATE)
        return 0


def achievement_payload(ward_name: str, m: Milestone) -> dict:
    return {
        "ward": ward_name,
        "achievement": m.title,
        "milestone": f"{ward_name} earned: {m.title}",
    }


async def publish_achievements(session: AsyncSession, hub: BroadcastHub, ward_id: int, awarded: Sequence[Milestone]) -> None:
    if not awarded:
        return
    try:
        ward = await session.get(Ward, ward_id)
        ward_name = ward.name if ward else ""
        for m in awarded:
            await hub.broadcast(ACHIEVEMENT, achievement_payload(ward_name, m))
    except Exception:
        log.exception("broadcast_failed", event_type=ACHIEVEMENT, ward_id=ward_id)
