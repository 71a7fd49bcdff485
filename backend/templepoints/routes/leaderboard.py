from __future__ import annotations
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from templepoints.db import get_session
from templepoints.models.ward import Ward
from templepoints.routes.points import to_public
from templepoints.schemas.leaderboard import LeaderboardView, WardLog, WardPublic
from templepoints.services.leaderboard import leaderboard_view, DEFAULT_SORT
from templepoints.services.ledger import ward_history

router = APIRouter(prefix="/api", tags=["leaderboard"])

@router.get("/leaderboard", response_model=LeaderboardView)
async def get_leaderboard(
    sort: str = Query(default=DEFAULT_SORT, description="verified-desc|verified-asc|total-desc|total-asc|ward-asc|ward-desc"),
    session: AsyncSession = Depends(get_session),
):
    return await leaderboard_view(session, sort)

@router.get("/wards", response_model=list[WardPublic])
async def list_wards(session: AsyncSession = Depends(get_session)):
    wards = (await session.execute(select(Ward).order_by(Ward.name.asc()))).scalars().all()
    return [WardPublic(id=w.id, name=w.name, points=w.points, pending_points=w.pending_points) for w in wards]

@router.get("/ward/{ward_id}/log", response_model=WardLog)
async def get_ward_log(
    ward_id: int = Path(..., gt=0),
    session: AsyncSession = Depends(get_session),
):
    ward, subs = await ward_history(session, ward_id)
    return WardLog(
        ward_id=ward.id,
        ward_name=ward.name,
        total_points=ward.points,
        pending_points=ward.pending_points,
        submissions=[to_public(s) for s in subs],
    )
