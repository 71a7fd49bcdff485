from __future__ import annotations
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession

from templepoints.config import settings
from templepoints.db import get_session
from templepoints.auth_deps import require_identity
from templepoints.models.submission import PointSubmission
from templepoints.schemas.auth import Identity
from templepoints.schemas.points import PointsCreate, SubmitResult, ActionResult, SubmissionPublic, SubmissionStatus
from templepoints.services.broadcast import BroadcastHub, get_hub
from templepoints.services.ledger import submit_points, approve_submission, reject_submission, list_submissions
from templepoints.services.achievements import evaluate_achievements
from templepoints.services.events import publish_leaderboard, publish_achievements

router = APIRouter(prefix="/api", tags=["points"])

def to_public(s: PointSubmission, ward_name: str | None = None) -> SubmissionPublic:
    return SubmissionPublic(
        id=s.id,
        ward_id=s.ward_id,
        ward_name=ward_name,
        submitter_name=s.submitter_name,
        points=s.points,
        note=s.note or "",
        status=s.status,
        approved_by=s.approved_by,
        approved_at=s.approved_at,
        created_at=s.created_at,
    )

@router.post("/points", response_model=SubmitResult, status_code=201)
async def submit(
    payload: PointsCreate,
    session: AsyncSession = Depends(get_session),
    hub: BroadcastHub = Depends(get_hub),
):
    sub = await submit_points(
        session,
        ward_id=payload.ward_id,
        submitter_name=payload.submitter_name,
        points=payload.points,
        note=payload.note,
    )
    await session.commit()

    await publish_leaderboard(session, hub)
    return SubmitResult(id=sub.id, message="Points submitted successfully! Waiting for approval.")

@router.post("/points/{submission_id}/approve", response_model=ActionResult)
async def approve(
    submission_id: int = Path(..., gt=0),
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(require_identity),
    hub: BroadcastHub = Depends(get_hub),
):
    sub = await approve_submission(session, submission_id, identity)
    await session.commit()

    # Thresholds are checked against the committed verified total
    awarded = await evaluate_achievements(session, sub.ward_id)
    await session.commit()

    await publish_achievements(session, hub, sub.ward_id, awarded)
    await publish_leaderboard(session, hub)
    return ActionResult(message="Points approved successfully!")

@router.post("/points/{submission_id}/reject", response_model=ActionResult)
async def reject(
    submission_id: int = Path(..., gt=0),
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(require_identity),
    hub: BroadcastHub = Depends(get_hub),
):
    await reject_submission(session, submission_id, identity)
    await session.commit()

    await publish_leaderboard(session, hub)
    return ActionResult(message="Points rejected")

@router.get("/submissions", response_model=list[SubmissionPublic])
async def submissions_by_status(
    status: SubmissionStatus = Query(default="pending"),
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(require_identity),
):
    rows = await list_submissions(session, identity, status, settings.submissions_list_limit)
    return [to_public(s, ward_name) for (s, ward_name) in rows]
