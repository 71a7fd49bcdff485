from __future__ import annotations
from datetime import datetime, timezone as dt_tz
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from templepoints.models.ward import Ward
from templepoints.models.submission import PointSubmission, STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED
from templepoints.models.activity import ActivityLog
from templepoints.models.user import ROLE_WARD_APPROVER
from templepoints.schemas.auth import Identity
from templepoints.services.errors import ValidationError, NotFound, Forbidden

log = structlog.get_logger()

# Nothing here commits: the caller owns the transaction so that the status
# change, the ward totals and the activity row land together.

# ---------- submit ----------

async def submit_points(session: AsyncSession, *, ward_id: int, submitter_name: str, points: int, note: str = "") -> PointSubmission:
    """Insert a pending submission and rebuild the ward's pending cache from the pending rows."""
    submitter_name = (submitter_name or "").strip()
    if not submitter_name:
        raise ValidationError("Submitter name is required")
    if points is None or int(points) <= 0:
        raise ValidationError("Points must be greater than zero")

    ward = await session.get(Ward, ward_id)
    if not ward:
        raise NotFound("Ward not found")

    sub = PointSubmission(
        ward_id=ward.id,
        submitter_name=submitter_name,
        points=int(points),
        note=note or "",
        status=STATUS_PENDING,
    )
    session.add(sub)
    await session.flush()

    # Full recompute (not an increment) so earlier drift heals on the next submit
    await recompute_pending_points(session, ward.id)

    session.add(ActivityLog(
        ward_id=ward.id,
        user_id=None,
        action="points_submitted",
        details=f"{submitter_name} submitted {int(points)} points",
        points=int(points),
    ))
    await session.flush()
    log.info("points_submitted", submission_id=sub.id, ward_id=ward.id, points=int(points))
    return sub


async def recompute_pending_points(session: AsyncSession, ward_id: int) -> None:
    pending_sum = (
        select(func.coalesce(func.sum(PointSubmission.points), 0))
        .where(PointSubmission.ward_id == ward_id, PointSubmission.status == STATUS_PENDING)
        .scalar_subquery()
    )
    await session.execute(
        update(Ward)
        .where(Ward.id == ward_id)
        .values(pending_points=pending_sum)
        .execution_options(synchronize_session=False)
    )


async def recompute_all_totals(session: AsyncSession) -> None:
    """Rebuild both caches of every ward from the submissions table."""
    approved_sum = (
        select(func.coalesce(func.sum(PointSubmission.points), 0))
        .where(PointSubmission.ward_id == Ward.id, PointSubmission.status == STATUS_APPROVED)
        .scalar_subquery()
    )
    pending_sum = (
        select(func.coalesce(func.sum(PointSubmission.points), 0))
        .where(PointSubmission.ward_id == Ward.id, PointSubmission.status == STATUS_PENDING)
        .scalar_subquery()
    )
    await session.execute(
        update(Ward)
        .values(points=approved_sum, pending_points=pending_sum)
        .execution_options(synchronize_session=False)
    )

# ---------- approve / reject ----------

async def _load_pending_for(session: AsyncSession, submission_id: int, identity: Identity) -> PointSubmission:
    sub = await session.scalar(
        select(PointSubmission).where(PointSubmission.id == submission_id, PointSubmission.status == STATUS_PENDING)
    )
    if not sub:
        raise NotFound("Submission not found or already processed")
    if not identity.can_approve_for(sub.ward_id):
        raise Forbidden("Not authorized to approve for this ward")
    return sub


async def _transition(session: AsyncSession, sub: PointSubmission, new_status: str, identity: Identity) -> None:
    """
    Move a pending submission to a terminal status.

    The UPDATE is conditional on status='pending', so of several concurrent
    attempts on the same row exactly one matches; the others see NotFound.
    """
    res = await session.execute(
        update(PointSubmission)
        .where(PointSubmission.id == sub.id, PointSubmission.status == STATUS_PENDING)
        .values(status=new_status, approved_by=identity.user_id, approved_at=datetime.now(dt_tz.utc))
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise NotFound("Submission not found or already processed")


async def approve_submission(session: AsyncSession, submission_id: int, identity: Identity) -> PointSubmission:
    sub = await _load_pending_for(session, submission_id, identity)
    await _transition(session, sub, STATUS_APPROVED, identity)

    # Relative update, evaluated by the store, so concurrent approvals for one ward don't lose writes
    await session.execute(
        update(Ward)
        .where(Ward.id == sub.ward_id)
        .values(points=Ward.points + sub.points, pending_points=Ward.pending_points - sub.points)
        .execution_options(synchronize_session=False)
    )
    session.add(ActivityLog(
        ward_id=sub.ward_id,
        user_id=identity.user_id,
        action="points_approved",
        details=f"Approved {sub.points} points from {sub.submitter_name}",
        points=sub.points,
    ))
    await session.flush()
    await session.refresh(sub)
    log.info("points_approved", submission_id=sub.id, ward_id=sub.ward_id, points=sub.points, approver=identity.user_id)
    return sub


async def reject_submission(session: AsyncSession, submission_id: int, identity: Identity) -> PointSubmission:
    sub = await _load_pending_for(session, submission_id, identity)
    await _transition(session, sub, STATUS_REJECTED, identity)

    await session.execute(
        update(Ward)
        .where(Ward.id == sub.ward_id)
        .values(pending_points=Ward.pending_points - sub.points)
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    await session.refresh(sub)
    log.info("points_rejected", submission_id=sub.id, ward_id=sub.ward_id, points=sub.points, approver=identity.user_id)
    return sub

# ---------- reads ----------

async def list_submissions(session: AsyncSession, identity: Identity, status: str, limit: int) -> list[tuple[PointSubmission, str]]:
    """Newest first, scoped by role: admin sees every ward, a ward approver only its own."""
    q = (
        select(PointSubmission, Ward.name)
        .join(Ward, Ward.id == PointSubmission.ward_id)
        .where(PointSubmission.status == status)
    )
    if identity.is_admin:
        pass
    elif identity.role == ROLE_WARD_APPROVER and identity.ward_id is not None:
        q = q.where(PointSubmission.ward_id == identity.ward_id)
    else:
        raise Forbidden("Not allowed to review submissions")

    q = q.order_by(PointSubmission.created_at.desc(), PointSubmission.id.desc()).limit(limit)
    return [(s, name) for (s, name) in (await session.execute(q)).all()]


async def ward_history(session: AsyncSession, ward_id: int) -> tuple[Ward, list[PointSubmission]]:
    ward = await session.get(Ward, ward_id, populate_existing=True)
    if not ward:
        raise NotFound("Ward not found")
    rows = (await session.execute(
        select(PointSubmission)
        .where(PointSubmission.ward_id == ward.id)
        .order_by(PointSubmission.created_at.desc(), PointSubmission.id.desc())
    )).scalars().all()
    return ward, list(rows)
