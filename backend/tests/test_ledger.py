import pytest
from sqlalchemy import select, func

from templepoints.db import SessionLocal
from templepoints.models.ward import Ward
from templepoints.models.submission import PointSubmission
from templepoints.models.activity import ActivityLog
from templepoints.models.user import ROLE_ADMIN, ROLE_WARD_APPROVER
from templepoints.schemas.auth import Identity
from templepoints.services.errors import ValidationError, NotFound, Forbidden
from templepoints.services.ledger import (
    submit_points, approve_submission, reject_submission, list_submissions, ward_history, recompute_pending_points,
    _load_pending_for, _transition,
)
from conftest import make_ward, make_user

ADMIN = Identity(user_id=1, role=ROLE_ADMIN)


async def _ward_totals(ward_id):
    async with SessionLocal() as s:
        w = await s.get(Ward, ward_id)
        return w.points, w.pending_points


async def _sums(ward_id):
    """(approved sum, pending sum) straight from the submissions table."""
    async with SessionLocal() as s:
        rows = (await s.execute(
            select(PointSubmission.status, func.coalesce(func.sum(PointSubmission.points), 0))
            .where(PointSubmission.ward_id == ward_id)
            .group_by(PointSubmission.status)
        )).all()
    by = dict(rows)
    return int(by.get("approved", 0)), int(by.get("pending", 0))


@pytest.mark.asyncio
async def test_submit_creates_pending_and_recomputes_cache():
    async with SessionLocal() as s:
        w = await make_ward(s, "Moroni 1st Ward")
        sub = await submit_points(s, ward_id=w.id, submitter_name="  Alice ", points=50, note="baptisms")
        await s.commit()
        assert sub.status == "pending"
        assert sub.submitter_name == "Alice"

    assert await _ward_totals(w.id) == (0, 50)
    async with SessionLocal() as s:
        logs = (await s.execute(select(ActivityLog).where(ActivityLog.ward_id == w.id))).scalars().all()
    assert [l.action for l in logs] == ["points_submitted"]
    assert logs[0].user_id is None and logs[0].points == 50
    assert logs[0].details == "Alice submitted 50 points"


@pytest.mark.asyncio
async def test_submit_pending_recompute_heals_drift():
    async with SessionLocal() as s:
        w = await make_ward(s, "Drifted Ward", pending_points=999)
        await submit_points(s, ward_id=w.id, submitter_name="Bob", points=20)
        await submit_points(s, ward_id=w.id, submitter_name="Bob", points=30)
        await s.commit()
    # full SUM, not 999 + 20 + 30
    assert await _ward_totals(w.id) == (0, 50)


@pytest.mark.asyncio
@pytest.mark.parametrize("points", [0, -5])
async def test_submit_rejects_non_positive_points_without_side_effects(points):
    async with SessionLocal() as s:
        w = await make_ward(s, "Sanpitch Ward")
        with pytest.raises(ValidationError):
            await submit_points(s, ward_id=w.id, submitter_name="Carol", points=points)
        await s.commit()
        count = await s.scalar(select(func.count()).select_from(PointSubmission))
        logs = await s.scalar(select(func.count()).select_from(ActivityLog))
    assert count == 0 and logs == 0


@pytest.mark.asyncio
async def test_submit_requires_name_and_existing_ward():
    async with SessionLocal() as s:
        w = await make_ward(s, "Moroni 2nd Ward")
        with pytest.raises(ValidationError):
            await submit_points(s, ward_id=w.id, submitter_name="   ", points=10)
        with pytest.raises(NotFound):
            await submit_points(s, ward_id=w.id + 100, submitter_name="Dan", points=10)


@pytest.mark.asyncio
async def test_approve_moves_points_and_is_terminal():
    async with SessionLocal() as s:
        w = await make_ward(s, "Fountain Green 1st Ward")
        admin = await make_user(s, ROLE_ADMIN)
        sub = await submit_points(s, ward_id=w.id, submitter_name="Eve", points=50)
        await s.commit()

        ident = Identity(user_id=admin.id, role=admin.role)
        approved = await approve_submission(s, sub.id, ident)
        await s.commit()
        assert approved.status == "approved"
        assert approved.approved_by == admin.id
        assert approved.approved_at is not None

    assert await _ward_totals(w.id) == (50, 0)
    assert await _sums(w.id) == (50, 0)

    # second approval: NotFound and totals untouched
    async with SessionLocal() as s:
        with pytest.raises(NotFound):
            await approve_submission(s, sub.id, Identity(user_id=admin.id, role=admin.role))
        with pytest.raises(NotFound):
            await reject_submission(s, sub.id, Identity(user_id=admin.id, role=admin.role))
    assert await _ward_totals(w.id) == (50, 0)


@pytest.mark.asyncio
async def test_reject_only_touches_pending():
    async with SessionLocal() as s:
        w = await make_ward(s, "Fountain Green 2nd Ward")
        admin = await make_user(s, ROLE_ADMIN)
        keep = await submit_points(s, ward_id=w.id, submitter_name="Finn", points=40)
        drop = await submit_points(s, ward_id=w.id, submitter_name="Finn", points=15)
        await s.commit()
        ident = Identity(user_id=admin.id, role=admin.role)
        await approve_submission(s, keep.id, ident)
        rejected = await reject_submission(s, drop.id, ident)
        await s.commit()
        assert rejected.status == "rejected"
        assert rejected.approved_by == admin.id

        actions = (await s.execute(select(ActivityLog.action).order_by(ActivityLog.id))).scalars().all()
    assert actions == ["points_submitted", "points_submitted", "points_approved"]
    assert await _ward_totals(w.id) == (40, 0)
    assert await _sums(w.id) == (40, 0)


@pytest.mark.asyncio
async def test_ward_approver_limited_to_own_ward():
    async with SessionLocal() as s:
        mine = await make_ward(s, "Moroni 3rd Ward")
        other = await make_ward(s, "Fountain Green 3rd Ward")
        approver = await make_user(s, ROLE_WARD_APPROVER, ward_id=mine.id)
        own = await submit_points(s, ward_id=mine.id, submitter_name="Gus", points=10)
        foreign = await submit_points(s, ward_id=other.id, submitter_name="Hal", points=10)
        await s.commit()

        ident = Identity(user_id=approver.id, role=approver.role, ward_id=approver.ward_id)
        with pytest.raises(Forbidden):
            await approve_submission(s, foreign.id, ident)
        with pytest.raises(Forbidden):
            await reject_submission(s, foreign.id, ident)
        await approve_submission(s, own.id, ident)
        await s.commit()

    assert await _ward_totals(mine.id) == (10, 0)
    assert await _ward_totals(other.id) == (0, 10)


@pytest.mark.asyncio
async def test_losing_the_transition_race_reports_not_found():
    async with SessionLocal() as s:
        w = await make_ward(s, "Race Ward")
        admin = await make_user(s, ROLE_ADMIN)
        sub = await submit_points(s, ward_id=w.id, submitter_name="Ivy", points=25)
        await s.commit()
    ident = Identity(user_id=admin.id, role=admin.role)

    # Both approvers see the row as pending; only the first conditional update matches
    async with SessionLocal() as first, SessionLocal() as second:
        seen_by_second = await _load_pending_for(second, sub.id, ident)
        await approve_submission(first, sub.id, ident)
        await first.commit()
        with pytest.raises(NotFound):
            await _transition(second, seen_by_second, "rejected", ident)
        await second.rollback()

    # and a later attempt fails at the read
    async with SessionLocal() as s:
        with pytest.raises(NotFound):
            await reject_submission(s, sub.id, ident)

    assert await _ward_totals(w.id) == (25, 0)
    assert await _sums(w.id) == (25, 0)


@pytest.mark.asyncio
async def test_cache_invariant_holds_over_a_mixed_history():
    async with SessionLocal() as s:
        w = await make_ward(s, "Invariant Ward")
        admin = await make_user(s, ROLE_ADMIN)
        ident = Identity(user_id=admin.id, role=admin.role)
        ids = []
        for pts in (5, 10, 20, 40, 80):
            ids.append((await submit_points(s, ward_id=w.id, submitter_name="Jo", points=pts)).id)
        await s.commit()
        await approve_submission(s, ids[0], ident)
        await reject_submission(s, ids[1], ident)
        await approve_submission(s, ids[3], ident)
        await s.commit()

    assert await _ward_totals(w.id) == await _sums(w.id) == (45, 100)


@pytest.mark.asyncio
async def test_list_submissions_is_role_scoped_and_newest_first():
    async with SessionLocal() as s:
        a = await make_ward(s, "Alpha Ward")
        b = await make_ward(s, "Beta Ward")
        approver = await make_user(s, ROLE_WARD_APPROVER, ward_id=a.id)
        first = await submit_points(s, ward_id=a.id, submitter_name="K", points=1)
        second = await submit_points(s, ward_id=a.id, submitter_name="K", points=2)
        await submit_points(s, ward_id=b.id, submitter_name="L", points=3)
        await s.commit()

        everything = await list_submissions(s, ADMIN, "pending", 50)
        assert len(everything) == 3

        scoped = await list_submissions(s, Identity(user_id=approver.id, role=approver.role, ward_id=a.id), "pending", 50)
        assert [sub.id for sub, _ in scoped] == [second.id, first.id]
        assert {name for _, name in scoped} == {"Alpha Ward"}

        capped = await list_submissions(s, ADMIN, "pending", 2)
        assert len(capped) == 2

        with pytest.raises(Forbidden):
            await list_submissions(s, Identity(user_id=99, role=ROLE_WARD_APPROVER, ward_id=None), "pending", 50)


@pytest.mark.asyncio
async def test_ward_history_newest_first():
    async with SessionLocal() as s:
        w = await make_ward(s, "History Ward")
        ids = [(await submit_points(s, ward_id=w.id, submitter_name="M", points=p)).id for p in (1, 2, 3)]
        await s.commit()
        ward, subs = await ward_history(s, w.id)
        assert ward.pending_points == 6
        assert [x.id for x in subs] == list(reversed(ids))
        with pytest.raises(NotFound):
            await ward_history(s, w.id + 1)


@pytest.mark.asyncio
async def test_recompute_pending_points_from_rows():
    async with SessionLocal() as s:
        w = await make_ward(s, "Recompute Ward", pending_points=7)
        await recompute_pending_points(s, w.id)
        await s.commit()
    assert await _ward_totals(w.id) == (0, 0)
