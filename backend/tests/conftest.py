import os, tempfile, json, asyncio

# Must be set before templepoints.config is imported anywhere
_tmp_dir = tempfile.mkdtemp(prefix="templepoints-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_tmp_dir, 'test.db')}"
os.environ["CREATE_SCHEMA"] = "0"
os.environ["SEED_DATA"] = "0"

import pytest_asyncio
from templepoints.db import Base, engine, create_schema
from templepoints.services.broadcast import hub


@pytest_asyncio.fixture(autouse=True)
async def fresh_schema():
    await create_schema()
    await engine.dispose()
    yield
    await hub.stop()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


# ---------- shared helpers ----------

async def make_ward(session, name, points=0, pending_points=0):
    from templepoints.models.ward import Ward
    w = Ward(name=name, points=points, pending_points=pending_points)
    session.add(w)
    await session.commit()
    return w


async def make_user(session, role, ward_id=None, email=None, password_hash="not-a-real-hash"):
    from templepoints.models.user import User
    import uuid
    u = User(email=email or f"u-{uuid.uuid4().hex[:8]}@ward.org", password_hash=password_hash, role=role, ward_id=ward_id)
    session.add(u)
    await session.commit()
    return u


def bearer(user):
    from templepoints.security import make_access_token
    return {"Authorization": f"Bearer {make_access_token(user.id)}"}


def drain(client):
    """Pop every queued payload from a hub client and decode it."""
    events = []
    while True:
        try:
            msg = client.send.get_nowait()
        except asyncio.QueueEmpty:
            return events
        events.append(None if msg is None else json.loads(msg))
