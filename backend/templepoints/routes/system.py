from __future__ import annotations
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from templepoints.config import settings
from templepoints.db import get_session
from templepoints.services.broadcast import BroadcastHub, get_hub

router = APIRouter(tags=["system"])
log = structlog.get_logger()


async def _store_reachable(session: AsyncSession) -> bool:
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        log.warning("health_store_unreachable", exc_info=True)
        return False
    return True


@router.get("/health")
async def health(
    request: Request,
    session: AsyncSession = Depends(get_session),
    hub: BroadcastHub = Depends(get_hub),
):
    store_ok = await _store_reachable(session)
    return {
        "status": "ok" if store_ok else "degraded",
        "env": settings.environment,
        "time": datetime.now(timezone.utc).isoformat(),
        "database": "ok" if store_ok else "unreachable",
        "viewers": hub.client_count,
        "request_id": getattr(request.state, "request_id", None),
    }


@router.get("/version")
async def version():
    return {
        "name": settings.app_name,
        "display_name": settings.app_display_name,
        "version": settings.app_version,
        "git_sha": settings.git_sha,
    }
