from __future__ import annotations
import asyncio
import contextlib
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
import structlog

from templepoints.config import settings
from templepoints.db import SessionLocal
from templepoints.schemas.leaderboard import BroadcastEvent
from templepoints.services.broadcast import BroadcastHub, Client, get_hub
from templepoints.services.events import LEADERBOARD_UPDATE
from templepoints.services.leaderboard import leaderboard_view

router = APIRouter(tags=["live"])
log = structlog.get_logger()

PING = BroadcastEvent(type="ping", data={}).model_dump_json()


async def _read_pump(ws: WebSocket, client: Client) -> None:
    """Any frame from the viewer, text or binary, counts as liveness; silence past the pong wait ends the connection."""
    while True:
        try:
            message = await asyncio.wait_for(ws.receive(), timeout=settings.ws_pong_wait_seconds)
        except asyncio.TimeoutError:
            log.info("viewer_timeout", client=client.id)
            return
        if message["type"] == "websocket.disconnect":
            return


async def _write_pump(ws: WebSocket, client: Client) -> None:
    while True:
        try:
            message = await asyncio.wait_for(client.send.get(), timeout=settings.ws_ping_period_seconds)
        except asyncio.TimeoutError:
            message = PING
        if message is None:
            # released by the hub (dropped as slow, or shutting down)
            return
        await asyncio.wait_for(ws.send_text(message), timeout=settings.ws_write_wait_seconds)


async def _snapshot() -> str:
    async with SessionLocal() as session:
        view = await leaderboard_view(session)
    return BroadcastEvent(type=LEADERBOARD_UPDATE, data=view.model_dump(mode="json")).model_dump_json()


@router.websocket("/ws")
async def live_leaderboard(ws: WebSocket, hub: BroadcastHub = Depends(get_hub)):
    await ws.accept()
    client = hub.new_client()
    await hub.register(client)

    pumps: set[asyncio.Task] = set()
    try:
        # New viewers start from the current standings instead of waiting for the next change
        client.send.put_nowait(await _snapshot())

        reader = asyncio.create_task(_read_pump(ws, client))
        writer = asyncio.create_task(_write_pump(ws, client))
        pumps = {reader, writer}
        done, _ = await asyncio.wait(pumps, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                event = "viewer_read_failed" if task is reader else "viewer_write_failed"
                log.info(event, client=client.id, error=repr(task.exception()))
    finally:
        for task in pumps:
            task.cancel()
        for task in pumps:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        await hub.unregister(client)
        with contextlib.suppress(RuntimeError, WebSocketDisconnect):
            await ws.close()
