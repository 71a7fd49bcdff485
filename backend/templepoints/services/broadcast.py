from __future__ import annotations
import asyncio
import contextlib
import uuid
from typing import Any
import structlog

from templepoints.config import settings
from templepoints.schemas.leaderboard import BroadcastEvent

log = structlog.get_logger()


class Client:
    """
    One live viewer as the hub sees it: an id and a bounded outbound queue.

    The transport (websocket pumps) drains ``send``; a ``None`` item means the
    hub has let go of this viewer and the transport should close.
    """

    def __init__(self, buffer_size: int = 256):
        self.id = uuid.uuid4().hex[:12]
        self.send: asyncio.Queue[str | None] = asyncio.Queue(maxsize=buffer_size)
        self.closed = False

    def release(self) -> None:
        """Drop anything still buffered and leave only the close sentinel."""
        self.closed = True
        while True:
            try:
                self.send.get_nowait()
            except asyncio.QueueEmpty:
                break
        self.send.put_nowait(None)

    def __repr__(self) -> str:
        return f"<Client {self.id} queued={self.send.qsize()}>"


class BroadcastHub:
    """
    Registry of live viewers, owned by a single dispatch task.

    register / unregister / broadcast never touch the viewer set themselves;
    they post a command to the inbox and wait for the dispatch task to apply
    it. Fan-out is non-blocking: a viewer whose queue is full is dropped.
    """

    def __init__(self, buffer_size: int = 256):
        self.buffer_size = buffer_size
        self._clients: set[Client] = set()
        self._inbox: asyncio.Queue | None = None
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def new_client(self) -> Client:
        return Client(self.buffer_size)

    # ---------- lifecycle ----------

    async def start(self) -> None:
        self._ensure_running()

    def _ensure_running(self) -> None:
        loop = asyncio.get_running_loop()
        if self.running and self._loop is loop:
            return
        self._loop = loop
        self._clients = set()
        self._inbox = asyncio.Queue()
        self._task = loop.create_task(self._run(), name="broadcast-hub")
        log.info("hub_started")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        current = asyncio.get_running_loop()
        if self._loop is current and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._inbox is not None:
            while not self._inbox.empty():
                _, _, done = self._inbox.get_nowait()
                if not done.done():
                    done.cancel()
        for client in list(self._clients):
            client.release()
        self._clients.clear()
        self._loop = None
        log.info("hub_stopped")

    # ---------- commands ----------

    async def _call(self, op: str, arg: Any) -> Any:
        self._ensure_running()
        done = self._loop.create_future()
        await self._inbox.put((op, arg, done))
        return await done

    async def register(self, client: Client) -> None:
        await self._call("register", client)

    async def unregister(self, client: Client) -> None:
        # stop() already released every viewer; don't start a new dispatch task just to forget one
        if not self.running or self._loop is not asyncio.get_running_loop():
            return
        await self._call("unregister", client)

    async def broadcast(self, event_type: str, data: Any) -> int:
        """Queue one event for every registered viewer. Returns how many accepted it."""
        payload = BroadcastEvent(type=event_type, data=data).model_dump_json()
        return await self._call("broadcast", payload)

    # ---------- dispatch task ----------

    async def _run(self) -> None:
        while True:
            op, arg, done = await self._inbox.get()
            try:
                result = self._apply(op, arg)
            except Exception as exc:
                log.exception("hub_command_failed", op=op)
                if not done.done():
                    done.set_exception(exc)
            else:
                if not done.done():
                    done.set_result(result)

    def _apply(self, op: str, arg: Any) -> Any:
        if op == "register":
            self._clients.add(arg)
            log.info("viewer_connected", client=arg.id, viewers=len(self._clients))
            return None
        if op == "unregister":
            if arg in self._clients:
                self._clients.discard(arg)
                arg.release()
                log.info("viewer_disconnected", client=arg.id, viewers=len(self._clients))
            return None
        if op == "broadcast":
            return self._fan_out(arg)
        raise ValueError(f"unknown hub command: {op}")

    def _fan_out(self, payload: str) -> int:
        delivered = 0
        for client in list(self._clients):
            try:
                client.send.put_nowait(payload)
            except asyncio.QueueFull:
                # Slow consumer: it loses service, the others don't wait on it
                self._clients.discard(client)
                client.release()
                log.warning("viewer_dropped", client=client.id, reason="send_buffer_full", viewers=len(self._clients))
            else:
                delivered += 1
        return delivered


hub = BroadcastHub(buffer_size=settings.ws_send_buffer)

def get_hub() -> BroadcastHub:
    return hub
