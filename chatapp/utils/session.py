"""Live websocket session: one per connected client.

A session moves ``CONNECTING -> OPEN -> CLOSED``. Outbound events are queued
synchronously by :meth:`ConnectionSession.emit` and written by a single
writer task, so presence broadcasts and message pushes never suspend the
code that triggers them. Inbound frames are JSON objects with a ``type``
field and are routed to handlers registered with :meth:`ConnectionSession.on`.
"""
import asyncio
import json
import logging
import uuid
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect

from chatapp.utils.errors import ChatError, ValidationError
from chatapp.utils.presence import PresenceRegistry

if TYPE_CHECKING:
    from chatapp.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)

ONLINE_USERS_EVENT = "getOnlineUsers"
ERROR_EVENT = "error"

EventHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class SessionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ConnectionSession:

    def __init__(
        self,
        websocket: WebSocket,
        user_id: Optional[str],
        registry: PresenceRegistry,
        manager: "ConnectionManager",
    ) -> None:
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.user_id = user_id
        self.state = SessionState.CONNECTING
        self._registry = registry
        self._manager = manager
        self._handlers: Dict[str, EventHandler] = {}
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"<ConnectionSession {self.id[:8]} user={self.user_id or 'anonymous'} {self.state.value}>"

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers[event] = handler

    async def open(self) -> None:
        await self.websocket.accept()
        self.state = SessionState.OPEN
        self._writer = asyncio.create_task(self._write_loop())
        self._manager.add(self)
        if self.user_id:
            logger.info("User connected %s", self.user_id)
            # the registry listener broadcasts the new online set to everyone, us included
            self._registry.register(self.user_id, self)
        else:
            logger.info("Anonymous connection %s, presence not tracked", self.id[:8])
            self.emit(ONLINE_USERS_EVENT, sorted(self._registry.online_user_ids()))

    def emit(self, event: str, data: Any) -> bool:
        if self.state is not SessionState.OPEN:
            return False
        self._outbox.put_nowait({"type": event, "data": data})
        return True

    async def serve(self) -> None:
        await self.open()
        try:
            while True:
                raw = await self.websocket.receive_text()
                await self._dispatch(raw)
        except WebSocketDisconnect:
            pass
        except RuntimeError:
            # receive after a server-side close (shutdown)
            if self.state is not SessionState.CLOSED:
                raise
        finally:
            await self.close()

    async def close(self, code: Optional[int] = None) -> None:
        if not self._detach():
            return
        self._outbox.put_nowait(None)
        if self._writer is not None:
            await self._writer
        if code is not None:
            try:
                await self.websocket.close(code=code)
            except RuntimeError:
                # transport already closed by the peer
                pass

    def _detach(self) -> bool:
        """Leave the manager and the registry; False if already closed."""
        if self.state is SessionState.CLOSED:
            return False
        self.state = SessionState.CLOSED
        self._manager.discard(self)
        if self.user_id:
            logger.info("User disconnected %s", self.user_id)
            self._registry.unregister(self.user_id, self)
        return True

    async def _dispatch(self, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            self._reply_error(ValidationError("Invalid message payload"))
            return
        if not isinstance(frame, dict):
            self._reply_error(ValidationError("Invalid message payload"))
            return

        event = frame.get("type")
        handler = self._handlers.get(event)
        if handler is None:
            self._reply_error(ValidationError(f"Unsupported event {event!r}"))
            return
        try:
            await handler(frame)
        except ChatError as exc:
            self._reply_error(exc)

    def _reply_error(self, error: ChatError) -> None:
        logger.debug("session %s: %s", self.id[:8], error.message)
        self.emit(ERROR_EVENT, error.to_dict())

    async def _write_loop(self) -> None:
        while True:
            frame = await self._outbox.get()
            if frame is None:
                return
            try:
                await self.websocket.send_json(frame)
            except Exception as exc:
                # stop accepting frames nobody will drain; serve() still ends on the disconnect
                logger.warning("send to %r failed: %s", self, exc)
                self._detach()
                return
