import logging
from typing import Any, List, Set

from chatapp.utils.presence import PresenceRegistry
from chatapp.utils.session import ONLINE_USERS_EVENT, ConnectionSession


logger = logging.getLogger(__name__)


class ConnectionManager:
    """Every open session, anonymous ones included."""

    def __init__(self, registry: PresenceRegistry) -> None:
        self.registry = registry
        self.active_sessions: Set[ConnectionSession] = set()
        registry.subscribe(self._on_presence_change)

    def add(self, session: ConnectionSession) -> None:
        self.active_sessions.add(session)

    def discard(self, session: ConnectionSession) -> None:
        self.active_sessions.discard(session)

    def broadcast(self, event: str, data: Any) -> int:
        sent = 0
        for session in list(self.active_sessions):
            if session.emit(event, data):
                sent += 1
        return sent

    def _on_presence_change(self, online: Set[str]) -> None:
        self.broadcast(ONLINE_USERS_EVENT, sorted(online))

    async def close_all(self, code: int = 1001) -> None:
        sessions: List[ConnectionSession] = list(self.active_sessions)
        if sessions:
            logger.info("Closing %d live session(s)", len(sessions))
        for session in sessions:
            await session.close(code=code)

    def __len__(self) -> int:
        return len(self.active_sessions)
