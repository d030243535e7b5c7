"""In-memory presence tracking.

Maps a user id to the single live connection handle currently serving it.
The registry is process-local and rebuilt from scratch on restart. Every
method is synchronous; callers on the event loop never yield while the map
is being mutated, so no locking is needed.
"""
import logging
from typing import Callable, Dict, Generic, List, Optional, Set, TypeVar


logger = logging.getLogger(__name__)

H = TypeVar("H")

PresenceListener = Callable[[Set[str]], None]


class PresenceRegistry(Generic[H]):

    def __init__(self) -> None:
        self._connections: Dict[str, H] = {}
        self._listeners: List[PresenceListener] = []

    def subscribe(self, listener: PresenceListener) -> None:
        """Call ``listener`` with the online snapshot after every change."""
        self._listeners.append(listener)

    def register(self, user_id: str, handle: H) -> None:
        # last write wins; a replaced handle is left open
        previous = self._connections.get(user_id)
        self._connections[user_id] = handle
        if previous is not None and previous is not handle:
            logger.debug("presence entry for %s replaced by a newer connection", user_id)
        self._notify()

    def unregister(self, user_id: str, handle: Optional[H] = None) -> bool:
        """Remove ``user_id``; with ``handle``, only while it is still the current one."""
        current = self._connections.get(user_id)
        if current is None:
            return False
        if handle is not None and current is not handle:
            return False
        del self._connections[user_id]
        self._notify()
        return True

    def lookup(self, user_id: str) -> Optional[H]:
        return self._connections.get(user_id)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._connections

    def online_user_ids(self) -> Set[str]:
        return set(self._connections)

    def clear(self) -> None:
        self._connections.clear()
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._connections)

    def _notify(self) -> None:
        snapshot = self.online_user_ids()
        logger.debug("online users changed: %d online", len(snapshot))
        for listener in list(self._listeners):
            listener(snapshot)
