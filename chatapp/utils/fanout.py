import logging
from typing import Any, Dict

from chatapp.schemas.message import MessagePublic
from chatapp.utils.presence import PresenceRegistry


logger = logging.getLogger(__name__)

NEW_MESSAGE_EVENT = "newMessage"


class FanoutDispatcher:
    """Push freshly stored messages to the receiver's live session, if any.

    Delivery is at-most-once: no retry, no offline queue. A receiver without
    a session picks the message up from history on its next fetch.
    """

    def __init__(self, registry: PresenceRegistry) -> None:
        self._registry = registry

    def dispatch(self, message: Dict[str, Any]) -> bool:
        receiver_id = message["receiver_id"]
        handle = self._registry.lookup(receiver_id)
        if handle is None:
            logger.debug("receiver %s offline, message %s left for history", receiver_id, message.get("_id"))
            return False

        payload = MessagePublic.from_document(message).model_dump(mode="json")
        try:
            delivered = handle.emit(NEW_MESSAGE_EVENT, payload)
        except Exception as exc:
            logger.warning("push of message %s to %s failed: %s", message.get("_id"), receiver_id, exc)
            return False
        if not delivered:
            logger.warning("push of message %s to %s dropped: session closed", message.get("_id"), receiver_id)
        return bool(delivered)
