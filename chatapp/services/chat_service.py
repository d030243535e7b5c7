import logging
from typing import Any, Dict, List, Optional

from chatapp.repositories.message_repository import MessageRepository
from chatapp.repositories.user_repository import UserRepository
from chatapp.utils.errors import NotFoundError, ValidationError
from chatapp.utils.fanout import FanoutDispatcher


logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ChatService:

    def __init__(
        self,
        message_repo: MessageRepository,
        user_repo: UserRepository,
        dispatcher: Optional[FanoutDispatcher] = None,
    ) -> None:
        self._message_repo = message_repo
        self._user_repo = user_repo
        self._dispatcher = dispatcher

    async def send_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: Optional[str] = None,
        image: Optional[str] = None,
    ) -> Dict[str, Any]:
        text, image = _clean(text), _clean(image)
        if text is None and image is None:
            raise ValidationError("Message must contain text or an image")
        if not await self._user_repo.get_user_by_id(receiver_id):
            raise NotFoundError(f"User {receiver_id} not found")

        saved = await self._message_repo.save_message(sender_id, receiver_id, text=text, image=image)
        # stored is the success condition; the live push is best-effort on top
        if self._dispatcher is not None:
            self._dispatcher.dispatch(saved)
        return saved

    async def get_conversation(self, user_a: str, user_b: str) -> List[Dict[str, Any]]:
        return await self._message_repo.get_conversation(user_a, user_b)

    async def open_conversation(self, viewer_id: str, other_id: str) -> List[Dict[str, Any]]:
        """List the thread, then mark what ``other_id`` sent to the viewer as seen.

        The returned list is read before the update, so incoming messages
        still show ``seen=False`` in this response.
        """
        messages = await self._message_repo.get_conversation(viewer_id, other_id)
        marked = await self._message_repo.mark_conversation_seen(other_id, viewer_id)
        if marked:
            logger.debug("%s opened conversation with %s, %d marked seen", viewer_id, other_id, marked)
        return messages

    async def mark_conversation_seen(self, from_user_id: str, to_user_id: str) -> int:
        return await self._message_repo.mark_conversation_seen(from_user_id, to_user_id)

    async def mark_message_seen(self, message_id: str) -> bool:
        return await self._message_repo.mark_message_seen(message_id)

    async def unseen_counts(self, viewer_id: str) -> Dict[str, int]:
        return await self._message_repo.count_unseen_by_sender(viewer_id)

    async def sidebar(self, viewer_id: str):
        users = await self._user_repo.list_users_except(viewer_id)
        counts = await self.unseen_counts(viewer_id)
        return users, counts
