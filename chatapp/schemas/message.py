from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from chatapp.schemas.user import UserPublic


class MessageCreate(BaseModel):

    text: Optional[str] = None
    image: Optional[str] = None


class MessagePublic(BaseModel):

    id: str
    sender_id: str
    receiver_id: str
    text: Optional[str] = None
    image: Optional[str] = None
    seen: bool = False
    created_at: datetime

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "MessagePublic":
        return cls(
            id=str(doc["_id"]),
            sender_id=doc["sender_id"],
            receiver_id=doc["receiver_id"],
            text=doc.get("text"),
            image=doc.get("image"),
            seen=bool(doc.get("seen", False)),
            created_at=doc["created_at"],
        )


class SeenAck(BaseModel):

    type: str = "seen"
    message_id: str


class SidebarResponse(BaseModel):

    success: bool = True
    users: List[UserPublic]
    unseen_messages: Dict[str, int]
