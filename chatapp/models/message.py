from datetime import datetime
from typing import Optional, TypedDict


class MessageDocument(TypedDict, total=False):
    _id: str
    sender_id: str
    receiver_id: str
    text: Optional[str]
    # reference to an already hosted image (URL), never the image bytes
    image: Optional[str]
    # flips false -> true once, on conversation open or explicit ack
    seen: bool
    created_at: datetime
