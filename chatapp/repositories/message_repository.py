from datetime import datetime, timezone
from typing import Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from chatapp.models.message import MessageDocument
from chatapp.utils.errors import NotFoundError, translate_store_errors


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    @translate_store_errors
    async def ensure_indexes(self) -> None:
        await self.collection.create_index(
            [("sender_id", ASCENDING), ("receiver_id", ASCENDING), ("created_at", ASCENDING)]
        )
        await self.collection.create_index([("receiver_id", ASCENDING), ("seen", ASCENDING)])

    @translate_store_errors
    async def save_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: Optional[str] = None,
        image: Optional[str] = None,
    ) -> MessageDocument:
        doc: MessageDocument = {
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "text": text,
            "image": image,
            "seen": False,
            "created_at": datetime.now(timezone.utc),
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    @translate_store_errors
    async def get_conversation(self, user_a: str, user_b: str) -> List[MessageDocument]:
        query = {
            "$or": [
                {"sender_id": user_a, "receiver_id": user_b},
                {"sender_id": user_b, "receiver_id": user_a},
            ]
        }
        cursor = self.collection.find(query).sort([("created_at", ASCENDING), ("_id", ASCENDING)])
        items = await cursor.to_list(length=None)
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items

    @translate_store_errors
    async def mark_conversation_seen(self, from_user_id: str, to_user_id: str) -> int:
        result = await self.collection.update_many(
            {"sender_id": from_user_id, "receiver_id": to_user_id, "seen": False},
            {"$set": {"seen": True}},
        )
        return result.modified_count or 0

    @translate_store_errors
    async def mark_message_seen(self, message_id: str) -> bool:
        try:
            oid = ObjectId(message_id)
        except (InvalidId, TypeError):
            raise NotFoundError(f"Message {message_id} not found")
        result = await self.collection.update_one({"_id": oid}, {"$set": {"seen": True}})
        if not result.matched_count:
            raise NotFoundError(f"Message {message_id} not found")
        return bool(result.modified_count)

    @translate_store_errors
    async def count_unseen_by_sender(self, receiver_id: str) -> Dict[str, int]:
        pipeline = [
            {"$match": {"receiver_id": receiver_id, "seen": False}},
            {"$group": {"_id": "$sender_id", "count": {"$sum": 1}}},
        ]
        rows = await self.collection.aggregate(pipeline).to_list(length=None)
        return {row["_id"]: row["count"] for row in rows if row["count"] > 0}
