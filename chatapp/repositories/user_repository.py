from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from chatapp.models.user import UserDocument
from chatapp.utils.errors import translate_store_errors


def _to_object_id(user_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(user_id)
    except (InvalidId, TypeError):
        return None


def _normalize(user: Optional[dict]) -> Optional[dict]:
    if user:
        user["_id"] = str(user["_id"])  # normalize to string for API layer
    return user


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    @translate_store_errors
    async def ensure_indexes(self) -> None:
        await self._collection.create_index([("email", ASCENDING)], unique=True)

    @translate_store_errors
    async def create_user(self, email: str, hashed_password: str, full_name: str, bio: str) -> str:

        doc: UserDocument = {
            "email": email,
            "hashed_password": hashed_password,
            "full_name": full_name,
            "bio": bio,
            "profile_pic": None,
            "created_at": datetime.now(timezone.utc),
        }
        result = await self._collection.insert_one(doc)
        return str(result.inserted_id)

    @translate_store_errors
    async def get_user_by_email(self, email: str) -> Optional[UserDocument]:

        return _normalize(await self._collection.find_one({"email": email}))

    @translate_store_errors
    async def get_user_by_id(self, user_id: str) -> Optional[UserDocument]:

        oid = _to_object_id(user_id)
        if oid is None:
            return None
        return _normalize(await self._collection.find_one({"_id": oid}))

    @translate_store_errors
    async def list_users_except(self, user_id: str) -> List[UserDocument]:

        query: Dict[str, Any] = {}
        oid = _to_object_id(user_id)
        if oid is not None:
            query["_id"] = {"$ne": oid}
        cursor = self._collection.find(query, {"hashed_password": 0}).sort("full_name", ASCENDING)
        items = await cursor.to_list(length=None)
        return [_normalize(it) for it in items]

    @translate_store_errors
    async def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Optional[dict]:

        oid = _to_object_id(user_id)
        if oid is None:
            return None
        if not fields:
            return await self.get_user_by_id(user_id)
        updated = await self._collection.find_one_and_update(
            {"_id": oid},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        return _normalize(updated)
