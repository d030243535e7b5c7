import logging
from typing import AsyncIterator, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from chatapp.config import Settings


logger = logging.getLogger(__name__)


class _Mongo:

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None


_mongo = _Mongo()


async def connect_to_mongo(settings: Settings) -> AsyncIOMotorDatabase:
    _mongo.client = AsyncIOMotorClient(settings.mongodb_url, tz_aware=True)
    _mongo.db = _mongo.client[settings.mongodb_db]
    logger.info("Connected to MongoDB database %r", settings.mongodb_db)
    return _mongo.db


def use_database(db: AsyncIOMotorDatabase) -> None:
    """Install an already constructed database handle (tests, embedding)."""
    _mongo.client = None
    _mongo.db = db


async def close_mongo_connection() -> None:
    if _mongo.client is not None:
        _mongo.client.close()
        logger.info("MongoDB connection closed")
    _mongo.client = None
    _mongo.db = None


def get_database() -> AsyncIOMotorDatabase:
    if _mongo.db is None:
        raise RuntimeError("Database is not initialised; call connect_to_mongo() first")
    return _mongo.db


async def mongo_db_dependency() -> AsyncIterator[AsyncIOMotorDatabase]:
    yield get_database()
