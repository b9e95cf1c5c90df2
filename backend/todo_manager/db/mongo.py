# backend/todo_manager/db/mongo.py
import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from todo_manager.core.config import settings

logger = logging.getLogger(__name__)

client: AsyncIOMotorClient | None = None
db: AsyncIOMotorDatabase | None = None


async def connect_to_mongo():
    global client, db
    client = AsyncIOMotorClient(settings.MONGO_URI, tz_aware=True)
    db = client[settings.MONGO_DB_NAME]
    logger.info("MongoDB connected (db=%s)", settings.MONGO_DB_NAME)


async def close_mongo_connection():
    global client, db
    if client:
        client.close()
        client = None
        db = None
        logger.info("MongoDB connection closed")


def get_db() -> AsyncIOMotorDatabase:
    if db is None:
        raise RuntimeError("MongoDB not initialized. Did you call connect_to_mongo()?")
    return db


def get_todos_collection() -> AsyncIOMotorCollection:
    """
    Every write waits for majority acknowledgement and reads use majority
    read concern, so a read issued after a write observes it.
    """
    return get_db().get_collection(
        settings.TODO_COLLECTION,
        write_concern=WriteConcern(w="majority"),
        read_concern=ReadConcern("majority"),
    )
