import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
from typing import Optional
import asyncio

from app.config import settings

# Logger setup
logger = logging.getLogger(__name__)

# Globals
_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo() -> AsyncIOMotorDatabase:
    """
    Connect to MongoDB and return the database.

    Returns:
        AsyncIOMotorDatabase: MongoDB database
    """
    global _client, _db

    if _client is not None:
        if _db is None:
            _db = _client[settings.MONGODB_DB_NAME]
        return _db

    logger.info(f"Connecting to MongoDB at {settings.MONGODB_HOST}:{settings.MONGODB_PORT}, database {settings.MONGODB_DB_NAME}")

    try:
        _client = AsyncIOMotorClient(
            settings.MONGODB_URI,
            serverSelectionTimeoutMS=10000,
            connectTimeoutMS=10000,
            socketTimeoutMS=45000,
            maxPoolSize=10,
            minPoolSize=1,
            maxIdleTimeMS=60000,
            retryWrites=True,
            retryReads=True
        )

        try:
            await asyncio.wait_for(_client.admin.command('ping'), timeout=5.0)
            logger.info("Connected to MongoDB")
        except asyncio.TimeoutError:
            logger.error("Timed out checking the MongoDB connection")
            raise TimeoutError("Timed out checking the MongoDB connection")

        _db = _client[settings.MONGODB_DB_NAME]
        await _create_indices()
        return _db

    except (PyMongoError, TimeoutError) as e:
        logger.error(f"Error connecting to MongoDB: {str(e)}")
        if _client is not None:
            _client.close()
            _client = None
        _db = None
        raise


async def _create_indices():
    """Create the indexes the queries rely on."""
    if _db is None:
        return

    try:
        await _db.requests.create_index("request_id", unique=True)
        await _db.requests.create_index("created_at")

        await _db.analyses.create_index([("user_id", 1), ("created_at", -1)])
        await _db.analyses.create_index([("user_id", 1), ("type", 1)])

        logger.info("MongoDB indexes created")
    except PyMongoError as e:
        logger.warning(f"Error creating MongoDB indexes: {str(e)}")


def get_database() -> AsyncIOMotorDatabase:
    """
    Access the MongoDB database.

    Raises:
        RuntimeError: when connect_to_mongo has not succeeded
    """
    if _db is None:
        raise RuntimeError("MongoDB is not connected. Call connect_to_mongo first.")
    return _db


async def close_mongo_connection():
    """Close the MongoDB connection."""
    global _client, _db

    if _client is not None:
        logger.info("Closing MongoDB connection...")
        _client.close()
        _client = None
        _db = None
        logger.info("MongoDB connection closed")
