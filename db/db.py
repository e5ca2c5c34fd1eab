import asyncio
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from config import (
    DATABASE_URL,
    DATABASE_NAME,
    DB_MAX_POOL_SIZE,
    DB_MAX_RECONNECT_ATTEMPTS,
    DB_RECONNECT_DELAY,
    DB_SERVER_SELECTION_TIMEOUT_MS,
    DB_CONNECT_TIMEOUT_MS
)
from db.init_db import init_db_indexes
from logger.logger import logger
from utils.errors import Transient

# One pooled client per process, shared by every request and live query
client: Optional[AsyncIOMotorClient] = None
db: Optional[AsyncIOMotorDatabase] = None
_indexes_ready = False

def _create_client() -> AsyncIOMotorClient:
    # tz_aware keeps created_at / last_message_at comparable with our UTC timestamps
    return AsyncIOMotorClient(
        DATABASE_URL,
        maxPoolSize=DB_MAX_POOL_SIZE,
        serverSelectionTimeoutMS=DB_SERVER_SELECTION_TIMEOUT_MS,
        connectTimeoutMS=DB_CONNECT_TIMEOUT_MS,
        retryWrites=True,
        retryReads=True,
        tz_aware=True
    )

async def init_db() -> bool:
    """
    Connect to MongoDB with retries and make sure the chat indexes exist.
    Returns False when every attempt failed; the service keeps running and
    requests answer 503 until the database is reachable.
    """
    global client, db, _indexes_ready

    for attempt in range(1, DB_MAX_RECONNECT_ATTEMPTS + 1):
        try:
            if client is None:
                client = _create_client()
                db = client[DATABASE_NAME]

            await client.admin.command("ping")
            logger.info(f"Connected to MongoDB database '{DATABASE_NAME}'")
            if not _indexes_ready:
                await init_db_indexes(db)
                _indexes_ready = True
            return True
        except PyMongoError as e:
            logger.error(f"MongoDB connection attempt {attempt}/{DB_MAX_RECONNECT_ATTEMPTS} failed: {e}")
            if attempt < DB_MAX_RECONNECT_ATTEMPTS:
                await asyncio.sleep(DB_RECONNECT_DELAY)

    logger.error("Giving up on MongoDB for now; chat requests will fail until it is reachable")
    return False

async def get_db() -> AsyncIOMotorDatabase:
    """The chat database, reconnecting first if the last ping failed"""
    if client is None and not await init_db():
        raise Transient("Database service unavailable")

    try:
        await client.admin.command("ping")
    except PyMongoError as e:
        logger.error(f"Lost MongoDB connection: {e}")
        if not await init_db():
            raise Transient("Database service unavailable")
    return db

async def close_db_connection():
    """Close database connection"""
    global client, db, _indexes_ready
    if client:
        client.close()
        client = None
        db = None
        _indexes_ready = False
        logger.info("MongoDB connection closed")

def database_handle() -> AsyncIOMotorDatabase:
    """
    The configured database without a liveness check. Live queries use it so
    the realtime hub can be built even while MongoDB is still unreachable;
    their change streams then fail per subscription instead.
    """
    global client, db
    if db is None:
        client = _create_client()
        db = client[DATABASE_NAME]
    return db
