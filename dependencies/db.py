# dependencies/db.py
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Annotated

from db.db import get_db as connected_db

async def get_db() -> AsyncIOMotorDatabase:
    """
    Chat database for one request. Raises Transient (503) while MongoDB is
    unreachable.
    """
    return await connected_db()

DB = Annotated[AsyncIOMotorDatabase, Depends(get_db)]
