import asyncio
import os
from datetime import datetime, timedelta, timezone

# config exits the process when these are missing, so set them before any import
os.environ.setdefault("DATABASE_URL", "mongodb://localhost:27017")
os.environ.setdefault("DATABASE_NAME", "chat_test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import pytest
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import OperationFailure

from dependencies.chat import (
    build_access_gate,
    build_conversation_service,
    build_message_service,
    build_unread_counter,
)
from repos.conversation_repo import PARTICIPANT_FIELDS
from repos.live_query import ChangeBatch, LiveQuery

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)

@pytest.fixture
def db():
    client = AsyncMongoMockClient()
    return client["chat_test"]

@pytest.fixture
def conversation_service(db):
    return build_conversation_service(db)

@pytest.fixture
def message_service(db):
    return build_message_service(db)

@pytest.fixture
def unread_counter(db):
    return build_unread_counter(db)

@pytest.fixture
def access_gate(db):
    return build_access_gate(db)

@pytest.fixture
async def users(db):
    """A small directory covering every role"""
    await db.users.insert_many([
        {"_id": "player-1", "role": "player", "first_name": "Sam", "last_name": "Lee", "profile_photo": "sam.png"},
        {"_id": "player-2", "role": "player", "first_name": "Ana"},
        {"_id": "parent-1", "role": "parent", "email": "parent@example.com"},
        {"_id": "academy-1", "role": "academy", "academy_name": "North Academy"},
        {"_id": "clinic-1", "role": "clinic", "clinic_name": "City Clinic"},
        {"_id": "agent-1", "role": "agent", "first_name": "Kim", "last_name": "Park"},
    ])

class FakeLiveQuery(LiveQuery):
    """Live query fed by the test through ``push`` and ``fail``"""

    def __init__(self, name: str):
        self.name = name
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    async def push(self, documents, initial=False, removed_ids=()):
        await self._queue.put(ChangeBatch(
            source=self.name,
            documents=list(documents),
            removed_ids=list(removed_ids),
            initial=initial
        ))

    async def fail(self, error):
        await self._queue.put(error)

    async def changes(self):
        while True:
            item = await self._queue.get()
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self):
        self.closed = True

class FakeLiveQueryFactory:
    def __init__(self):
        self.queries = {}

    def conversations_for(self, user_id):
        queries = [FakeLiveQuery(f"conversations.{field}") for field in PARTICIPANT_FIELDS]
        for query in queries:
            self.queries[query.name] = query
        return queries

    def messages_for(self, conversation_id):
        query = FakeLiveQuery(f"messages.{conversation_id}")
        self.queries[query.name] = query
        return query

@pytest.fixture
def live_queries():
    return FakeLiveQueryFactory()

class Recorder:
    """Callback that remembers every list it was given"""

    def __init__(self):
        self.calls = []
        self._event = asyncio.Event()

    async def __call__(self, items):
        self.calls.append(items)
        self._event.set()

    async def wait_for(self, count: int, timeout: float = 2.0):
        async def _wait():
            while len(self.calls) < count:
                self._event.clear()
                await self._event.wait()
        await asyncio.wait_for(_wait(), timeout)

@pytest.fixture
def recorder():
    return Recorder()

class UnsortableCollection:
    """Collection whose cursors reject ``sort`` with the given server error code"""

    def __init__(self, collection, code: int = 2):
        self._collection = collection
        self.code = code
        self.sort_attempts = 0

    def find(self, *args, **kwargs):
        return _UnsortableCursor(self._collection.find(*args, **kwargs), self)

    def __getattr__(self, name):
        return getattr(self._collection, name)

class _UnsortableCursor:
    def __init__(self, cursor, owner: UnsortableCollection):
        self._cursor = cursor
        self._owner = owner

    def sort(self, *args, **kwargs):
        self._owner.sort_attempts += 1
        raise OperationFailure("sort rejected", code=self._owner.code)

    def __getattr__(self, name):
        return getattr(self._cursor, name)
