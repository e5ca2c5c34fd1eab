from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from pydantic import BaseModel, Field
from pymongo import ASCENDING
from pymongo.errors import OperationFailure, PyMongoError

from db.mongodb import UNAUTHORIZED_CODES, translate_mongo_error
from logger.logger import get_logger
from repos.conversation_repo import PARTICIPANT_FIELDS
from repos.message_repo import message_sort_key

logger = get_logger("live_query")

class ChangeBatch(BaseModel):
    """A group of changed records pushed by one live query"""
    source: str
    documents: List[Dict[str, Any]] = Field(default_factory=list)
    removed_ids: List[str] = Field(default_factory=list)
    initial: bool = False

class LiveQuery:
    """
    A query that keeps pushing changes until closed.

    ``changes()`` yields the current result set as the first batch (marked
    ``initial``) and then one batch per change. Errors surface as chat
    errors: PermissionDenied or Transient.
    """

    name: str = "live-query"

    def changes(self) -> AsyncIterator[ChangeBatch]:
        raise NotImplementedError

    async def close(self) -> None:
        pass

class MongoLiveQuery(LiveQuery):
    """Live query backed by a MongoDB change stream"""

    def __init__(
        self,
        collection,
        name: str,
        match: Dict[str, Any],
        sort: Optional[List] = None,
        sort_key: Optional[Callable[[Dict[str, Any]], Any]] = None
    ):
        self.collection = collection
        self.name = name
        self.match = match
        self.sort = sort
        self.sort_key = sort_key
        self._stream = None
        self._closed = False

    def _pipeline(self) -> List[Dict[str, Any]]:
        stage = {"operationType": {"$in": ["insert", "update", "replace"]}}
        for field, value in self.match.items():
            stage[f"fullDocument.{field}"] = value
        return [{"$match": stage}]

    async def _snapshot(self) -> List[Dict[str, Any]]:
        if self.sort:
            try:
                return await self.collection.find(self.match).sort(self.sort).to_list(length=None)
            except OperationFailure as e:
                if e.code in UNAUTHORIZED_CODES:
                    raise translate_mongo_error(e, f"read {self.name}")
                logger.warning(f"Ordered snapshot for {self.name} failed, sorting client-side: {e}")

        try:
            documents = await self.collection.find(self.match).to_list(length=None)
        except PyMongoError as e:
            raise translate_mongo_error(e, f"read {self.name}")
        if self.sort_key is not None:
            documents.sort(key=self.sort_key)
        return documents

    async def changes(self) -> AsyncIterator[ChangeBatch]:
        try:
            async with self.collection.watch(self._pipeline(), full_document="updateLookup") as stream:
                self._stream = stream
                # Opens the stream before the snapshot so nothing falls in between
                pending = await stream.try_next()

                yield ChangeBatch(source=self.name, documents=await self._snapshot(), initial=True)
                if pending is not None and pending.get("fullDocument") is not None:
                    yield ChangeBatch(source=self.name, documents=[pending["fullDocument"]])

                async for change in stream:
                    document = change.get("fullDocument")
                    if document is None:
                        continue
                    yield ChangeBatch(source=self.name, documents=[document])
        except PyMongoError as e:
            if self._closed:
                return
            raise translate_mongo_error(e, f"watch {self.name}")
        finally:
            self._stream = None

    async def close(self) -> None:
        self._closed = True
        if self._stream is not None:
            await self._stream.close()

class MongoLiveQueryFactory:
    """Builds the live queries the realtime hub subscribes to"""

    def __init__(self, db):
        self.db = db

    def conversations_for(self, user_id: str) -> List[LiveQuery]:
        """One live query per participant slot the user can occupy"""
        return [
            MongoLiveQuery(
                self.db.conversations,
                name=f"conversations.{field}",
                match={field: user_id}
            )
            for field in PARTICIPANT_FIELDS
        ]

    def messages_for(self, conversation_id: str) -> LiveQuery:
        return MongoLiveQuery(
            self.db.messages,
            name=f"messages.{conversation_id}",
            match={"conversation_id": conversation_id},
            sort=[("created_at", ASCENDING), ("_id", ASCENDING)],
            sort_key=message_sort_key
        )
