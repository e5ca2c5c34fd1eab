import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from db.mongodb import translate_mongo_error
from utils.time import get_current_utc_time

PARTICIPANT_FIELDS = ("participant_a", "participant_b")

class ConversationRepository:
    """
    Repository for conversation records.
    One document per unordered participant pair, keyed by the canonical id.
    """

    def __init__(self, db):
        self.db = db
        self.conversations = db.conversations

    async def create_if_absent(self, conversation_id: str, participant_a: str, participant_b: str) -> bool:
        """
        Conditionally create the conversation.
        Returns True if this call created it, False if it already existed.
        """
        try:
            result = await self.conversations.update_one(
                {"_id": conversation_id},
                {
                    "$setOnInsert": {
                        "participant_a": participant_a,
                        "participant_b": participant_b,
                        "created_at": get_current_utc_time(),
                        "last_message": None,
                        "last_message_at": None,
                        "last_message_sender_id": None
                    }
                },
                upsert=True
            )
        except DuplicateKeyError:
            # Lost a concurrent upsert to the other participant
            return False
        except PyMongoError as e:
            raise translate_mongo_error(e, "create conversation")
        return result.upserted_id is not None

    async def find_by_id(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.conversations.find_one({"_id": conversation_id})
        except PyMongoError as e:
            raise translate_mongo_error(e, "read conversation")

    async def find_by_participant(self, field: str, user_id: str) -> List[Dict[str, Any]]:
        """Conversations where the user sits in the given participant slot"""
        if field not in PARTICIPANT_FIELDS:
            raise ValueError(f"Unknown participant field: {field}")
        try:
            return await self.conversations.find({field: user_id}).to_list(length=None)
        except PyMongoError as e:
            raise translate_mongo_error(e, "list conversations")

    async def find_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        """Union of both participant queries, deduplicated by id"""
        results = await asyncio.gather(
            *(self.find_by_participant(field, user_id) for field in PARTICIPANT_FIELDS)
        )
        merged: Dict[str, Dict[str, Any]] = {}
        for documents in results:
            for document in documents:
                merged[str(document["_id"])] = document
        return list(merged.values())

    async def update_last_message(
        self,
        conversation_id: str,
        preview: str,
        sent_at: datetime,
        sender_id: str
    ) -> bool:
        """Denormalize the latest message onto the conversation"""
        try:
            result = await self.conversations.update_one(
                {"_id": conversation_id},
                {
                    "$set": {
                        "last_message": preview,
                        "last_message_at": sent_at,
                        "last_message_sender_id": sender_id
                    }
                }
            )
        except PyMongoError as e:
            raise translate_mongo_error(e, "update conversation preview")
        return result.matched_count > 0
