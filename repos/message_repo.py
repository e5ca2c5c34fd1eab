from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure, PyMongoError

from db.mongodb import UNAUTHORIZED_CODES, translate_mongo_error
from logger.logger import get_logger
from utils.time import get_current_utc_time, timestamp_sort_key

logger = get_logger("messages")

def message_sort_key(document: Dict[str, Any]):
    """created_at ascending with the message id as tiebreaker"""
    return (timestamp_sort_key(document.get("created_at")), str(document["_id"]))

class MessageRepository:
    """
    Repository for messages.
    Messages live in one collection and are scoped to their conversation by
    ``conversation_id``; they are append-only apart from the read flag.
    """

    def __init__(self, db):
        self.db = db
        self.messages = db.messages

    async def insert_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        media_url: Optional[str] = None
    ) -> Dict[str, Any]:
        """Append a message with a server-assigned timestamp"""
        message_dict = {
            "_id": ObjectId(),
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "content": content,
            "is_read": False,
            "created_at": get_current_utc_time()
        }
        if media_url:
            message_dict["media_url"] = media_url

        try:
            await self.messages.insert_one(message_dict)
        except PyMongoError as e:
            raise translate_mongo_error(e, "send message")
        return message_dict

    async def find_messages(
        self,
        conversation_id: str,
        limit: Optional[int] = None,
        newest_first: bool = False
    ) -> List[Dict[str, Any]]:
        """
        Messages of a conversation in feed order.
        If the ordered query is rejected (e.g. a missing index) the sort clause
        is dropped and the ordering is done here instead.
        """
        direction = DESCENDING if newest_first else ASCENDING
        query = {"conversation_id": conversation_id}
        try:
            cursor = self.messages.find(query).sort([("created_at", direction), ("_id", direction)])
            if limit:
                cursor = cursor.limit(limit)
            return await cursor.to_list(length=None)
        except OperationFailure as e:
            if e.code in UNAUTHORIZED_CODES:
                raise translate_mongo_error(e, "read messages")
            logger.warning(f"Ordered message query failed for {conversation_id}, sorting client-side: {e}")
        except PyMongoError as e:
            raise translate_mongo_error(e, "read messages")

        try:
            documents = await self.messages.find(query).to_list(length=None)
        except PyMongoError as e:
            raise translate_mongo_error(e, "read messages")
        documents.sort(key=message_sort_key, reverse=newest_first)
        return documents[:limit] if limit else documents

    async def find_unread(self, conversation_id: str) -> List[Dict[str, Any]]:
        """Unread messages of a conversation, filtered on the read flag only"""
        try:
            return await self.messages.find(
                {"conversation_id": conversation_id, "is_read": False},
                {"sender_id": 1}
            ).to_list(length=None)
        except PyMongoError as e:
            raise translate_mongo_error(e, "count unread messages")

    async def mark_read(self, conversation_id: str, viewer_id: str) -> int:
        """Flip every unread message not sent by the viewer; returns how many flipped"""
        try:
            result = await self.messages.update_many(
                {
                    "conversation_id": conversation_id,
                    "sender_id": {"$ne": viewer_id},
                    "is_read": False
                },
                {
                    "$set": {
                        "is_read": True,
                        "read_at": get_current_utc_time()
                    }
                }
            )
        except PyMongoError as e:
            raise translate_mongo_error(e, "mark messages as read")
        return result.modified_count
