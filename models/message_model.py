from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, Tuple
from datetime import datetime

from models.enums import Role
from utils.time import as_utc, timestamp_sort_key

class MessageCreate(BaseModel):
    """Model for sending a new message"""
    content: str = ""
    media_url: Optional[str] = None

class MessageResponse(BaseModel):
    """Model for returning message information to clients"""
    id: str
    conversation_id: str
    sender_id: str
    content: str = ""
    media_url: Optional[str] = None
    is_read: bool = False
    created_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    sender_name: Optional[str] = None
    sender_photo: Optional[str] = None

    model_config = {"extra": "ignore"}

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "MessageResponse":
        data = dict(document)
        data["id"] = str(data.pop("_id", data.get("id")))
        data["content"] = data.get("content") or ""
        data["is_read"] = bool(data.get("is_read", False))
        data["created_at"] = as_utc(data.get("created_at"))
        data["read_at"] = as_utc(data.get("read_at"))
        return cls(**data)

    def sort_key(self) -> Tuple[float, str]:
        # created_at ascending, id breaks ties
        return (timestamp_sort_key(self.created_at), self.id)

class ConversationCreate(BaseModel):
    """Request body for starting a conversation"""
    other_user_id: str = Field(min_length=1)

class Conversation(BaseModel):
    """Conversation between exactly two users, participants kept in sorted order"""
    id: str
    participant_a: str
    participant_b: str
    created_at: Optional[datetime] = None
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    last_message_sender_id: Optional[str] = None

    model_config = {"extra": "ignore"}

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Conversation":
        data = dict(document)
        data["id"] = str(data.pop("_id", data.get("id")))
        data["created_at"] = as_utc(data.get("created_at"))
        data["last_message_at"] = as_utc(data.get("last_message_at"))
        return cls(**data)

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.participant_a, self.participant_b)

    def other_participant(self, user_id: str) -> str:
        return self.participant_b if user_id == self.participant_a else self.participant_a

class ConversationSummary(Conversation):
    """Conversation as seen by one participant"""
    other_participant_id: str
    other_participant_name: str
    other_participant_photo: Optional[str] = None
    other_participant_role: Optional[Role] = None
    unread_count: int = 0

class ChatContact(BaseModel):
    """A user the viewer may start a new conversation with"""
    user_id: str
    name: str
    photo: Optional[str] = None
    role: Optional[Role] = None
    booking_id: Optional[str] = None
    last_booking_at: Optional[datetime] = None
