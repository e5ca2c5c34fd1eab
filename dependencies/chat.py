from fastapi import Depends, WebSocket, WebSocketException, status
from typing import Annotated

from config import CHAT_UNKNOWN_USER_LABEL
from repos.booking_repo import BookingRepository
from repos.conversation_repo import ConversationRepository
from repos.message_repo import MessageRepository
from repos.user_repo import UserRepository
from services.access_gate import AccessGate
from services.conversation_service import ConversationService
from services.message_service import MessageService
from services.realtime_hub import RealtimeSubscriptionHub
from services.unread_service import UnreadCounter
from .db import DB

def build_unread_counter(db) -> UnreadCounter:
    return UnreadCounter(MessageRepository(db), ConversationRepository(db))

def build_conversation_service(db) -> ConversationService:
    return ConversationService(
        ConversationRepository(db),
        MessageRepository(db),
        UserRepository(db),
        build_unread_counter(db),
        unknown_label=CHAT_UNKNOWN_USER_LABEL
    )

def build_message_service(db) -> MessageService:
    return MessageService(MessageRepository(db), ConversationRepository(db))

def build_access_gate(db) -> AccessGate:
    return AccessGate(UserRepository(db), BookingRepository(db), unknown_label=CHAT_UNKNOWN_USER_LABEL)

def get_conversation_service(db: DB) -> ConversationService:
    """
    Dependency to get a conversation service instance.
    """
    return build_conversation_service(db)

def get_message_service(db: DB) -> MessageService:
    return build_message_service(db)

def get_unread_counter(db: DB) -> UnreadCounter:
    return build_unread_counter(db)

def get_access_gate(db: DB) -> AccessGate:
    return build_access_gate(db)

def get_realtime_hub(websocket: WebSocket) -> RealtimeSubscriptionHub:
    """The process-wide hub created at startup"""
    hub = getattr(websocket.app.state, "hub", None)
    if hub is None:
        raise WebSocketException(
            code=status.WS_1011_INTERNAL_ERROR,
            reason="Realtime service unavailable"
        )
    return hub

# Create annotated types for cleaner dependency injection
ConversationServiceDep = Annotated[ConversationService, Depends(get_conversation_service)]
MessageServiceDep = Annotated[MessageService, Depends(get_message_service)]
UnreadCounterDep = Annotated[UnreadCounter, Depends(get_unread_counter)]
AccessGateDep = Annotated[AccessGate, Depends(get_access_gate)]
RealtimeHubDep = Annotated[RealtimeSubscriptionHub, Depends(get_realtime_hub)]
