from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from typing import List, Optional

from config import CHAT_MESSAGE_PAGE_SIZE
from dependencies.auth import CurrentUserId
from dependencies.chat import (
    AccessGateDep,
    ConversationServiceDep,
    MessageServiceDep,
    RealtimeHubDep,
    UnreadCounterDep,
)
from helpers.auth import decode_access_token
from models.message_model import (
    ChatContact,
    ConversationCreate,
    ConversationSummary,
    MessageCreate,
    MessageResponse,
)
from utils.errors import ChatError


router = APIRouter()

@router.post("/conversations")
async def start_conversation(
    body: ConversationCreate,
    current_user_id: CurrentUserId,
    conversation_service: ConversationServiceDep
):
    """Get or create the conversation with another user"""
    conversation_id = await conversation_service.get_or_create(current_user_id, body.other_user_id)
    return {"conversation_id": conversation_id}

@router.get("/conversations", response_model=List[ConversationSummary])
async def get_conversations(
    current_user_id: CurrentUserId,
    conversation_service: ConversationServiceDep
):
    """Get all conversations for the current user"""
    return await conversation_service.list_conversations(current_user_id)

@router.get("/conversations/{conversation_id}", response_model=ConversationSummary)
async def get_conversation(
    conversation_id: str,
    current_user_id: CurrentUserId,
    conversation_service: ConversationServiceDep
):
    return await conversation_service.get(conversation_id, current_user_id)

@router.get("/conversations/{conversation_id}/messages", response_model=List[MessageResponse])
async def get_messages(
    conversation_id: str,
    current_user_id: CurrentUserId,
    conversation_service: ConversationServiceDep,
    limit: int = Query(CHAT_MESSAGE_PAGE_SIZE, ge=1, le=500)
):
    """Latest messages of a conversation, oldest first"""
    return await conversation_service.get_messages(conversation_id, current_user_id, limit)

@router.post("/conversations/{conversation_id}/messages")
async def send_message(
    conversation_id: str,
    message: MessageCreate,
    current_user_id: CurrentUserId,
    message_service: MessageServiceDep
):
    """Send a new message"""
    message_id = await message_service.send(conversation_id, current_user_id, message.content, message.media_url)
    return {"message_id": message_id}

@router.post("/conversations/{conversation_id}/read")
async def mark_messages_as_read(
    conversation_id: str,
    current_user_id: CurrentUserId,
    message_service: MessageServiceDep
):
    """Mark messages as read"""
    marked = await message_service.mark_read(conversation_id, current_user_id)
    return {"marked": marked}

@router.get("/conversations/{conversation_id}/unread")
async def get_unread_count(
    conversation_id: str,
    current_user_id: CurrentUserId,
    conversation_service: ConversationServiceDep,
    unread_counter: UnreadCounterDep
):
    await conversation_service.get_conversation(conversation_id, current_user_id)
    return {"unread_count": await unread_counter.count(conversation_id, current_user_id)}

@router.get("/unread")
async def get_total_unread_count(
    current_user_id: CurrentUserId,
    unread_counter: UnreadCounterDep
):
    return {"unread_count": await unread_counter.total(current_user_id)}

@router.get("/contacts", response_model=List[ChatContact])
async def get_chat_contacts(
    current_user_id: CurrentUserId,
    access_gate: AccessGateDep
):
    """Users the current user may start a new conversation with"""
    return await access_gate.chattable_contacts(current_user_id)

@router.get("/contacts/{user_id}/eligibility")
async def get_contact_eligibility(
    user_id: str,
    current_user_id: CurrentUserId,
    access_gate: AccessGateDep
):
    return {"eligible": await access_gate.can_chat_with(current_user_id, user_id)}

def _close_code(error: ChatError) -> int:
    # Application close codes mirror the HTTP status, e.g. 4404
    return 4000 + error.status_code

@router.websocket("/ws/conversations")
async def conversations_feed(
    websocket: WebSocket,
    hub: RealtimeHubDep,
    token: Optional[str] = None
):
    """Pushes the caller's conversation list whenever it changes"""
    token_data = decode_access_token(token)
    if token_data is None:
        await websocket.close(code=4401)
        return
    await websocket.accept()

    async def push(conversations: List[ConversationSummary]):
        await websocket.send_json({
            "type": "conversations",
            "data": [conversation.model_dump(mode="json") for conversation in conversations]
        })

    subscription = await hub.subscribe_conversations(token_data.user_id, push)
    try:
        while True:
            # Nothing to act on from the client; reading detects the disconnect
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await subscription.cancel()

@router.websocket("/ws/conversations/{conversation_id}")
async def messages_feed(
    websocket: WebSocket,
    conversation_id: str,
    hub: RealtimeHubDep,
    message_service: MessageServiceDep,
    token: Optional[str] = None
):
    """
    Pushes the ordered messages of one conversation.
    Clients may send ``{"type": "message", "content": ..., "media_url": ...}``
    or ``{"type": "read"}``.
    """
    token_data = decode_access_token(token)
    if token_data is None:
        await websocket.close(code=4401)
        return
    user_id = token_data.user_id

    async def push(messages: List[MessageResponse]):
        await websocket.send_json({
            "type": "messages",
            "data": [message.model_dump(mode="json") for message in messages]
        })

    await websocket.accept()
    try:
        subscription = await hub.subscribe_messages(conversation_id, user_id, push)
    except ChatError as e:
        await websocket.close(code=_close_code(e), reason=e.message)
        return

    try:
        while True:
            try:
                payload = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"type": "error", "detail": "Event is not valid JSON"})
                continue
            event_type = payload.get("type") if isinstance(payload, dict) else None
            try:
                if event_type == "message":
                    message = MessageCreate.model_validate(payload)
                    message_id = await message_service.send(
                        conversation_id,
                        user_id,
                        message.content,
                        message.media_url
                    )
                    await websocket.send_json({"type": "sent", "message_id": message_id})
                elif event_type == "read":
                    marked = await message_service.mark_read(conversation_id, user_id)
                    await websocket.send_json({"type": "read", "marked": marked})
                else:
                    await websocket.send_json({"type": "error", "detail": f"Unknown event type: {event_type}"})
            except ValidationError as e:
                await websocket.send_json({"type": "error", "detail": f"Invalid message event: {e.error_count()} invalid field(s)"})
            except ChatError as e:
                await websocket.send_json({"type": "error", "detail": e.message})
    except WebSocketDisconnect:
        pass
    finally:
        await subscription.cancel()
