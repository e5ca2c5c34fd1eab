from typing import Optional

from models.message_model import Conversation
from repos.conversation_repo import ConversationRepository
from repos.message_repo import MessageRepository
from logger.logger import get_logger
from utils.errors import InvalidArgument, NotFound, PermissionDenied, require_identity

logger = get_logger("messages")

MEDIA_PREVIEW = "Media"

class MessageService:
    """Writes messages and keeps the conversation preview in step"""

    def __init__(self, message_repo: MessageRepository, conversation_repo: ConversationRepository):
        self.message_repo = message_repo
        self.conversation_repo = conversation_repo

    async def _participant_conversation(self, conversation_id: str, user_id: str) -> Conversation:
        document = await self.conversation_repo.find_by_id(conversation_id)
        if document is None:
            raise NotFound(f"Conversation {conversation_id} not found")
        conversation = Conversation.from_document(document)
        if not conversation.has_participant(user_id):
            raise PermissionDenied("Not a participant of this conversation")
        return conversation

    async def send(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        media_url: Optional[str] = None
    ) -> str:
        """
        Append a message and update the conversation's last-message preview.

        The message insert and the preview update are separate writes; a
        reader may briefly see the message before the preview catches up.
        """
        require_identity(sender_id)
        text = (content or "").strip()
        media_url = (media_url or "").strip() or None
        if not text and not media_url:
            raise InvalidArgument("Message content or media is required")

        await self._participant_conversation(conversation_id, sender_id)

        message = await self.message_repo.insert_message(conversation_id, sender_id, text, media_url)
        await self.conversation_repo.update_last_message(
            conversation_id,
            preview=text or MEDIA_PREVIEW,
            sent_at=message["created_at"],
            sender_id=sender_id
        )
        return str(message["_id"])

    async def mark_read(self, conversation_id: str, viewer_id: str) -> int:
        """Mark everything the other participant sent as read; safe to repeat"""
        require_identity(viewer_id)
        await self._participant_conversation(conversation_id, viewer_id)
        marked = await self.message_repo.mark_read(conversation_id, viewer_id)
        if marked:
            logger.info(f"Marked {marked} message(s) read in {conversation_id} for {viewer_id}")
        return marked
