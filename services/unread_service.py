from repos.conversation_repo import ConversationRepository
from repos.message_repo import MessageRepository
from logger.logger import get_logger
from utils.errors import ChatError

logger = get_logger("unread")

class UnreadCounter:
    """
    Viewer-scoped unread counts, derived on every request.

    Nothing is stored: each count scans the conversation's unread messages,
    so the cost grows with the number of unread messages in the conversation.
    Only the read flag is queried; the sender is filtered here so no compound
    index is needed.
    """

    def __init__(self, message_repo: MessageRepository, conversation_repo: ConversationRepository):
        self.message_repo = message_repo
        self.conversation_repo = conversation_repo

    async def count(self, conversation_id: str, viewer_id: str) -> int:
        """Unread messages in the conversation that the viewer did not send"""
        try:
            unread = await self.message_repo.find_unread(conversation_id)
        except ChatError as e:
            logger.warning(f"Unread count for {conversation_id} unavailable: {e.message}")
            return 0
        return sum(1 for message in unread if message.get("sender_id") != viewer_id)

    async def total(self, user_id: str) -> int:
        """Unread messages across all of the user's conversations"""
        try:
            conversations = await self.conversation_repo.find_for_user(user_id)
        except ChatError as e:
            logger.warning(f"Unread total for {user_id} unavailable: {e.message}")
            return 0

        total = 0
        for conversation in conversations:
            total += await self.count(str(conversation["_id"]), user_id)
        return total
