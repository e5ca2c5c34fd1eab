import asyncio
from typing import Dict, Iterable, List, Optional

from models.message_model import Conversation, ConversationSummary, MessageResponse
from models.users_model import UserProfile
from repos.conversation_repo import ConversationRepository
from repos.message_repo import MessageRepository
from repos.user_repo import UserRepository
from services.unread_service import UnreadCounter
from logger.logger import get_logger
from utils.conversation_id import SEPARATOR, participants
from utils.errors import ChatError, InvalidArgument, NotFound, PermissionDenied, require_identity
from utils.time import timestamp_sort_key

logger = get_logger("conversations")

# Profiles looked up so far, keyed by user id
ProfileCache = Dict[str, UserProfile]

def sort_conversations(conversations: Iterable[ConversationSummary]) -> List[ConversationSummary]:
    """Most recent activity first; conversations without messages last"""
    return sorted(
        conversations,
        key=lambda conversation: (timestamp_sort_key(conversation.last_message_at), conversation.id),
        reverse=True
    )

class ConversationService:
    """
    Service layer for conversations.
    Creates conversations on first contact and presents them to one
    participant, enriched with the other participant's profile.
    """

    def __init__(
        self,
        conversation_repo: ConversationRepository,
        message_repo: MessageRepository,
        user_repo: UserRepository,
        unread_counter: UnreadCounter,
        unknown_label: str = "Unknown"
    ):
        self.conversation_repo = conversation_repo
        self.message_repo = message_repo
        self.user_repo = user_repo
        self.unread_counter = unread_counter
        self.unknown_label = unknown_label

    async def get_or_create(self, caller_id: str, other_id: str) -> str:
        """
        Return the id of the conversation between the two users, creating it
        if needed. Safe to call from both sides at once: creation is a
        conditional write, so both callers end up with the same record.
        """
        require_identity(caller_id)
        participant_a, participant_b = participants(caller_id, other_id)
        conversation_id = SEPARATOR.join((participant_a, participant_b))

        document = await self.conversation_repo.find_by_id(conversation_id)
        if document is None:
            created = await self.conversation_repo.create_if_absent(conversation_id, participant_a, participant_b)
            if created:
                logger.info(f"Created conversation {conversation_id}")
                return conversation_id
            # The other side created it first
            document = await self.conversation_repo.find_by_id(conversation_id)

        # Ids containing the separator can collide, e.g. ("a_b", "c") and ("a", "b_c")
        if document is not None and (document.get("participant_a"), document.get("participant_b")) != (participant_a, participant_b):
            logger.warning(f"Conversation id {conversation_id} is taken by another pair")
            raise InvalidArgument(f"Conversation id {conversation_id} belongs to other participants")
        return conversation_id

    async def get_conversation(self, conversation_id: str, viewer_id: str) -> Conversation:
        """Raw conversation record, visible to its participants only"""
        require_identity(viewer_id)
        document = await self.conversation_repo.find_by_id(conversation_id)
        if document is None:
            raise NotFound(f"Conversation {conversation_id} not found")
        conversation = Conversation.from_document(document)
        if not conversation.has_participant(viewer_id):
            raise PermissionDenied("Not a participant of this conversation")
        return conversation

    async def get(self, conversation_id: str, viewer_id: str) -> ConversationSummary:
        conversation = await self.get_conversation(conversation_id, viewer_id)
        summaries = await self.summarize(viewer_id, [conversation])
        return summaries[0]

    async def list_conversations(self, user_id: str) -> List[ConversationSummary]:
        """All conversations of the user, newest activity first"""
        require_identity(user_id)
        try:
            documents = await self.conversation_repo.find_for_user(user_id)
        except ChatError as e:
            logger.warning(f"Could not list conversations for {user_id}: {e.message}")
            return []
        conversations = [Conversation.from_document(document) for document in documents]
        return await self.summarize(user_id, conversations)

    async def summarize(
        self,
        viewer_id: str,
        conversations: Iterable[Conversation],
        profiles: Optional[ProfileCache] = None
    ) -> List[ConversationSummary]:
        """
        Attach the other participant's profile and the viewer's unread count,
        then sort. ``profiles`` is reused across calls by long-lived
        subscriptions so each user is looked up once.
        """
        if profiles is None:
            profiles = {}
        conversations = list(conversations)
        await self._load_profiles(
            (conversation.other_participant(viewer_id) for conversation in conversations),
            profiles
        )
        unread_counts = await asyncio.gather(
            *(self.unread_counter.count(conversation.id, viewer_id) for conversation in conversations)
        )

        summaries = []
        for conversation, unread_count in zip(conversations, unread_counts):
            other_id = conversation.other_participant(viewer_id)
            profile = profiles.get(other_id)
            summaries.append(ConversationSummary(
                **conversation.model_dump(),
                other_participant_id=other_id,
                other_participant_name=profile.display_name(self.unknown_label) if profile else self.unknown_label,
                other_participant_photo=profile.profile_photo if profile else None,
                other_participant_role=profile.role if profile else None,
                unread_count=unread_count
            ))
        return sort_conversations(summaries)

    async def get_messages(
        self,
        conversation_id: str,
        viewer_id: str,
        limit: Optional[int] = None
    ) -> List[MessageResponse]:
        """The latest ``limit`` messages, oldest first, with sender details"""
        await self.get_conversation(conversation_id, viewer_id)
        documents = await self.message_repo.find_messages(conversation_id, limit=limit, newest_first=True)
        messages = [MessageResponse.from_document(document) for document in reversed(documents)]
        return await self.enrich_messages(messages)

    async def enrich_messages(
        self,
        messages: List[MessageResponse],
        profiles: Optional[ProfileCache] = None
    ) -> List[MessageResponse]:
        if profiles is None:
            profiles = {}
        await self._load_profiles((message.sender_id for message in messages), profiles)

        enriched = []
        for message in messages:
            profile = profiles.get(message.sender_id)
            if profile is None:
                enriched.append(message)
                continue
            enriched.append(message.model_copy(update={
                "sender_name": profile.display_name(self.unknown_label),
                "sender_photo": profile.profile_photo
            }))
        return enriched

    async def _load_profiles(self, user_ids: Iterable[str], profiles: ProfileCache) -> None:
        """Fill the cache with any profiles it does not hold yet"""
        missing = {user_id for user_id in user_ids if user_id not in profiles}
        if not missing:
            return
        try:
            profiles.update(await self.user_repo.get_profiles(missing))
        except ChatError as e:
            # Falls back to the generic label; retried on the next call
            logger.warning(f"Profile lookup failed for {len(missing)} user(s): {e.message}")
