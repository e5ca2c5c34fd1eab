"""
Push-based conversation and message feeds.

Every subscription owns one bounded queue. Its live queries only put change
batches on that queue; a single consumer task takes them off, applies them
and calls back. Ticks of one subscription are therefore applied strictly in
order, while separate subscriptions run independently.
"""
import asyncio
import bisect
import inspect
from pydantic import ValidationError
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from models.message_model import Conversation, ConversationSummary, MessageResponse
from repos.live_query import ChangeBatch, LiveQuery
from services.conversation_service import ConversationService, ProfileCache
from logger.logger import get_logger
from utils.errors import ChatError, PermissionDenied, require_identity

logger = get_logger("hub")

Callback = Callable[[List[Any]], Union[None, Awaitable[None]]]

class SourceFailed:
    """Queued in place of a batch when a live query stops with an error"""

    def __init__(self, source: str, error: ChatError):
        self.source = source
        self.error = error

class Subscription:
    """
    Base for one live feed.

    Subclasses keep the merged state (``_apply``), turn it into what the
    callback receives (``_render``) and drop it (``_clear``). The first
    callback fires once every live query has delivered its initial result
    set; after that every batch already waiting on the queue is folded into
    a single tick.
    """

    def __init__(
        self,
        name: str,
        live_queries: Iterable[LiveQuery],
        callback: Callback,
        queue_size: int,
        on_close: Optional[Callable[["Subscription"], None]] = None
    ):
        self.name = name
        self._live_queries = list(live_queries)
        self._callback = callback
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._pending_initial: Set[str] = {query.name for query in self._live_queries}
        self._tasks: List[asyncio.Task] = []
        self._version = 0
        self._cancelled = False
        self._on_close = on_close

    @property
    def active(self) -> bool:
        return not self._cancelled

    def start(self) -> None:
        for query in self._live_queries:
            self._tasks.append(asyncio.create_task(self._pump(query), name=f"{self.name}:{query.name}"))
        self._tasks.append(asyncio.create_task(self._consume(), name=f"{self.name}:consumer"))
        logger.info(f"Subscription {self.name} started with {len(self._live_queries)} live query(ies)")

    async def cancel(self) -> None:
        """
        Stop the feed. Takes effect immediately: a tick that is still being
        processed is discarded and no callback fires afterwards.
        """
        if self._cancelled:
            return
        self._cancelled = True
        self._version += 1

        current = asyncio.current_task()
        others = [task for task in self._tasks if task is not current]
        for task in others:
            task.cancel()
        for query in self._live_queries:
            try:
                await query.close()
            except ChatError as e:
                logger.warning(f"Closing {query.name} for {self.name} failed: {e.message}")
        await asyncio.gather(*others, return_exceptions=True)

        if self._on_close is not None:
            self._on_close(self)
        logger.info(f"Subscription {self.name} cancelled")

    async def _pump(self, query: LiveQuery) -> None:
        try:
            async for batch in query.changes():
                await self._queue.put(batch)
        except ChatError as e:
            await self._queue.put(SourceFailed(query.name, e))

    async def _consume(self) -> None:
        while not self._cancelled:
            items = [await self._queue.get()]
            while not self._queue.empty():
                items.append(self._queue.get_nowait())

            for item in items:
                if isinstance(item, SourceFailed):
                    if isinstance(item.error, PermissionDenied):
                        # Usually the session ended; drop everything quietly
                        logger.warning(f"Subscription {self.name} denied by {item.source}, clearing state")
                        self._clear()
                        await self.cancel()
                        return
                    logger.warning(f"Live query {item.source} of {self.name} stopped: {item.error.message}")
                    self._pending_initial.discard(item.source)
                    continue
                try:
                    self._apply(item)
                except Exception:
                    # A broken batch must not stop the feed; later batches still apply
                    logger.exception(f"Subscription {self.name} dropped a batch from {item.source}")
                if item.initial:
                    self._pending_initial.discard(item.source)

            if self._pending_initial or self._cancelled:
                continue

            self._version += 1
            stamp = self._version
            try:
                rendered = await self._render()
            except ChatError as e:
                logger.warning(f"Subscription {self.name} skipped a tick: {e.message}")
                continue
            except Exception:
                logger.exception(f"Subscription {self.name} failed to render a tick")
                continue
            if self._cancelled or stamp != self._version:
                continue
            await self._deliver(rendered)

    async def _deliver(self, rendered: List[Any]) -> None:
        try:
            result = self._callback(rendered)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Callback of subscription {self.name} raised")

    def _apply(self, batch: ChangeBatch) -> None:
        raise NotImplementedError

    async def _render(self) -> List[Any]:
        raise NotImplementedError

    def _clear(self) -> None:
        raise NotImplementedError

class ConversationListSubscription(Subscription):
    """Merges the per-participant-slot queries of one user into one list"""

    def __init__(self, user_id: str, conversation_service: ConversationService, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id = user_id
        self._conversation_service = conversation_service
        self._conversations: Dict[str, Conversation] = {}
        self._sources: Dict[str, str] = {}
        self._profiles: ProfileCache = {}

    def _apply(self, batch: ChangeBatch) -> None:
        if batch.initial:
            # A fresh result set replaces whatever this query delivered before
            seen = {str(document["_id"]) for document in batch.documents}
            for conversation_id, source in list(self._sources.items()):
                if source == batch.source and conversation_id not in seen:
                    self._forget(conversation_id)

        for document in batch.documents:
            try:
                conversation = Conversation.from_document(document)
            except ValidationError as e:
                logger.warning(f"Subscription {self.name} skipped malformed conversation {document.get('_id')}: {e.error_count()} invalid field(s)")
                continue
            if not conversation.has_participant(self.user_id):
                continue
            self._conversations[conversation.id] = conversation
            self._sources[conversation.id] = batch.source
        for conversation_id in batch.removed_ids:
            self._forget(conversation_id)

    def _forget(self, conversation_id: str) -> None:
        self._conversations.pop(conversation_id, None)
        self._sources.pop(conversation_id, None)

    async def _render(self) -> List[ConversationSummary]:
        return await self._conversation_service.summarize(
            self.user_id,
            list(self._conversations.values()),
            self._profiles
        )

    def _clear(self) -> None:
        self._conversations.clear()
        self._sources.clear()
        self._profiles.clear()

class MessageListSubscription(Subscription):
    """
    Ordered message feed of one conversation.
    New messages go in at the position of their (created_at, id) key;
    messages already delivered keep their relative order.
    """

    def __init__(self, conversation_id: str, conversation_service: ConversationService, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.conversation_id = conversation_id
        self._conversation_service = conversation_service
        self._keys: List[Tuple[float, str]] = []
        self._messages: List[MessageResponse] = []
        self._key_by_id: Dict[str, Tuple[float, str]] = {}
        self._profiles: ProfileCache = {}

    def _apply(self, batch: ChangeBatch) -> None:
        for document in batch.documents:
            try:
                message = MessageResponse.from_document(document)
            except ValidationError as e:
                logger.warning(f"Subscription {self.name} skipped malformed message {document.get('_id')}: {e.error_count()} invalid field(s)")
                continue
            if message.conversation_id != self.conversation_id:
                continue
            key = message.sort_key()

            old_key = self._key_by_id.get(message.id)
            if old_key is not None:
                position = bisect.bisect_left(self._keys, old_key)
                if old_key == key:
                    # Same message, e.g. its read flag flipped
                    self._messages[position] = message
                    continue
                del self._keys[position]
                del self._messages[position]

            position = bisect.bisect_right(self._keys, key)
            self._keys.insert(position, key)
            self._messages.insert(position, message)
            self._key_by_id[message.id] = key

        for message_id in batch.removed_ids:
            old_key = self._key_by_id.pop(message_id, None)
            if old_key is not None:
                position = bisect.bisect_left(self._keys, old_key)
                del self._keys[position]
                del self._messages[position]

    async def _render(self) -> List[MessageResponse]:
        return await self._conversation_service.enrich_messages(list(self._messages), self._profiles)

    def _clear(self) -> None:
        self._keys.clear()
        self._messages.clear()
        self._key_by_id.clear()
        self._profiles.clear()

class RealtimeSubscriptionHub:
    """Creates and tracks live feeds; ``close()`` stops all of them"""

    def __init__(self, live_queries, conversation_service: ConversationService, queue_size: int = 100):
        self.live_queries = live_queries
        self.conversation_service = conversation_service
        self.queue_size = queue_size
        self._subscriptions: Set[Subscription] = set()

    @property
    def active_count(self) -> int:
        return len(self._subscriptions)

    async def subscribe_conversations(self, user_id: str, callback: Callback) -> ConversationListSubscription:
        """Live, enriched and sorted conversation list of a user"""
        require_identity(user_id)
        subscription = ConversationListSubscription(
            user_id,
            self.conversation_service,
            name=f"conversations:{user_id}",
            live_queries=self.live_queries.conversations_for(user_id),
            callback=callback,
            queue_size=self.queue_size,
            on_close=self._subscriptions.discard
        )
        return self._start(subscription)

    async def subscribe_messages(
        self,
        conversation_id: str,
        viewer_id: str,
        callback: Callback
    ) -> MessageListSubscription:
        """Live ordered messages of a conversation the viewer takes part in"""
        await self.conversation_service.get_conversation(conversation_id, viewer_id)
        subscription = MessageListSubscription(
            conversation_id,
            self.conversation_service,
            name=f"messages:{conversation_id}:{viewer_id}",
            live_queries=[self.live_queries.messages_for(conversation_id)],
            callback=callback,
            queue_size=self.queue_size,
            on_close=self._subscriptions.discard
        )
        return self._start(subscription)

    def _start(self, subscription: Subscription) -> Subscription:
        self._subscriptions.add(subscription)
        subscription.start()
        return subscription

    async def close(self) -> None:
        subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            await subscription.cancel()
        if subscriptions:
            logger.info(f"Closed {len(subscriptions)} subscription(s)")
