"""Client-side cache of conversations, addressed by conversation and message id."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace

from council_client.backend.base import CouncilBackend
from council_client.models import Conversation, ConversationSummary, Message

logger = logging.getLogger(__name__)

Listener = Callable[[Conversation], None]


class ConversationStore:
    """Summary list, loaded conversations, and the active conversation id.

    Conversations are immutable snapshots; every change swaps in a new
    snapshot and notifies subscribers with it.
    """

    def __init__(self, backend: CouncilBackend) -> None:
        self._backend = backend
        self._summaries: list[ConversationSummary] = []
        self._conversations: dict[str, Conversation] = {}
        self._active_id: str | None = None
        self._listeners: list[Listener] = []
        self._refresh_lock = asyncio.Lock()

    @property
    def summaries(self) -> tuple[ConversationSummary, ...]:
        return tuple(self._summaries)

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def active(self) -> Conversation | None:
        if self._active_id is None:
            return None
        return self._conversations.get(self._active_id)

    def get(self, conversation_id: str) -> Conversation | None:
        return self._conversations.get(conversation_id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, conversation: Conversation) -> None:
        self._conversations[conversation.id] = conversation
        for listener in list(self._listeners):
            try:
                listener(conversation)
            except Exception:
                logger.exception("Store listener failed for conversation %s", conversation.id)

    async def list_summaries(self) -> list[ConversationSummary]:
        """Refresh and return the summary list.

        Raises:
            NetworkError: The cached list is kept as it was.
        """
        async with self._refresh_lock:
            summaries = await self._backend.list_conversations()
            self._summaries = list(summaries)
            logger.debug("Loaded %d conversation summaries", len(summaries))
            return list(self._summaries)

    async def load(self, conversation_id: str) -> Conversation:
        """Fetch a conversation, replace the cached copy, and make it active.

        Raises:
            NotFoundError, NetworkError
        """
        conversation = await self._backend.get_conversation(conversation_id)
        self._active_id = conversation.id
        self._publish(conversation)
        return conversation

    async def create(self) -> Conversation:
        """Create an empty conversation, prepend its summary, and make it active.

        Raises:
            NetworkError
        """
        conversation = await self._backend.create_conversation()
        summary = ConversationSummary(
            id=conversation.id,
            created_at=conversation.created_at,
            message_count=0,
            title=conversation.title,
        )
        self._summaries.insert(0, summary)
        self._active_id = conversation.id
        self._publish(conversation)
        logger.info("Created conversation %s", conversation.id)
        return conversation

    def activate(self, conversation_id: str) -> None:
        """Make a cached conversation active without refetching it.

        Raises:
            KeyError: The conversation is not cached.
        """
        if conversation_id not in self._conversations:
            raise KeyError(conversation_id)
        self._active_id = conversation_id

    def append_message(self, conversation_id: str, message: Message) -> str:
        """Append ``message`` and return its id."""
        conversation = self._conversations[conversation_id]
        self._publish(replace(conversation, messages=conversation.messages + (message,)))
        return message.message_id

    def mutate_message(
        self,
        conversation_id: str,
        message_id: str,
        mutator: Callable[[Message], Message],
    ) -> Message:
        """Replace the addressed message with ``mutator(message)`` and return the result.

        Raises:
            KeyError: Unknown conversation or message. This is a caller bug.
        """
        conversation = self._conversations[conversation_id]
        for index, message in enumerate(conversation.messages):
            if message.message_id == message_id:
                break
        else:
            raise KeyError(f"Message {message_id} not in conversation {conversation_id}")

        updated = mutator(message)
        if updated is message:
            return message
        messages = conversation.messages[:index] + (updated,) + conversation.messages[index + 1:]
        self._publish(replace(conversation, messages=messages))
        return updated

    def last_message(self, conversation_id: str) -> Message | None:
        conversation = self._conversations[conversation_id]
        return conversation.messages[-1] if conversation.messages else None
