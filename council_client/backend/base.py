"""Abstract interface to the remote council service."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from typing import Any

from council_client.models import Conversation, ConversationSummary


class CouncilBackend(ABC):
    """Conversation storage plus the streaming deliberation endpoint."""

    @abstractmethod
    async def list_conversations(self) -> list[ConversationSummary]:
        """Return conversation summaries, newest first.

        Raises:
            NetworkError: On connection failure or an HTTP error status.
        """
        ...

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation:
        """Return the full conversation.

        Raises:
            NotFoundError: If the server has no such conversation.
            NetworkError: On any other failure.
        """
        ...

    @abstractmethod
    async def create_conversation(self) -> Conversation:
        """Create and return an empty conversation.

        Raises:
            NetworkError: On failure.
        """
        ...

    @abstractmethod
    def send_message_stream(self, conversation_id: str, content: str) -> AsyncIterator[Mapping[str, Any]]:
        """Submit ``content`` and yield raw stream events in arrival order.

        Raises:
            TransportError: If the stream cannot be opened or breaks mid-flight.
        """
        ...

    @abstractmethod
    async def health(self) -> None:
        """Return normally when the server answers; raise otherwise."""
        ...

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""

    async def __aenter__(self) -> "CouncilBackend":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
