"""Error taxonomy for the council client."""


class CouncilClientError(Exception):
    """Base class for all council client failures."""


class NetworkError(CouncilClientError):
    """Raised when a request/response call to the server fails."""


class NotFoundError(CouncilClientError):
    """Raised when the server has no conversation with the requested id."""

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


class SessionInitError(CouncilClientError):
    """Raised when a conversation could not be created before submission."""


class TransportError(CouncilClientError):
    """Raised when the event stream cannot be opened or breaks mid-flight."""


class ProtocolError(CouncilClientError):
    """Raised when a stream event cannot be decoded. Never fatal to a session."""

    def __init__(self, event_type: str | None, message: str) -> None:
        self.event_type = event_type
        super().__init__(f"[{event_type or '?'}] {message}")
