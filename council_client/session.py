"""Deliberation session coordinator: one streamed council round per submit."""

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from council_client.backend.base import CouncilBackend
from council_client.errors import CouncilClientError, ProtocolError, SessionInitError
from council_client.events import (
    RoundCompleted,
    ServerError,
    Stage1Completed,
    StreamEvent,
    TitleCompleted,
    decode_event,
)
from council_client.models import (
    AssistantMessage,
    Conversation,
    Message,
    ModelResponse,
    Telemetry,
    UserMessage,
)
from council_client.reducer import fail_message, reduce_message
from council_client.store import ConversationStore

logger = logging.getLogger(__name__)

TRANSPORT_FAILURE_MESSAGE = "Failed to communicate with the server. Please try again."


class SessionStatus(str, Enum):
    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETE = "complete"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass
class DeliberationSession:
    """Handle for one submitted query and the assistant message it builds."""

    conversation_id: str
    message_id: str
    started_at: float
    status: SessionStatus = SessionStatus.PENDING
    telemetry: Telemetry = field(default_factory=Telemetry)
    abort_requested: bool = False
    task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def finished(self) -> bool:
        return self.status in (SessionStatus.COMPLETE, SessionStatus.FAILED, SessionStatus.ABORTED)


def _tokens_per_second(responses: tuple[ModelResponse, ...], elapsed_sec: float) -> float | None:
    counts = [r.tokens for r in responses if r.tokens is not None]
    if not counts or elapsed_sec <= 0:
        return None
    return round(sum(counts) / elapsed_sec, 1)


class DeliberationCoordinator:
    """Turns the server's event stream into store mutations.

    The caller must not submit twice to the same conversation while a
    session for it is in flight; overlapping submits are not queued.
    """

    def __init__(
        self,
        backend: CouncilBackend,
        store: ConversationStore,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backend = backend
        self._store = store
        self._clock = clock
        self._in_flight: dict[str, DeliberationSession] = {}
        self.telemetry = Telemetry()

    @property
    def store(self) -> ConversationStore:
        return self._store

    def in_flight(self, conversation_id: str) -> DeliberationSession | None:
        return self._in_flight.get(conversation_id)

    async def new_conversation(self) -> Conversation:
        return await self._store.create()

    async def open_conversation(self, conversation_id: str) -> Conversation:
        """Make ``conversation_id`` active, aborting streams for any other conversation."""
        for other_id in list(self._in_flight):
            if other_id != conversation_id:
                self.abort(other_id)
        cached = self._store.get(conversation_id)
        if conversation_id in self._in_flight and cached is not None:
            # reloading would drop the message still being built
            self._store.activate(conversation_id)
            return cached
        return await self._store.load(conversation_id)

    def abort(self, conversation_id: str) -> bool:
        """Cancel the in-flight stream for ``conversation_id``. Returns False if none."""
        session = self._in_flight.get(conversation_id)
        if session is None or session.finished:
            return False
        logger.info("Aborting session for conversation %s", conversation_id)
        session.abort_requested = True
        self._finish_with_failure(session, SessionStatus.ABORTED, "aborted by caller")
        if session.task is not None and not session.task.done():
            session.task.cancel()
        return True

    async def submit(self, conversation_id: str | None, content: str) -> DeliberationSession:
        """Run one deliberation round for ``content``.

        Results are observed through the store; the returned session is a
        handle for status and telemetry.

        Raises:
            SessionInitError: No conversation id was given and creation failed,
                or the given conversation is not cached and could not be loaded.
        """
        if conversation_id is None:
            try:
                conversation = await self._store.create()
            except CouncilClientError as exc:
                raise SessionInitError(f"Could not create conversation: {exc}") from exc
            conversation_id = conversation.id
        elif self._store.get(conversation_id) is None:
            try:
                await self._store.load(conversation_id)
            except CouncilClientError as exc:
                raise SessionInitError(f"Could not load conversation {conversation_id}: {exc}") from exc

        self._store.append_message(conversation_id, UserMessage(content=content))
        message_id = self._store.append_message(conversation_id, AssistantMessage())

        session = DeliberationSession(
            conversation_id=conversation_id,
            message_id=message_id,
            started_at=self._clock(),
        )
        self._in_flight[conversation_id] = session
        session.task = asyncio.create_task(self._consume(session, content))
        try:
            await session.task
        except asyncio.CancelledError:
            if not session.abort_requested:
                raise
        finally:
            if self._in_flight.get(conversation_id) is session:
                del self._in_flight[conversation_id]
        return session

    async def _consume(self, session: DeliberationSession, content: str) -> None:
        session.status = SessionStatus.STREAMING
        try:
            stream = self._backend.send_message_stream(session.conversation_id, content)
            async with aclosing(stream):
                async for raw in stream:
                    await self._handle_raw(session, raw)
        except CouncilClientError as exc:
            logger.error("Stream failed for conversation %s: %s", session.conversation_id, exc)
            self._finish_with_failure(session, SessionStatus.FAILED, str(exc))
            return
        except asyncio.CancelledError:
            self._finish_with_failure(session, SessionStatus.ABORTED, "cancelled")
            raise
        except Exception as exc:
            logger.exception("Unexpected stream failure for conversation %s", session.conversation_id)
            self._finish_with_failure(session, SessionStatus.FAILED, f"{type(exc).__name__}: {exc}")
            return

        if not session.finished:
            logger.error(
                "Stream for conversation %s ended without a terminal event",
                session.conversation_id,
            )
            self._finish_with_failure(session, SessionStatus.FAILED, "stream ended early")

    async def _handle_raw(self, session: DeliberationSession, raw: Mapping[str, Any]) -> None:
        if session.status is SessionStatus.ABORTED:
            logger.debug("Discarding event after abort: %s", raw.get("type"))
            return
        if session.finished:
            logger.warning("Protocol violation: event %s after terminal state", raw.get("type"))
            return

        try:
            event = decode_event(raw)
        except ProtocolError as exc:
            logger.warning("Ignoring stream event: %s", exc)
            return

        logger.debug("Event %s for conversation %s", type(event).__name__, session.conversation_id)
        self._apply(session, event)

        if isinstance(event, Stage1Completed):
            self._record_telemetry(session, event)
        if isinstance(event, (TitleCompleted, RoundCompleted)):
            await self._refresh_summaries()

    def _apply(self, session: DeliberationSession, event: StreamEvent) -> None:
        def mutator(message: Message) -> Message:
            if not isinstance(message, AssistantMessage):
                raise TypeError(f"Session handle {session.message_id} does not address an assistant message")
            return reduce_message(message, event)

        self._store.mutate_message(session.conversation_id, session.message_id, mutator)

        if isinstance(event, RoundCompleted):
            session.status = SessionStatus.COMPLETE
            logger.info("Deliberation complete for conversation %s", session.conversation_id)
        elif isinstance(event, ServerError):
            session.status = SessionStatus.FAILED
            logger.error("Server reported error for conversation %s: %s", session.conversation_id, event.message)

    def _finish_with_failure(self, session: DeliberationSession, status: SessionStatus, reason: str) -> None:
        if session.finished:
            return
        session.status = status
        logger.warning("Session for conversation %s ended: %s", session.conversation_id, reason)

        def mutator(message: Message) -> Message:
            if not isinstance(message, AssistantMessage):
                return message
            return fail_message(message, TRANSPORT_FAILURE_MESSAGE)

        self._store.mutate_message(session.conversation_id, session.message_id, mutator)

    def _record_telemetry(self, session: DeliberationSession, event: Stage1Completed) -> None:
        elapsed = self._clock() - session.started_at
        tokens_per_second = _tokens_per_second(event.responses, elapsed)
        session.telemetry = Telemetry(
            latency_ms=int(elapsed * 1000),
            tokens_per_second=tokens_per_second,
        )
        self.telemetry = session.telemetry
        logger.info(
            "Stage 1 ready after %dms (%s tokens/s)",
            session.telemetry.latency_ms,
            tokens_per_second if tokens_per_second is not None else "--",
        )

    async def _refresh_summaries(self) -> None:
        try:
            await self._store.list_summaries()
        except CouncilClientError as exc:
            logger.warning("Failed to refresh conversation list: %s", exc)
