"""Shared pytest fixtures."""

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest

from config.config_loader import AppConfig, CouncilConfig, DefaultsConfig, ServerConfig
from council_client.backend.base import CouncilBackend
from council_client.errors import NetworkError, NotFoundError
from council_client.models import Conversation, ConversationSummary, ModelResponse
from council_client.session import DeliberationCoordinator
from council_client.store import ConversationStore


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend(CouncilBackend):
    """Test double CouncilBackend with scripted streams."""

    def __init__(self) -> None:
        self.conversations: dict[str, Conversation] = {}
        self.summaries: list[ConversationSummary] = []
        self.streams: list[dict[str, Any]] = []
        self.sent: list[tuple[str, str]] = []
        self.list_calls = 0
        self.list_error: Exception | None = None
        self.create_error: Exception | None = None
        self.health_error: Exception | None = None
        self.on_event = None  # optional callback(raw) run before each yield
        self._next_id = 1

    def add_conversation(self, conversation: Conversation) -> None:
        self.conversations[conversation.id] = conversation

    def queue_stream(
        self,
        events: list[dict[str, Any]],
        error: Exception | None = None,
        open_error: Exception | None = None,
        hang: bool = False,
    ) -> None:
        """Script the next send_message_stream call."""
        self.streams.append({"events": events, "error": error, "open_error": open_error, "hang": hang})

    async def list_conversations(self) -> list[ConversationSummary]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.summaries)

    async def get_conversation(self, conversation_id: str) -> Conversation:
        if conversation_id not in self.conversations:
            raise NotFoundError(conversation_id)
        return self.conversations[conversation_id]

    async def create_conversation(self) -> Conversation:
        if self.create_error is not None:
            raise self.create_error
        conversation = Conversation(id=f"conv-{self._next_id}", created_at="2026-10-19T10:00:00")
        self._next_id += 1
        self.conversations[conversation.id] = conversation
        self.summaries.insert(0, ConversationSummary(id=conversation.id, created_at=conversation.created_at))
        return conversation

    async def send_message_stream(self, conversation_id: str, content: str) -> AsyncIterator[dict[str, Any]]:
        self.sent.append((conversation_id, content))
        script = self.streams.pop(0) if self.streams else {"events": [], "error": None, "open_error": None, "hang": False}
        if script["open_error"] is not None:
            raise script["open_error"]
        for raw in script["events"]:
            await asyncio.sleep(0)
            if self.on_event is not None:
                self.on_event(raw)
            yield raw
        if script["error"] is not None:
            raise script["error"]
        if script["hang"]:
            await asyncio.Event().wait()

    async def health(self) -> None:
        if self.health_error is not None:
            raise self.health_error


def full_round_events() -> list[dict[str, Any]]:
    """The happy-path event sequence for 'What is 2+2?'."""
    return [
        {"type": "stage1_start"},
        {"type": "stage1_complete", "data": [{"model": "m1", "response": "4"}]},
        {"type": "stage2_start"},
        {
            "type": "stage2_complete",
            "data": [{"model": "m1", "ranking": "FINAL RANKING:\n1. Response A", "parsed_ranking": ["Response A"]}],
            "metadata": {"label_to_model": {"A": "m1"}, "aggregate_rankings": [{"model": "m1", "average_rank": 1.0}]},
        },
        {"type": "stage3_start"},
        {"type": "stage3_complete", "data": {"model": "chair", "response": "The answer is 4."}},
        {"type": "complete"},
    ]


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(fake_backend: FakeBackend) -> ConversationStore:
    return ConversationStore(fake_backend)


@pytest.fixture
def coordinator(fake_backend: FakeBackend, store: ConversationStore, fake_clock: FakeClock) -> DeliberationCoordinator:
    return DeliberationCoordinator(fake_backend, store, clock=fake_clock)


@pytest.fixture
def sample_server_config() -> ServerConfig:
    return ServerConfig(
        base_url="http://council.test",
        request_timeout_sec=5.0,
        stream_idle_timeout_sec=30.0,
    )


@pytest.fixture
def sample_app_config(sample_server_config: ServerConfig, tmp_path: Path) -> AppConfig:
    return AppConfig(
        server=sample_server_config,
        council=CouncilConfig(chairman="google/gemini-3-pro-preview", members=["openai/gpt-5.1", "x-ai/grok-4"]),
        defaults=DefaultsConfig(output_dir=tmp_path / "output"),
    )


@pytest.fixture
def sample_response() -> ModelResponse:
    return ModelResponse(model="openai/gpt-5.1", response="It is 4.", latency=1200, tokens=42)


@pytest.fixture
def network_error() -> NetworkError:
    return NetworkError("GET /api/conversations failed: connection refused")
