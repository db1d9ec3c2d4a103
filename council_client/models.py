"""Frozen dataclasses for conversations and council deliberation results. No logic, no deps."""

import uuid
from dataclasses import dataclass, field
from typing import Any


def new_message_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class ModelResponse:
    model: str                    # e.g. "openai/gpt-5.1"
    response: str
    latency: float | None = None  # as reported by the server
    tokens: int | None = None


@dataclass(frozen=True)
class FinalResponse:
    model: str                    # chairman model
    response: str


@dataclass(frozen=True)
class SynthesisMetadata:
    label_to_model: dict[str, str] = field(default_factory=dict)
    aggregate_rankings: Any = None  # opaque server payload


@dataclass(frozen=True)
class StageProgress:
    stage1: bool = False
    stage2: bool = False
    stage3: bool = False

    @classmethod
    def idle(cls) -> "StageProgress":
        return cls()

    @property
    def any_active(self) -> bool:
        return self.stage1 or self.stage2 or self.stage3


@dataclass(frozen=True)
class UserMessage:
    content: str
    message_id: str = field(default_factory=new_message_id)
    role: str = field(default="user", init=False)


@dataclass(frozen=True)
class AssistantMessage:
    message_id: str = field(default_factory=new_message_id)
    stage1: tuple[ModelResponse, ...] | None = None
    stage2: Any = None            # ranking payload, opaque
    stage3: FinalResponse | None = None
    metadata: SynthesisMetadata | None = None
    error: str | None = None
    progress: StageProgress = field(default_factory=StageProgress.idle)
    role: str = field(default="assistant", init=False)


Message = UserMessage | AssistantMessage


@dataclass(frozen=True)
class Conversation:
    id: str
    created_at: str
    messages: tuple[Message, ...] = ()
    title: str | None = None


@dataclass(frozen=True)
class ConversationSummary:
    id: str
    created_at: str
    message_count: int = 0
    title: str | None = None


@dataclass(frozen=True)
class Telemetry:
    latency_ms: int | None = None
    tokens_per_second: float | None = None
