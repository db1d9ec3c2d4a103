"""Stream event types and the decode step at the stream boundary.

Raw events arrive as JSON mappings with a ``type`` discriminator. They are
decoded once, here, into a closed set of frozen dataclasses so that the
reducer never sees untyped payloads.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from council_client.errors import ProtocolError
from council_client.models import FinalResponse, ModelResponse, SynthesisMetadata

DEFAULT_ERROR_MESSAGE = "An error occurred while processing your request"


class EventType(str, Enum):
    STAGE1_START = "stage1_start"
    STAGE1_COMPLETE = "stage1_complete"
    STAGE2_START = "stage2_start"
    STAGE2_COMPLETE = "stage2_complete"
    STAGE3_START = "stage3_start"
    STAGE3_COMPLETE = "stage3_complete"
    TITLE_COMPLETE = "title_complete"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class StageStarted:
    stage: int


@dataclass(frozen=True)
class Stage1Completed:
    responses: tuple[ModelResponse, ...]


@dataclass(frozen=True)
class Stage2Completed:
    rankings: Any
    metadata: SynthesisMetadata | None


@dataclass(frozen=True)
class Stage3Completed:
    final: FinalResponse


@dataclass(frozen=True)
class TitleCompleted:
    pass


@dataclass(frozen=True)
class RoundCompleted:
    pass


@dataclass(frozen=True)
class ServerError:
    message: str


StreamEvent = (
    StageStarted
    | Stage1Completed
    | Stage2Completed
    | Stage3Completed
    | TitleCompleted
    | RoundCompleted
    | ServerError
)


def _require_str(item: Mapping[str, Any], key: str, event_type: str) -> str:
    value = item.get(key)
    if not isinstance(value, str):
        raise ProtocolError(event_type, f"Expected string field '{key}', got {type(value).__name__}")
    return value


def _optional_number(value: Any) -> float | None:
    # bool is an int subclass; a flag is not telemetry
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def parse_model_responses(data: Any, event_type: str = EventType.STAGE1_COMPLETE.value) -> tuple[ModelResponse, ...]:
    """Parse a stage1 response list. An empty list is a valid result."""
    if not isinstance(data, list):
        raise ProtocolError(event_type, "stage1 data must be a list")
    responses: list[ModelResponse] = []
    for item in data:
        if not isinstance(item, Mapping):
            raise ProtocolError(event_type, "stage1 entries must be objects")
        tokens = _optional_number(item.get("tokens"))
        responses.append(
            ModelResponse(
                model=_require_str(item, "model", event_type),
                response=_require_str(item, "response", event_type),
                latency=_optional_number(item.get("latency")),
                tokens=int(tokens) if tokens is not None else None,
            )
        )
    return tuple(responses)


def parse_final_response(data: Any, event_type: str = EventType.STAGE3_COMPLETE.value) -> FinalResponse:
    if not isinstance(data, Mapping):
        raise ProtocolError(event_type, "stage3 data must be an object")
    return FinalResponse(
        model=_require_str(data, "model", event_type),
        response=_require_str(data, "response", event_type),
    )


def parse_metadata(raw: Any) -> SynthesisMetadata | None:
    """Parse stage2 metadata. Absent or non-object metadata yields None."""
    if not isinstance(raw, Mapping):
        return None
    label_map = raw.get("label_to_model") or {}
    if not isinstance(label_map, Mapping):
        label_map = {}
    return SynthesisMetadata(
        label_to_model={str(k): str(v) for k, v in label_map.items()},
        aggregate_rankings=raw.get("aggregate_rankings"),
    )


def decode_event(raw: Mapping[str, Any]) -> StreamEvent:
    """Decode one raw stream event.

    Raises:
        ProtocolError: Unknown event type, or a ``_complete`` event whose
            data is missing or malformed.
    """
    if not isinstance(raw, Mapping):
        raise ProtocolError(None, f"Event must be an object, got {type(raw).__name__}")

    type_name = raw.get("type")
    try:
        event_type = EventType(type_name)
    except ValueError as exc:
        raise ProtocolError(str(type_name), "Unrecognized event type") from exc

    if event_type is EventType.STAGE1_START:
        return StageStarted(stage=1)
    if event_type is EventType.STAGE2_START:
        return StageStarted(stage=2)
    if event_type is EventType.STAGE3_START:
        return StageStarted(stage=3)

    if event_type is EventType.STAGE1_COMPLETE:
        return Stage1Completed(responses=parse_model_responses(raw.get("data"), type_name))

    if event_type is EventType.STAGE2_COMPLETE:
        if raw.get("data") is None:
            raise ProtocolError(type_name, "stage2 completion carries no data")
        return Stage2Completed(rankings=raw["data"], metadata=parse_metadata(raw.get("metadata")))

    if event_type is EventType.STAGE3_COMPLETE:
        return Stage3Completed(final=parse_final_response(raw.get("data"), type_name))

    if event_type is EventType.TITLE_COMPLETE:
        return TitleCompleted()

    if event_type is EventType.COMPLETE:
        return RoundCompleted()

    message = raw.get("message")
    if not isinstance(message, str) or not message:
        message = DEFAULT_ERROR_MESSAGE
    return ServerError(message=message)
