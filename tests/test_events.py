"""Tests for council_client/events.py."""

import pytest

from council_client.errors import ProtocolError
from council_client.events import (
    DEFAULT_ERROR_MESSAGE,
    RoundCompleted,
    ServerError,
    Stage1Completed,
    Stage2Completed,
    Stage3Completed,
    StageStarted,
    TitleCompleted,
    decode_event,
    parse_metadata,
    parse_model_responses,
)
from council_client.models import FinalResponse, ModelResponse


@pytest.mark.parametrize("stage", [1, 2, 3])
def test_decode_start_events(stage):
    assert decode_event({"type": f"stage{stage}_start"}) == StageStarted(stage=stage)


def test_decode_stage1_complete_with_telemetry():
    event = decode_event({
        "type": "stage1_complete",
        "data": [
            {"model": "openai/gpt-5.1", "response": "4", "latency": 812, "tokens": 15},
            {"model": "x-ai/grok-4", "response": "Four."},
        ],
    })
    assert isinstance(event, Stage1Completed)
    assert event.responses == (
        ModelResponse("openai/gpt-5.1", "4", latency=812, tokens=15),
        ModelResponse("x-ai/grok-4", "Four."),
    )


def test_decode_stage1_complete_empty_list_is_valid():
    event = decode_event({"type": "stage1_complete", "data": []})
    assert event == Stage1Completed(responses=())


def test_decode_stage1_complete_without_data_is_protocol_error():
    with pytest.raises(ProtocolError, match="stage1_complete"):
        decode_event({"type": "stage1_complete"})


def test_decode_stage1_entry_missing_response():
    with pytest.raises(ProtocolError, match="response"):
        decode_event({"type": "stage1_complete", "data": [{"model": "m1"}]})


def test_decode_stage2_complete_keeps_payload_opaque():
    rankings = [{"model": "m1", "ranking": "1. Response A"}]
    event = decode_event({
        "type": "stage2_complete",
        "data": rankings,
        "metadata": {"label_to_model": {"Response A": "m1"}, "aggregate_rankings": [{"model": "m1"}]},
    })
    assert isinstance(event, Stage2Completed)
    assert event.rankings == rankings
    assert event.metadata.label_to_model == {"Response A": "m1"}
    assert event.metadata.aggregate_rankings == [{"model": "m1"}]


def test_decode_stage2_complete_without_metadata():
    event = decode_event({"type": "stage2_complete", "data": []})
    assert event.metadata is None


def test_decode_stage2_complete_without_data_is_protocol_error():
    with pytest.raises(ProtocolError):
        decode_event({"type": "stage2_complete", "metadata": {}})


def test_decode_stage3_complete():
    event = decode_event({"type": "stage3_complete", "data": {"model": "chair", "response": "The answer is 4."}})
    assert event == Stage3Completed(final=FinalResponse("chair", "The answer is 4."))


def test_decode_stage3_complete_with_list_data_is_protocol_error():
    with pytest.raises(ProtocolError):
        decode_event({"type": "stage3_complete", "data": ["nope"]})


def test_decode_title_and_complete():
    assert decode_event({"type": "title_complete", "data": {"title": "Math"}}) == TitleCompleted()
    assert decode_event({"type": "complete"}) == RoundCompleted()


def test_decode_error_with_message():
    assert decode_event({"type": "error", "message": "Chairman timed out"}) == ServerError("Chairman timed out")


@pytest.mark.parametrize("raw", [{"type": "error"}, {"type": "error", "message": ""}, {"type": "error", "message": 3}])
def test_decode_error_default_message(raw):
    assert decode_event(raw) == ServerError(DEFAULT_ERROR_MESSAGE)


def test_decode_unknown_type():
    with pytest.raises(ProtocolError, match="Unrecognized") as info:
        decode_event({"type": "stage4_start"})
    assert info.value.event_type == "stage4_start"


def test_decode_missing_type():
    with pytest.raises(ProtocolError):
        decode_event({"data": []})


def test_decode_non_mapping():
    with pytest.raises(ProtocolError):
        decode_event(["stage1_start"])  # type: ignore[arg-type]


def test_parse_model_responses_ignores_boolean_tokens():
    (resp,) = parse_model_responses([{"model": "m", "response": "r", "tokens": True}])
    assert resp.tokens is None


def test_parse_metadata_tolerates_bad_label_map():
    meta = parse_metadata({"label_to_model": ["A"], "aggregate_rankings": None})
    assert meta.label_to_model == {}
    assert parse_metadata(None) is None
