"""Tests for council_client/output.py."""

from pathlib import Path

import pytest

from council_client.models import (
    AssistantMessage,
    Conversation,
    FinalResponse,
    ModelResponse,
    SynthesisMetadata,
    UserMessage,
)
from council_client.output import (
    _slug,
    _telemetry_line,
    display_name,
    export_conversation,
    print_assistant_message,
    short_model_name,
)


def test_slug_basic():
    assert _slug("What is 2+2?") == "what-is-22"


def test_slug_max_len():
    assert len(_slug("a" * 100)) <= 40


def test_short_model_name():
    assert short_model_name("openai/gpt-5.1") == "gpt-5.1"
    assert short_model_name("local-model") == "local-model"


def test_display_name_known_and_unknown():
    assert display_name("google/gemini-3-pro-preview") == "Gemini 3 Pro"
    assert display_name("acme/thinker-9") == "thinker-9"


@pytest.fixture
def sample_conversation(sample_response) -> Conversation:
    return Conversation(
        id="abc",
        created_at="2026-10-19T10:00:00",
        title="Simple arithmetic",
        messages=(
            UserMessage("What is 2+2?"),
            AssistantMessage(
                stage1=(sample_response,),
                stage2=[{"model": "openai/gpt-5.1", "ranking": "1. Response A"}],
                stage3=FinalResponse("google/gemini-3-pro-preview", "The answer is 4."),
                metadata=SynthesisMetadata(label_to_model={"Response A": "openai/gpt-5.1"}),
            ),
            UserMessage("And 3+3?"),
            AssistantMessage(error="Failed to communicate with the server. Please try again."),
        ),
    )


def test_export_creates_file(tmp_path: Path, sample_conversation):
    path = export_conversation(sample_conversation, tmp_path / "out")
    assert path.exists()
    assert path.suffix == ".md"
    assert "simple-arithmetic" in path.name


def test_export_contains_all_stages(tmp_path: Path, sample_conversation):
    content = export_conversation(sample_conversation, tmp_path).read_text(encoding="utf-8")
    assert "What is 2+2?" in content
    assert "It is 4." in content
    assert "1200ms • 42 tokens" in content
    assert "- Response A: openai/gpt-5.1" in content
    assert "The answer is 4." in content
    assert "**Error:** Failed to communicate" in content


def test_export_untitled_uses_question(tmp_path: Path):
    conversation = Conversation(id="xyz", created_at="t", messages=(UserMessage("Is P equal to NP?"),))
    path = export_conversation(conversation, tmp_path)
    assert "is-p-equal-to-np" in path.name


def test_print_assistant_message_renders(capsys):
    message = AssistantMessage(
        stage1=(ModelResponse("x-ai/grok-4", "Four."),),
        stage3=FinalResponse("chair", "The answer is 4."),
        error="late failure",
    )
    print_assistant_message(message)
    out = capsys.readouterr().out
    assert "Grok 4" in out
    assert "The answer is 4." in out
    assert "late failure" in out


def test_telemetry_line_keeps_zero_values():
    assert _telemetry_line(ModelResponse("m1", "cached", latency=0, tokens=0)) == "0ms • 0 tokens"
    assert _telemetry_line(ModelResponse("m1", "unknown")) == "-- • --"
