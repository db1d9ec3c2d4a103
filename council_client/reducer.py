"""Pure reduction of decoded stream events into an assistant message.

``reduce_message`` never performs I/O and never mutates its input, so every
transition can be tested without a network or a store.
"""

from dataclasses import replace

from council_client.events import (
    RoundCompleted,
    ServerError,
    Stage1Completed,
    Stage2Completed,
    Stage3Completed,
    StageStarted,
    StreamEvent,
    TitleCompleted,
)
from council_client.models import AssistantMessage, StageProgress


def _set_stage_flag(progress: StageProgress, stage: int, active: bool) -> StageProgress:
    if stage not in (1, 2, 3):
        raise ValueError(f"Unknown stage: {stage}")
    return replace(progress, **{f"stage{stage}": active})


def reduce_message(message: AssistantMessage, event: StreamEvent) -> AssistantMessage:
    """Return the message that results from applying ``event`` to ``message``."""
    if isinstance(event, StageStarted):
        return replace(message, progress=_set_stage_flag(message.progress, event.stage, True))

    if isinstance(event, Stage1Completed):
        return replace(
            message,
            stage1=event.responses,
            progress=_set_stage_flag(message.progress, 1, False),
        )

    if isinstance(event, Stage2Completed):
        return replace(
            message,
            stage2=event.rankings,
            metadata=event.metadata,
            progress=_set_stage_flag(message.progress, 2, False),
        )

    if isinstance(event, Stage3Completed):
        return replace(
            message,
            stage3=event.final,
            progress=_set_stage_flag(message.progress, 3, False),
        )

    if isinstance(event, ServerError):
        return fail_message(message, event.message)

    if isinstance(event, RoundCompleted):
        # a round that finished cannot still be in progress
        if message.progress.any_active:
            return replace(message, progress=StageProgress.idle())
        return message

    if isinstance(event, TitleCompleted):
        return message

    raise TypeError(f"Unsupported event: {event!r}")


def fail_message(message: AssistantMessage, error: str) -> AssistantMessage:
    """Terminal error transition: keep completed stages, stop all progress."""
    return replace(message, error=error, progress=StageProgress.idle())
