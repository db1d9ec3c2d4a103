"""Rich console output and markdown export for council conversations."""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from council_client.models import (
    AssistantMessage,
    Conversation,
    ConversationSummary,
    ModelResponse,
    Telemetry,
    UserMessage,
)

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_DISPLAY_NAMES = {
    "gpt-5.1": "GPT-5.1",
    "gpt-4o": "GPT-4o",
    "gemini-3-pro-preview": "Gemini 3 Pro",
    "gemini-2.0-flash-exp": "Gemini 2.0",
    "claude-sonnet-4.5": "Claude Sonnet 4.5",
    "claude-3.5-sonnet": "Claude 3.5",
    "grok-4": "Grok 4",
    "mistral-large": "Mistral Large",
    "llama-3-70b": "Llama 3 70B",
}


def short_model_name(model: str) -> str:
    """'openai/gpt-5.1' -> 'gpt-5.1'."""
    _, _, name = model.partition("/")
    return name or model


def display_name(model: str) -> str:
    short = short_model_name(model)
    return _DISPLAY_NAMES.get(short, short)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _telemetry_line(response: ModelResponse) -> str:
    latency = f"{response.latency}ms" if response.latency is not None else "--"
    tokens = f"{response.tokens} tokens" if response.tokens is not None else "--"
    return f"{latency} • {tokens}"


def _as_pretty_json(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def print_summaries(summaries: list[ConversationSummary] | tuple[ConversationSummary, ...]) -> None:
    table = Table(title="Conversations", show_lines=False)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Created", style="dim")
    table.add_column("Messages", justify="right")
    for summary in summaries:
        table.add_row(
            summary.id,
            summary.title or "New Conversation",
            summary.created_at,
            str(summary.message_count),
        )
    console.print(table)


def print_council(members: list[str], chairman: str) -> None:
    """Print the configured council roster."""
    names = ", ".join(display_name(m) for m in members) or "--"
    console.print(f"Council: {names}")
    console.print(f"Chairman: [bold]{display_name(chairman) if chairman else '--'}[/bold]")


def print_telemetry(telemetry: Telemetry) -> None:
    latency = f"{telemetry.latency_ms}ms" if telemetry.latency_ms is not None else "--"
    rate = f"{telemetry.tokens_per_second}" if telemetry.tokens_per_second is not None else "--"
    console.print(Text(f"Latency: {latency} | Tokens/s: {rate}", style="dim"))


def print_assistant_message(message: AssistantMessage) -> None:
    """Print every stage that has arrived, then the error block if any."""
    if message.stage1 is not None:
        console.print(Rule("[bold cyan]Stage 1: Individual Responses[/bold cyan]"))
        if not message.stage1:
            console.print(Text("No council member responded.", style="yellow"))
        for resp in message.stage1:
            console.print(
                Panel(
                    Markdown(resp.response),
                    title=f"[bold]{display_name(resp.model)}[/bold]",
                    subtitle=_telemetry_line(resp),
                    border_style="dim",
                )
            )

    if message.stage2 is not None:
        console.print(Rule("[bold cyan]Stage 2: Peer Rankings[/bold cyan]"))
        if message.metadata is not None and message.metadata.label_to_model:
            for label, model in sorted(message.metadata.label_to_model.items()):
                console.print(f"  {label} = {display_name(model)}")
        if message.metadata is not None and message.metadata.aggregate_rankings is not None:
            console.print(Text(_as_pretty_json(message.metadata.aggregate_rankings), style="dim"))

    if message.stage3 is not None:
        console.print(Rule("[bold green]Council Verdict[/bold green]"))
        console.print(Text(f"Synthesized by: {display_name(message.stage3.model)}", style="dim"))
        console.print(Markdown(message.stage3.response))

    if message.error:
        console.print(Panel(message.error, title="[bold red]Error[/bold red]", border_style="red"))


def export_conversation(conversation: Conversation, output_dir: Path) -> Path:
    """Save the conversation transcript as a markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    first_question = next(
        (m.content for m in conversation.messages if isinstance(m, UserMessage)),
        conversation.title or conversation.id,
    )
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(conversation.title or first_question) or conversation.id}.md"

    lines: list[str] = [
        f"# LLM Council: {conversation.title or first_question[:80]}",
        "",
        f"**Conversation:** {conversation.id}",
        f"**Created:** {conversation.created_at}",
        f"**Exported:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        "",
        "---",
        "",
    ]

    for message in conversation.messages:
        if isinstance(message, UserMessage):
            lines += ["## Question", "", message.content, ""]
            continue

        if message.stage1 is not None:
            lines += ["### Stage 1: Individual Responses", ""]
            for resp in message.stage1:
                lines += [f"#### {display_name(resp.model)} ({resp.model})", "", resp.response, ""]
                lines += [f"*{_telemetry_line(resp)}*", ""]

        if message.stage2 is not None:
            lines += ["### Stage 2: Peer Rankings", ""]
            if message.metadata is not None:
                for label, model in sorted(message.metadata.label_to_model.items()):
                    lines.append(f"- {label}: {model}")
                lines.append("")
            lines += ["```json", _as_pretty_json(message.stage2), "```", ""]

        if message.stage3 is not None:
            lines += [f"### Verdict (by {message.stage3.model})", "", message.stage3.response, ""]

        if message.error:
            lines += [f"> **Error:** {message.error}", ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Conversation exported to: %s", filepath)
    return filepath
